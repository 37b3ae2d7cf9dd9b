"""
Workflow Exceptions.

Errors raised by the pure chain-building and decision functions.  Each
carries a stable ``code`` and an HTTP-like ``status_code`` so the service
layer can translate it into a :class:`ServiceResult` without inspecting
the message.  None of these are retried automatically.
"""

from __future__ import annotations

from typing import Optional


class ExpenseWorkflowError(Exception):
    """Base class for all approval-workflow failures."""

    code: str = "WORKFLOW_ERROR"
    status_code: int = 400

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class SubmitterNotFound(ExpenseWorkflowError):
    """The submitting user is not present in the directory snapshot."""

    code = "SUBMITTER_NOT_FOUND"
    status_code = 404


class EmptyApprovalChain(ExpenseWorkflowError):
    """No template step resolved to an approver."""

    code = "EMPTY_APPROVAL_CHAIN"
    status_code = 422


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class ExpenseNotFound(ExpenseWorkflowError):
    code = "EXPENSE_NOT_FOUND"
    status_code = 404


class AlreadyFinalized(ExpenseWorkflowError):
    """The expense already left ``Pending``."""

    code = "ALREADY_FINALIZED"
    status_code = 409


class WrongApprover(ExpenseWorkflowError):
    """The caller is not the approver of the current step."""

    code = "WRONG_APPROVER"
    status_code = 403


class MissingRejectionComment(ExpenseWorkflowError):
    code = "MISSING_REJECTION_COMMENT"
    status_code = 400


class ConcurrentDecisionConflict(ExpenseWorkflowError):
    """The stored expense changed between load and save.

    Raised by the expense store when the optimistic version check fails.
    Nothing was written; the caller may reload and decide again.
    """

    code = "CONCURRENT_DECISION_CONFLICT"
    status_code = 409


# ---------------------------------------------------------------------------
# Policy and directory administration
# ---------------------------------------------------------------------------

class PolicyValidationError(ExpenseWorkflowError):
    code = "INVALID_POLICY"
    status_code = 400


class UserNotFound(ExpenseWorkflowError):
    code = "USER_NOT_FOUND"
    status_code = 404


class ManagerCycleError(ExpenseWorkflowError):
    """A manager assignment would make a user their own (indirect) manager."""

    code = "MANAGER_CYCLE"
    status_code = 400


class UserReferencedByPolicy(ExpenseWorkflowError):
    """The user is named as an explicit approver in the approval policy."""

    code = "USER_REFERENCED_BY_POLICY"
    status_code = 409
