"""
Approval State Machine.

Pure-function module holding the transition logic for one decision on
one expense.

States: ``Pending`` (sub-indexed by ``current_approver_index``),
``Approved`` and ``Rejected`` (both terminal).

Every precondition is checked before anything is touched, and the
transition is applied to a deep copy, so a failed call leaves the
caller's expense exactly as it was.  Persistence is the caller's job.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expenseflow.exceptions import (
    AlreadyFinalized,
    MissingRejectionComment,
    WrongApprover,
)
from expenseflow.models.enums import ApprovalStatus, DecisionAction
from expenseflow.models.expense import Expense
from expenseflow.models.policy import ApprovalPolicy


def approval_percentage(expense: Expense) -> float:
    """Approved steps over total chain length, as a percentage."""
    if not expense.approval_chain:
        return 0.0
    return expense.approved_count / len(expense.approval_chain) * 100


def check_preconditions(
    expense: Expense,
    approver_id: str,
    action: DecisionAction,
    comment: Optional[str],
) -> None:
    """Raise if *approver_id* may not record *action* on *expense* now.

    Raises:
        AlreadyFinalized: The expense is no longer Pending.
        WrongApprover: *approver_id* is not the current step's approver.
            Also covers stale or duplicate decisions on steps already
            passed.
        MissingRejectionComment: Rejection without a non-blank comment.
    """
    if expense.status != ApprovalStatus.PENDING:
        raise AlreadyFinalized(f"Expense is already {expense.status}.")

    current_step = expense.current_step
    if current_step is None or current_step.approver_id != approver_id:
        raise WrongApprover("You are not the current designated approver.")

    if action == DecisionAction.REJECTED and not (comment or "").strip():
        raise MissingRejectionComment("A rejection comment is required.")


def decide(
    expense: Expense,
    approver_id: str,
    action: DecisionAction,
    comment: Optional[str],
    policy: ApprovalPolicy,
    decided_at: Optional[datetime] = None,
) -> Expense:
    """
    Apply one approver decision and return the updated expense.

    Approval finalization checks run in a fixed order and the first one
    that fires wins: override rule, then sequential exhaustion, then the
    percentage rule.  A rejection finalizes unconditionally; no rule can
    override it.  Whenever the expense leaves Pending the index is pinned
    to the chain length and later steps keep their untouched placeholder
    state.

    Args:
        expense: The expense as loaded from the store.  Not mutated.
        approver_id: The user recording the decision.
        action: ``Approved`` or ``Rejected``.
        comment: Free text; required (non-blank) for rejections.
        policy: Current approval policy.
        decided_at: Decision timestamp; defaults to now (UTC).

    Returns:
        A new :class:`Expense` reflecting the transition.
    """
    action = DecisionAction(action)
    check_preconditions(expense, approver_id, action, comment)

    updated = expense.model_copy(deep=True)
    index = updated.current_approver_index
    chain_length = len(updated.approval_chain)
    step = updated.approval_chain[index]

    step.status = ApprovalStatus(action.value)
    step.comment = comment.strip() if comment is not None else None
    step.decided_at = decided_at or datetime.now(timezone.utc)

    if action == DecisionAction.REJECTED:
        updated.status = ApprovalStatus.REJECTED
    else:
        if policy.is_override_approver(approver_id):
            updated.status = ApprovalStatus.APPROVED
        else:
            next_index = index + 1
            if next_index == chain_length:
                updated.status = ApprovalStatus.APPROVED
            else:
                updated.current_approver_index = next_index

        if (
            updated.status == ApprovalStatus.PENDING
            and policy.percentage_rule.enabled
            and approval_percentage(updated) >= policy.percentage_rule.threshold
        ):
            updated.status = ApprovalStatus.APPROVED

    if updated.status != ApprovalStatus.PENDING:
        updated.current_approver_index = chain_length

    return updated


def finalization_reason(before: Expense, after: Expense, policy: ApprovalPolicy) -> Optional[str]:
    """Name the rule that finalized *after*, for audit output.

    Returns ``None`` while the expense is still Pending.
    """
    if after.status == ApprovalStatus.PENDING:
        return None
    if after.status == ApprovalStatus.REJECTED:
        return "REJECTED"
    approver_id = before.current_approver_id
    if approver_id is not None and policy.is_override_approver(approver_id):
        return "OVERRIDE_RULE"
    if before.current_approver_index + 1 == len(before.approval_chain):
        return "CHAIN_COMPLETE"
    return "PERCENTAGE_RULE"
