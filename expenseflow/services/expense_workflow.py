"""
Expense Workflow Service.

Request-layer boundary of the approval engine: submission, decisions and
the approver/manager/admin expense queues.

Each call loads a fresh directory snapshot and policy, so admin edits
apply to the very next request.  Decisions on one expense are
serialized in-process by a per-expense lock and across processes by the
optimistic version check in :class:`ExpenseRepository`; decisions on
different expenses share nothing and run in parallel.

Two flavours of each mutating operation are exposed:
    - ``submit`` / ``decide`` raise :class:`ExpenseWorkflowError`
      subclasses and return the model, for library callers.
    - ``submit_expense`` / ``record_decision`` wrap them in a
      :class:`ServiceResult` envelope, for request handlers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Mapping, Optional, Union

from pydantic import ValidationError

from expenseflow.database import DatabaseManager
from expenseflow.exceptions import ExpenseWorkflowError
from expenseflow.logger import StructuredLogger
from expenseflow.models.enums import ApprovalStatus, DecisionAction
from expenseflow.models.expense import Expense, ExpenseSubmission
from expenseflow.models.service_models import DecisionRequest, ServiceResult
from expenseflow.repositories.expense_repository import ExpenseRepository
from expenseflow.repositories.user_repository import UserRepository
from expenseflow.services import approval_engine
from expenseflow.services.base_service import BaseService
from expenseflow.services.chain_builder import build_chain
from expenseflow.services.policy_service import PolicyService
from expenseflow.utils.audit import log_audit_event
from expenseflow.utils.locking import KeyedLock


class ExpenseWorkflowService(BaseService):
    """
    Orchestrates the approval workflow: chain building on submission and
    state transitions on each decision.

    Dependencies are injected via __init__; no global state.
    """

    def __init__(
        self,
        expense_repo: ExpenseRepository,
        user_repo: UserRepository,
        policy_service: PolicyService,
        db: DatabaseManager,
        logger: StructuredLogger,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        super().__init__(logger)
        self._expense_repo = expense_repo
        self._user_repo = user_repo
        self._policy_service = policy_service
        self._db = db
        self._locks: KeyedLock = locks or KeyedLock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, submission: ExpenseSubmission) -> Expense:
        """
        Create a Pending expense at step 0 of a freshly built chain.

        Raises:
            SubmitterNotFound: The submitter is not in the directory.
            EmptyApprovalChain: No policy step resolved to an approver.
        """
        policy = self._policy_service.load_policy()
        directory = self._user_repo.snapshot()

        submitter = directory.get(submission.user_id)
        draft = Expense(
            id=str(uuid.uuid4()),
            user_id=submission.user_id,
            user_name=submitter.name if submitter is not None else "",
            amount=submission.amount,
            currency=submission.currency,
            base_amount=(
                submission.base_amount
                if submission.base_amount is not None
                else submission.amount
            ),
            base_currency=policy.base_currency,
            category=submission.category,
            description=submission.description,
            date=submission.date,
            receipt_url=submission.receipt_url,
            status=ApprovalStatus.PENDING,
            current_approver_index=0,
            submitted_at=datetime.now(timezone.utc),
        )

        chain = build_chain(draft, policy, directory, self._logger)
        expense = self._expense_repo.create(draft.model_copy(update={"approval_chain": chain}))

        log_audit_event(
            logger=self._logger,
            action="SUBMIT",
            entity_type="Expense",
            entity_id=expense.id,
            user_id=expense.user_id,
            details={
                "amount": str(expense.amount),
                "currency": expense.currency,
                "base_amount": str(expense.base_amount),
                "base_currency": expense.base_currency,
                "chain_length": len(expense.approval_chain),
                "first_approver_id": expense.current_approver_id,
            },
            db=self._db,
        )
        return expense

    def submit_expense(
        self,
        payload: Union[ExpenseSubmission, Mapping[str, object]],
    ) -> ServiceResult:
        """Validate *payload*, submit it and wrap the outcome."""
        try:
            submission = (
                payload
                if isinstance(payload, ExpenseSubmission)
                else ExpenseSubmission.model_validate(dict(payload))
            )
        except ValidationError as exc:
            return ServiceResult(
                success=False,
                error=f"Invalid expense submission: {exc.errors()[0]['msg']}",
                error_code="INVALID_SUBMISSION",
                status_code=400,
            )

        try:
            expense = self.submit(submission)
            return ServiceResult(
                success=True,
                data=expense.model_dump(mode="json"),
                status_code=201,
            )
        except ExpenseWorkflowError as exc:
            self._logger.warning(
                "Expense submission rejected for user %s: %s",
                submission.user_id,
                exc.message,
            )
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error(
                "Error submitting expense for user %s: %s",
                submission.user_id,
                str(exc),
                exc_info=True,
            )
            return ServiceResult(
                success=False,
                error=f"Error submitting expense: {exc}",
                status_code=500,
            )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        expense_id: str,
        approver_id: str,
        action: Union[DecisionAction, str],
        comment: Optional[str] = None,
    ) -> Expense:
        """
        Run one load-decide-save cycle for *expense_id*.

        Nothing is written unless every precondition passes.

        Raises:
            ExpenseNotFound, AlreadyFinalized, WrongApprover,
            MissingRejectionComment, ConcurrentDecisionConflict.
        """
        action = DecisionAction(action)

        with self._locks.hold(expense_id):
            expense = self._expense_repo.load_for_decision(expense_id)
            policy = self._policy_service.load_policy()

            updated = approval_engine.decide(expense, approver_id, action, comment, policy)
            saved = self._expense_repo.save(updated, expected_version=expense.version)

        step = saved.approval_chain[expense.current_approver_index]
        log_audit_event(
            logger=self._logger,
            action="APPROVE" if action == DecisionAction.APPROVED else "REJECT",
            entity_type="Expense",
            entity_id=expense_id,
            user_id=approver_id,
            details={
                "step_index": expense.current_approver_index,
                "step_name": step.step_name,
                "comment": step.comment,
                "status": str(saved.status),
                "next_approver_id": saved.current_approver_id,
                "finalized_by": approval_engine.finalization_reason(expense, saved, policy),
                "approved_percentage": round(approval_engine.approval_percentage(saved), 2),
            },
            db=self._db,
        )
        return saved

    def record_decision(
        self,
        expense_id: str,
        request: Union[DecisionRequest, Mapping[str, object]],
    ) -> ServiceResult:
        """Validate *request*, apply it and wrap the outcome."""
        try:
            decision = (
                request
                if isinstance(request, DecisionRequest)
                else DecisionRequest.model_validate(dict(request))
            )
        except ValidationError as exc:
            return ServiceResult(
                success=False,
                error=f"Invalid decision: {exc.errors()[0]['msg']}",
                error_code="INVALID_DECISION",
                status_code=400,
            )

        try:
            expense = self.decide(
                expense_id,
                decision.approver_id,
                decision.action,
                decision.comment,
            )
            return ServiceResult(
                success=True,
                data={
                    "message": "Approval processed",
                    "expense": expense.model_dump(mode="json"),
                },
            )
        except ExpenseWorkflowError as exc:
            self._logger.warning(
                "Decision on expense %s by %s rejected: %s",
                expense_id,
                decision.approver_id,
                exc.message,
            )
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error(
                "Error processing decision for expense %s: %s",
                expense_id,
                str(exc),
                exc_info=True,
            )
            return ServiceResult(
                success=False,
                error=f"Error processing approval: {exc}",
                status_code=500,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_expense(self, expense_id: str) -> ServiceResult:
        try:
            expense = self._expense_repo.load_for_decision(expense_id)
            return ServiceResult(success=True, data=expense.model_dump(mode="json"))
        except ExpenseWorkflowError as exc:
            return self._error_result(exc)

    def pending_for_approver(self, approver_id: str) -> list[Expense]:
        """Pending expenses whose current step belongs to *approver_id*, oldest first."""
        return [
            expense
            for expense in self._expense_repo.list_pending()
            if expense.current_approver_id == approver_id
        ]

    def get_pending_for_approver(self, approver_id: str) -> ServiceResult:
        return self._list_result(
            lambda: self.pending_for_approver(approver_id),
            "pending expenses",
        )

    def get_team_expenses(self, manager_id: str) -> ServiceResult:
        """Expenses of *manager_id*'s direct reports, newest first."""
        def _team() -> list[Expense]:
            report_ids = [user.id for user in self._user_repo.get_direct_reports(manager_id)]
            return self._expense_repo.list_by_submitters(report_ids)

        return self._list_result(_team, "team expenses")

    def get_expenses_for_user(self, user_id: str) -> ServiceResult:
        return self._list_result(
            lambda: self._expense_repo.list_by_submitters([user_id]),
            "user expenses",
        )

    def get_all_expenses(self) -> ServiceResult:
        return self._list_result(self._expense_repo.list_all, "all expenses")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _list_result(self, fetch, label: str) -> ServiceResult:
        try:
            return ServiceResult(
                success=True,
                data=[expense.model_dump(mode="json") for expense in fetch()],
            )
        except Exception as exc:
            self._logger.error("Error fetching %s: %s", label, exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Error fetching {label}: {exc}",
                status_code=500,
            )
