"""
Approval Policy Service.

Reads, seeds, validates and updates the singleton approval policy.

- ``load_policy`` is what the workflow calls before every submission and
  decision.  It never caches: admin edits apply to the very next request.
- When no policy has been saved yet, a default built from configuration
  is persisted and returned.
- ``update_policy`` is admin-only, accepts a partial document (top-level
  keys are replaced, omitted keys keep their current value) and rejects
  policies whose rules reference users missing from the directory.
"""

from __future__ import annotations

from typing import Mapping, Optional

from pydantic import ValidationError

from expenseflow.config import AppConfig
from expenseflow.database import DatabaseManager
from expenseflow.exceptions import ExpenseWorkflowError, PolicyValidationError
from expenseflow.logger import StructuredLogger
from expenseflow.models.directory import DirectorySnapshot
from expenseflow.models.enums import UserRole
from expenseflow.models.policy import (
    ApprovalPolicy,
    ChainStepTemplate,
    OverrideRule,
    PercentageRule,
)
from expenseflow.models.service_models import ServiceResult
from expenseflow.models.user import User
from expenseflow.repositories.policy_repository import PolicyRepository
from expenseflow.repositories.user_repository import UserRepository
from expenseflow.services.base_service import BaseService
from expenseflow.utils.audit import log_audit_event


def default_policy(config: AppConfig) -> ApprovalPolicy:
    """Build the policy seeded on first use."""
    return ApprovalPolicy(
        base_currency=config.DEFAULT_BASE_CURRENCY,
        sequential_chain=[
            ChainStepTemplate(**step) for step in config.DEFAULT_SEQUENTIAL_CHAIN
        ],
        percentage_rule=PercentageRule(
            enabled=config.DEFAULT_PERCENTAGE_RULE_ENABLED,
            threshold=config.DEFAULT_PERCENTAGE_THRESHOLD,
        ),
        override_rule=OverrideRule(enabled=False, approver_id=None),
    )


def validate_policy(policy: ApprovalPolicy, directory: DirectorySnapshot) -> None:
    """Check the policy's user references against the directory.

    Raises:
        PolicyValidationError: If the override approver or an explicit
            step approver does not exist.
    """
    override = policy.override_rule
    if override.enabled and override.approver_id not in directory:
        raise PolicyValidationError(
            f"Override approver '{override.approver_id}' does not exist."
        )

    for template in policy.sequential_chain:
        if template.approver_id is not None and template.approver_id not in directory:
            raise PolicyValidationError(
                f"Step '{template.step_name}' names approver "
                f"'{template.approver_id}', who does not exist."
            )


class PolicyService(BaseService):
    """Service layer for the approval policy."""

    def __init__(
        self,
        repo: PolicyRepository,
        user_repo: UserRepository,
        config: AppConfig,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._user_repo = user_repo
        self._config = config
        self._db = db

    def load_policy(self) -> ApprovalPolicy:
        """Return the current policy, seeding the default on first use."""
        policy: Optional[ApprovalPolicy] = self._repo.get()
        if policy is not None:
            return policy

        self._logger.info("No approval policy found; creating default policy.")
        return self._repo.save(default_policy(self._config))

    def get_policy(self) -> ServiceResult:
        try:
            policy = self.load_policy()
            return ServiceResult(success=True, data=policy.model_dump(mode="json"))
        except Exception as exc:
            self._logger.error("Failed to load approval policy: %s", exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Error fetching approval policy: {exc}",
                status_code=500,
            )

    def update_policy(
        self,
        changes: Mapping[str, object],
        current_user: User,
    ) -> ServiceResult:
        """
        Merge *changes* into the current policy and save it.

        Args:
            changes: Partial policy document, e.g.
                ``{"percentage_rule": {"enabled": True, "threshold": 75}}``.
            current_user: The admin performing the change.

        Returns:
            ServiceResult with the saved policy document.
        """
        if current_user.role != UserRole.ADMIN:
            return self._forbidden("Only Admin users can change the approval policy.")

        try:
            current = self.load_policy()
            merged: dict[str, object] = current.model_dump(mode="json", exclude={"updated_at"})
            merged.update(dict(changes))

            try:
                candidate = ApprovalPolicy.model_validate(merged)
            except ValidationError as exc:
                raise PolicyValidationError(
                    f"Invalid approval policy: {exc.errors()[0]['msg']}", exc,
                ) from exc

            validate_policy(candidate, self._user_repo.snapshot())
            saved = self._repo.save(candidate)

            log_audit_event(
                logger=self._logger,
                action="UPDATE_POLICY",
                entity_type="ApprovalPolicy",
                entity_id="1",
                user_id=current_user.id,
                details={
                    "chain_steps": len(saved.sequential_chain),
                    "percentage_enabled": saved.percentage_rule.enabled,
                    "percentage_threshold": saved.percentage_rule.threshold,
                    "override_enabled": saved.override_rule.enabled,
                    "override_approver_id": saved.override_rule.approver_id,
                },
                db=self._db,
            )
            return ServiceResult(success=True, data=saved.model_dump(mode="json"))
        except ExpenseWorkflowError as exc:
            self._logger.warning("Approval policy update rejected: %s", exc.message)
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error("Error updating approval policy: %s", exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Error updating approval policy: {exc}",
                status_code=500,
            )
