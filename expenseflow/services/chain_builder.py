"""
Approval Chain Builder.

Pure-function module that turns the policy's sequential chain template
into the concrete, ordered approval chain for one expense.

Resolution per template step:
    - explicit ``approver_id`` on the template: that user.
    - role ``Manager``: the submitter's direct manager.
    - any other role: the first directory user, in snapshot order,
      holding that role.

Steps that resolve to nobody are dropped, never kept as placeholders.
Functions are stateless: input data -> output result, no side effects
beyond logging.
"""

from __future__ import annotations

from typing import Optional

from expenseflow.exceptions import EmptyApprovalChain, SubmitterNotFound
from expenseflow.logger import StructuredLogger
from expenseflow.models.directory import DirectorySnapshot
from expenseflow.models.enums import ApprovalStatus
from expenseflow.models.expense import ApprovalStep, Expense
from expenseflow.models.policy import ApprovalPolicy, ChainStepTemplate
from expenseflow.models.user import User


def resolve_approver(
    template: ChainStepTemplate,
    submitter: User,
    directory: DirectorySnapshot,
    logger: Optional[StructuredLogger] = None,
) -> Optional[User]:
    """Return the user who must approve *template* for *submitter*, if any."""
    if template.approver_id is not None:
        return directory.get(template.approver_id)

    if template.is_manager_step:
        return directory.manager_of(submitter)

    approver = directory.first_with_role(template.role)
    if approver is not None and logger is not None:
        holders = len(directory.users_with_role(template.role))
        if holders > 1:
            logger.warning(
                "Step '%s': %d users hold role '%s'; using the earliest created (%s).",
                template.step_name,
                holders,
                template.role,
                approver.id,
            )
    return approver


def build_chain(
    expense: Expense,
    policy: ApprovalPolicy,
    directory: DirectorySnapshot,
    logger: Optional[StructuredLogger] = None,
) -> list[ApprovalStep]:
    """
    Build the ordered approval chain for *expense*.

    Args:
        expense: The expense being submitted; only ``user_id`` is read.
        policy: Current approval policy.
        directory: Fresh directory snapshot in creation order.
        logger: Optional logger for resolution diagnostics.

    Returns:
        One Pending step per template step that resolved to an approver,
        in template order.

    Raises:
        SubmitterNotFound: If the submitter is not in *directory*.
        EmptyApprovalChain: If no step resolved.
    """
    submitter = directory.get(expense.user_id)
    if submitter is None:
        raise SubmitterNotFound(f"Submitting user '{expense.user_id}' not found.")

    chain: list[ApprovalStep] = []
    for template in policy.sequential_chain:
        approver = resolve_approver(template, submitter, directory, logger)
        if approver is None:
            if logger is not None:
                logger.info(
                    "Step '%s' (role %s) has no resolvable approver for user %s; skipped.",
                    template.step_name,
                    template.role,
                    submitter.id,
                )
            continue
        chain.append(
            ApprovalStep(
                step_name=template.step_name,
                approver_id=approver.id,
                status=ApprovalStatus.PENDING,
                comment=None,
                decided_at=None,
            )
        )

    if not chain:
        raise EmptyApprovalChain(
            "Approval chain is empty. Check manager assignment or company rules."
        )

    return chain
