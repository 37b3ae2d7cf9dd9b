"""Approval state machine transitions."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import make_expense, make_policy
from expenseflow.exceptions import AlreadyFinalized, MissingRejectionComment, WrongApprover
from expenseflow.models.enums import ApprovalStatus, DecisionAction
from expenseflow.services.approval_engine import (
    approval_percentage,
    decide,
    finalization_reason,
)

APPROVE = DecisionAction.APPROVED
REJECT = DecisionAction.REJECTED


@pytest.mark.parametrize("length", [1, 2, 3, 5])
def test_sequential_chain_approves_after_last_step(length):
    approvers = [f"a{i}" for i in range(length)]
    policy = make_policy()
    expense = make_expense(approvers)

    for i, approver in enumerate(approvers):
        assert expense.status == ApprovalStatus.PENDING
        assert expense.current_approver_index == i
        expense = decide(expense, approver, APPROVE, None, policy)

    assert expense.status == ApprovalStatus.APPROVED
    assert expense.current_approver_index == length
    assert all(step.status == ApprovalStatus.APPROVED for step in expense.approval_chain)
    assert all(step.decided_at is not None for step in expense.approval_chain)


def test_rejection_stops_the_chain():
    policy = make_policy()
    expense = make_expense(["a", "b", "c"])

    expense = decide(expense, "a", APPROVE, None, policy)
    expense = decide(expense, "b", REJECT, "Missing receipt", policy)

    assert expense.status == ApprovalStatus.REJECTED
    assert expense.current_approver_index == 3
    assert expense.approval_chain[1].status == ApprovalStatus.REJECTED
    assert expense.approval_chain[1].comment == "Missing receipt"
    assert expense.approval_chain[2].status == ApprovalStatus.PENDING
    assert expense.approval_chain[2].decided_at is None

    with pytest.raises(AlreadyFinalized):
        decide(expense, "c", APPROVE, None, policy)


def test_wrong_approver_leaves_state_unchanged():
    policy = make_policy()
    expense = make_expense(["a", "b"])
    before = expense.model_copy(deep=True)

    with pytest.raises(WrongApprover):
        decide(expense, "b", APPROVE, None, policy)

    assert expense == before
    assert expense.current_approver_index == 0
    assert expense.status == ApprovalStatus.PENDING


def test_previous_approver_cannot_decide_again():
    policy = make_policy()
    expense = decide(make_expense(["a", "b"]), "a", APPROVE, None, policy)

    with pytest.raises(WrongApprover):
        decide(expense, "a", APPROVE, None, policy)


def test_percentage_rule_approves_at_threshold():
    policy = make_policy(percentage=60)
    expense = make_expense(["a", "b", "c"])

    expense = decide(expense, "a", APPROVE, None, policy)
    assert expense.status == ApprovalStatus.PENDING
    assert round(approval_percentage(expense), 1) == 33.3

    before = expense
    expense = decide(expense, "b", APPROVE, None, policy)
    assert expense.status == ApprovalStatus.APPROVED
    assert expense.current_approver_index == 3
    assert expense.approval_chain[2].status == ApprovalStatus.PENDING
    assert finalization_reason(before, expense, policy) == "PERCENTAGE_RULE"


def test_override_approver_finalizes_immediately():
    policy = make_policy(override_approver="boss")
    expense = make_expense(["boss", "b", "c", "d", "e"])

    result = decide(expense, "boss", APPROVE, None, policy)

    assert result.status == ApprovalStatus.APPROVED
    assert result.current_approver_index == 5
    assert result.approval_chain[0].status == ApprovalStatus.APPROVED
    for step in result.approval_chain[1:]:
        assert step.status == ApprovalStatus.PENDING
        assert step.comment is None
        assert step.decided_at is None
    assert finalization_reason(expense, result, policy) == "OVERRIDE_RULE"


def test_override_approver_can_still_reject():
    policy = make_policy(override_approver="boss")
    result = decide(make_expense(["boss", "b"]), "boss", REJECT, "Over budget", policy)

    assert result.status == ApprovalStatus.REJECTED


@pytest.mark.parametrize("comment", [None, "", "   "])
def test_rejection_requires_comment(comment):
    expense = make_expense(["a", "b"])

    with pytest.raises(MissingRejectionComment):
        decide(expense, "a", REJECT, comment, make_policy())

    assert expense.status == ApprovalStatus.PENDING
    assert expense.approval_chain[0].status == ApprovalStatus.PENDING


@pytest.mark.parametrize("comment", [None, ""])
def test_approval_with_empty_comment_succeeds(comment):
    result = decide(make_expense(["a", "b"]), "a", APPROVE, comment, make_policy())

    assert result.current_approver_index == 1
    assert result.approval_chain[0].status == ApprovalStatus.APPROVED


def test_comment_is_trimmed_and_timestamp_recorded():
    at = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    result = decide(make_expense(["a"]), "a", REJECT, "  too high  ", make_policy(), decided_at=at)

    assert result.approval_chain[0].comment == "too high"
    assert result.approval_chain[0].decided_at == at


def test_finalized_expense_rejects_every_retry():
    policy = make_policy()
    finalized = decide(make_expense(["a"]), "a", APPROVE, None, policy)
    snapshot = finalized.model_copy(deep=True)

    for approver, action, comment in [
        ("a", APPROVE, None),
        ("a", REJECT, "late"),
        ("someone", APPROVE, None),
    ]:
        with pytest.raises(AlreadyFinalized):
            decide(finalized, approver, action, comment, policy)

    assert finalized == snapshot


def test_decide_does_not_mutate_input():
    expense = make_expense(["a", "b"])
    decide(expense, "a", APPROVE, "ok", make_policy())

    assert expense.current_approver_index == 0
    assert expense.approval_chain[0].status == ApprovalStatus.PENDING
