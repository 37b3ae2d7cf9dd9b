"""Approval policy seeding, validation and admin updates."""

from __future__ import annotations

import pytest

from expenseflow.models.user import User


def test_default_policy_is_seeded_once(policy_service, policy_repo, directory_users):
    assert policy_repo.get() is None

    first = policy_service.load_policy()
    second = policy_service.load_policy()

    assert first.base_currency == "USD"
    assert [step.role for step in first.sequential_chain] == ["Manager", "Finance", "Director"]
    assert first.percentage_rule.enabled and first.percentage_rule.threshold == 60
    assert not first.override_rule.enabled
    assert second.sequential_chain == first.sequential_chain


def test_get_policy_envelope(policy_service, directory_users):
    result = policy_service.get_policy()

    assert result.success
    assert result.data["sequential_chain"][0]["step_name"] == "Direct Manager"


def test_update_is_partial(policy_service, directory_users):
    result = policy_service.update_policy(
        {"override_rule": {"enabled": True, "approver_id": "dir"}},
        directory_users["admin"],
    )

    assert result.success
    policy = policy_service.load_policy()
    assert policy.override_rule.approver_id == "dir"
    assert policy.percentage_rule.threshold == 60
    assert len(policy.sequential_chain) == 3


def test_non_admin_cannot_update(policy_service, directory_users):
    result = policy_service.update_policy({"base_currency": "EUR"}, directory_users["mgr"])

    assert result.status_code == 403
    assert result.error_code == "FORBIDDEN"
    assert policy_service.load_policy().base_currency == "USD"


@pytest.mark.parametrize(
    "changes",
    [
        {"percentage_rule": {"enabled": True, "threshold": 0}},
        {"percentage_rule": {"enabled": True, "threshold": 101}},
        {"override_rule": {"enabled": True}},
        {"override_rule": {"enabled": True, "approver_id": "ghost"}},
        {"sequential_chain": [{"role": "Finance", "step_name": "   "}]},
        {"sequential_chain": [{"role": "", "step_name": "Review"}]},
        {"sequential_chain": [{"role": "Finance", "step_name": "Review", "approver_id": "ghost"}]},
    ],
)
def test_invalid_updates_are_rejected(policy_service, directory_users, changes):
    before = policy_service.load_policy()

    result = policy_service.update_policy(changes, directory_users["admin"])

    assert not result.success
    assert result.error_code == "INVALID_POLICY"
    assert result.status_code == 400
    after = policy_service.load_policy()
    assert after.percentage_rule == before.percentage_rule
    assert after.override_rule == before.override_rule
    assert after.sequential_chain == before.sequential_chain


def test_disabled_percentage_rule_accepts_any_threshold(policy_service, directory_users):
    result = policy_service.update_policy(
        {"percentage_rule": {"enabled": False, "threshold": 0}},
        directory_users["admin"],
    )
    assert result.success


def test_update_is_audited(db, policy_service, directory_users):
    policy_service.update_policy({"base_currency": "eur"}, directory_users["admin"])

    row = db.sqlite.execute(
        "SELECT action, user_id FROM audit_log WHERE entity_type = 'ApprovalPolicy'"
    ).fetchone()
    assert row["action"] == "UPDATE_POLICY"
    assert row["user_id"] == "admin"
    assert policy_service.load_policy().base_currency == "EUR"


def test_unknown_acting_role_is_forbidden(policy_service, directory_users):
    outsider = User(id="x", name="X", role="Auditor")
    assert policy_service.update_policy({}, outsider).status_code == 403
