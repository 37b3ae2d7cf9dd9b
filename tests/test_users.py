"""Directory administration: creation, reassignment and deletion."""

from __future__ import annotations

from decimal import Decimal

from expenseflow.models.expense import ExpenseSubmission
from expenseflow.models.policy import ApprovalPolicy, ChainStepTemplate
from expenseflow.models.service_models import UserUpdate
from expenseflow.models.user import User


def test_first_user_must_be_admin(user_service):
    refused = user_service.create_user(name="Eve", role="Employee", current_user=None)
    created = user_service.create_user(name="Ada", role="Admin", current_user=None)

    assert refused.status_code == 403
    assert created.success and created.status_code == 201
    assert created.data["role"] == "Admin"


def test_later_users_need_admin(user_service, directory_users):
    by_manager = user_service.create_user(
        name="Sam", role="Employee", current_user=directory_users["mgr"],
    )
    anonymous = user_service.create_user(name="Sam", role="Employee", current_user=None)
    by_admin = user_service.create_user(
        name="Sam", role="Employee", current_user=directory_users["admin"], manager_id="mgr",
    )

    assert by_manager.status_code == 403
    assert anonymous.status_code == 403
    assert by_admin.success
    assert by_admin.data["manager_id"] == "mgr"


def test_create_rejects_duplicates_and_unknown_manager(user_service, directory_users):
    admin = directory_users["admin"]

    duplicate = user_service.create_user(
        name="Again", role="Employee", current_user=admin, user_id="emp",
    )
    orphan = user_service.create_user(
        name="Lost", role="Employee", current_user=admin, manager_id="ghost",
    )

    assert duplicate.error_code == "USER_EXISTS"
    assert orphan.error_code == "USER_NOT_FOUND" and orphan.status_code == 404


def test_list_users_in_creation_order(user_service, directory_users):
    result = user_service.get_all_users()

    assert [u["id"] for u in result.data] == ["admin", "mgr", "fin", "dir", "emp"]


def test_update_role_keeps_manager(user_service, directory_users):
    result = user_service.update_user(
        "emp", UserUpdate(role="Finance"), directory_users["admin"],
    )

    assert result.success
    assert result.data["role"] == "Finance"
    assert result.data["manager_id"] == "mgr"


def test_update_can_clear_manager(user_service, directory_users):
    result = user_service.update_user(
        "emp", UserUpdate(manager_id=None), directory_users["admin"],
    )

    assert result.success
    assert result.data["manager_id"] is None


def test_update_rejects_self_and_indirect_cycles(user_service, user_repo, directory_users):
    admin = directory_users["admin"]

    self_managed = user_service.update_user("mgr", UserUpdate(manager_id="mgr"), admin)
    # emp reports to mgr, so mgr reporting to emp closes a loop.
    looped = user_service.update_user("mgr", UserUpdate(manager_id="emp"), admin)

    assert self_managed.error_code == "MANAGER_CYCLE"
    assert looped.error_code == "MANAGER_CYCLE"
    assert user_repo.get_by_id("mgr").manager_id is None


def test_update_requires_admin_and_existing_user(user_service, directory_users):
    forbidden = user_service.update_user(
        "emp", UserUpdate(role="Admin"), directory_users["emp"],
    )
    missing = user_service.update_user(
        "ghost", UserUpdate(role="Admin"), directory_users["admin"],
    )

    assert forbidden.status_code == 403
    assert missing.status_code == 404


def test_delete_cascades_to_expenses(user_service, workflow, expense_repo, user_repo, directory_users):
    expense = workflow.submit(
        ExpenseSubmission(user_id="emp", amount=Decimal("12"), currency="USD"),
    )

    result = user_service.delete_user("emp", directory_users["admin"])

    assert result.success
    assert result.data["deleted_expenses"] == 1
    assert user_repo.get_by_id("emp") is None
    assert expense_repo.get_by_id(expense.id) is None


def test_deleting_manager_clears_reports(user_service, user_repo, directory_users):
    user_service.delete_user("mgr", directory_users["admin"])

    assert user_repo.get_by_id("emp").manager_id is None


def test_delete_guards(user_service, directory_users):
    admin = directory_users["admin"]

    assert user_service.delete_user("admin", admin).error_code == "SELF_DELETE"
    assert user_service.delete_user("emp", directory_users["mgr"]).status_code == 403
    assert user_service.delete_user("ghost", admin).status_code == 404


def test_get_user(user_service, directory_users):
    assert user_service.get_user("fin") == directory_users["fin"]
    assert user_service.get_user("ghost") is None
    assert isinstance(user_service.get_user("emp"), User)


def test_delete_refuses_override_approver(
    user_service, policy_service, user_repo, save_policy, directory_users,
):
    admin = directory_users["admin"]
    save_policy(override_approver="dir")

    refused = user_service.delete_user("dir", admin)
    unrelated = policy_service.update_policy(
        {"percentage_rule": {"enabled": True, "threshold": 50}}, admin,
    )

    assert refused.status_code == 409
    assert refused.error_code == "USER_REFERENCED_BY_POLICY"
    assert user_repo.get_by_id("dir") is not None
    assert unrelated.success


def test_delete_refuses_named_chain_approver(
    user_service, policy_repo, user_repo, directory_users,
):
    policy_repo.save(ApprovalPolicy(sequential_chain=[
        ChainStepTemplate(role="Finance", step_name="Controller", approver_id="fin"),
    ]))

    result = user_service.delete_user("fin", directory_users["admin"])

    assert result.status_code == 409
    assert user_repo.get_by_id("fin") is not None


def test_delete_allowed_once_override_disabled(user_service, user_repo, save_policy, directory_users):
    save_policy(override_approver=None)

    assert user_service.delete_user("dir", directory_users["admin"]).success
    assert user_repo.get_by_id("dir") is None
