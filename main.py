"""
ExpenseFlow Command-Line Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema and dispatches one operator command against the
service container.  Every subsystem is wired here; no module-level
globals.

Usage::

    python main.py init --admin-name "Ada Admin"
    python main.py users add --as <admin-id> --name "Eve" --role Employee --manager-id <id>
    python main.py policy set --as <admin-id> '{"percentage_rule": {"enabled": true, "threshold": 75}}'
    python main.py submit --user <id> --amount 120.50 --currency EUR --base-amount 130.10
    python main.py decide <expense-id> --approver <id> --action Rejected --comment "No receipt"
    python main.py pending --approver <id>
"""

from __future__ import annotations

import argparse
import atexit
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from expenseflow.config import AppConfig, get_config
from expenseflow.database import DatabaseManager
from expenseflow.logger import StructuredLogger, get_logger
from expenseflow.models.enums import DecisionAction, UserRole
from expenseflow.models.service_models import DecisionRequest, ServiceResult, UserUpdate
from expenseflow.models.user import User
from expenseflow.schema import initialize_schema
from expenseflow.services import ServiceContainer, create_services


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expenseflow",
        description="Multi-level expense approval engine.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create the schema and seed the default policy.")
    init.add_argument("--admin-name", help="Create the first Admin user with this name.")
    init.add_argument("--admin-email")

    users = sub.add_parser("users", help="Directory administration.")
    users_sub = users.add_subparsers(dest="users_command", required=True)
    users_sub.add_parser("list")

    users_add = users_sub.add_parser("add")
    users_add.add_argument("--as", dest="acting_user", help="Acting Admin user id.")
    users_add.add_argument("--name", required=True)
    users_add.add_argument("--role", default=UserRole.EMPLOYEE.value)
    users_add.add_argument("--email")
    users_add.add_argument("--manager-id")
    users_add.add_argument("--id", dest="user_id")

    users_update = users_sub.add_parser("update")
    users_update.add_argument("user_id")
    users_update.add_argument("--as", dest="acting_user", required=True)
    users_update.add_argument("--role")
    users_update.add_argument("--manager-id", help="Use an empty string to clear.")

    users_delete = users_sub.add_parser("delete")
    users_delete.add_argument("user_id")
    users_delete.add_argument("--as", dest="acting_user", required=True)

    policy = sub.add_parser("policy", help="Show or change the approval policy.")
    policy_sub = policy.add_subparsers(dest="policy_command", required=True)
    policy_sub.add_parser("show")
    policy_set = policy_sub.add_parser("set")
    policy_set.add_argument("--as", dest="acting_user", required=True)
    policy_set.add_argument("changes", help="Partial policy document as JSON.")

    submit = sub.add_parser("submit", help="Submit an expense claim.")
    submit.add_argument("--user", required=True)
    submit.add_argument("--amount", required=True)
    submit.add_argument("--currency", required=True)
    submit.add_argument("--base-amount")
    submit.add_argument("--category", default="")
    submit.add_argument("--description", default="")
    submit.add_argument("--date")
    submit.add_argument("--receipt-url")

    decide = sub.add_parser("decide", help="Approve or reject the current step.")
    decide.add_argument("expense_id")
    decide.add_argument("--approver", required=True)
    decide.add_argument(
        "--action",
        required=True,
        choices=[action.value for action in DecisionAction],
    )
    decide.add_argument("--comment")

    pending = sub.add_parser("pending", help="Expenses awaiting an approver.")
    pending.add_argument("--approver", required=True)

    expenses = sub.add_parser("expenses", help="List expenses.")
    scope = expenses.add_mutually_exclusive_group()
    scope.add_argument("--id", dest="expense_id", help="A single expense by id.")
    scope.add_argument("--user", help="Expenses submitted by this user.")
    scope.add_argument("--team", help="Expenses of this manager's direct reports.")

    return parser


def _acting_user(services: ServiceContainer, user_id: Optional[str]) -> Optional[User]:
    if user_id is None:
        return None
    user = services["user_service"].get_user(user_id)
    if user is None:
        raise SystemExit(f"Acting user '{user_id}' not found.")
    return user


def _dispatch(args: argparse.Namespace, services: ServiceContainer) -> ServiceResult:
    users = services["user_service"]
    policies = services["policy_service"]
    workflow = services["expense_workflow_service"]

    if args.command == "init":
        result = policies.get_policy()
        if result.success and args.admin_name:
            return users.create_user(
                name=args.admin_name,
                role=UserRole.ADMIN.value,
                current_user=None,
                email=args.admin_email,
            )
        return result

    if args.command == "users":
        if args.users_command == "list":
            return users.get_all_users()
        if args.users_command == "add":
            return users.create_user(
                name=args.name,
                role=args.role,
                current_user=_acting_user(services, args.acting_user),
                email=args.email,
                manager_id=args.manager_id,
                user_id=args.user_id,
            )
        actor = _acting_user(services, args.acting_user)
        if args.users_command == "update":
            fields: dict[str, Optional[str]] = {}
            if args.role is not None:
                fields["role"] = args.role
            if args.manager_id is not None:
                fields["manager_id"] = args.manager_id or None
            return users.update_user(args.user_id, UserUpdate(**fields), actor)
        return users.delete_user(args.user_id, actor)

    if args.command == "policy":
        if args.policy_command == "show":
            return policies.get_policy()
        try:
            changes = json.loads(args.changes)
        except json.JSONDecodeError as exc:
            return ServiceResult(
                success=False,
                error=f"Policy changes are not valid JSON: {exc}",
                error_code="INVALID_POLICY",
                status_code=400,
            )
        if not isinstance(changes, dict):
            return ServiceResult(
                success=False,
                error="Policy changes must be a JSON object.",
                error_code="INVALID_POLICY",
                status_code=400,
            )
        return policies.update_policy(changes, _acting_user(services, args.acting_user))

    if args.command == "submit":
        payload: dict[str, object] = {
            "user_id": args.user,
            "amount": args.amount,
            "currency": args.currency,
            "category": args.category,
            "description": args.description,
            "date": args.date,
            "receipt_url": args.receipt_url,
        }
        if args.base_amount is not None:
            payload["base_amount"] = args.base_amount
        return workflow.submit_expense(payload)

    if args.command == "decide":
        return workflow.record_decision(
            args.expense_id,
            DecisionRequest(
                approver_id=args.approver,
                action=DecisionAction(args.action),
                comment=args.comment,
            ),
        )

    if args.command == "pending":
        return workflow.get_pending_for_approver(args.approver)

    # expenses
    if args.expense_id:
        return workflow.get_expense(args.expense_id)
    if args.user:
        return workflow.get_expenses_for_user(args.user)
    if args.team:
        return workflow.get_team_expenses(args.team)
    return workflow.get_all_expenses()


def _open_database(config: AppConfig) -> DatabaseManager:
    db = DatabaseManager(
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )
    # db.close() is idempotent; this covers exits that skip the finally below.
    atexit.register(db.close)
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
    return db


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run one command and print its result as JSON."""
    args = _build_parser().parse_args(argv)
    logger: StructuredLogger = get_logger("main")

    config = get_config()
    db = _open_database(config)
    try:
        services = create_services(db=db, config=config)
        result = _dispatch(args, services)
    finally:
        db.close()

    print(result.model_dump_json(indent=2))
    if not result.success:
        logger.warning(
            "Command '%s' failed: %s (%s)", args.command, result.error, result.error_code,
        )
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
