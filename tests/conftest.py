"""Shared pytest fixtures: a throwaway SQLite store and wired services."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterator, Optional

import pytest

from expenseflow.config import AppConfig
from expenseflow.database import DatabaseManager
from expenseflow.logger import StructuredLogger
from expenseflow.models.enums import ApprovalStatus, UserRole
from expenseflow.models.expense import ApprovalStep, Expense
from expenseflow.models.policy import ApprovalPolicy, ChainStepTemplate, OverrideRule, PercentageRule
from expenseflow.models.user import User
from expenseflow.repositories.expense_repository import ExpenseRepository
from expenseflow.repositories.policy_repository import PolicyRepository
from expenseflow.repositories.user_repository import UserRepository
from expenseflow.schema import initialize_schema
from expenseflow.services.expense_workflow import ExpenseWorkflowService
from expenseflow.services.policy_service import PolicyService
from expenseflow.services.users import UserService
from expenseflow.utils.locking import KeyedLock


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def logger(tmp_path_factory: pytest.TempPathFactory) -> StructuredLogger:
    log_dir = tmp_path_factory.mktemp("logs")
    return StructuredLogger(
        name="expenseflow.tests",
        stream=io.StringIO(),
        log_file=str(log_dir / "tests.log"),
    )


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(_env_file=None)


@pytest.fixture
def db(tmp_path, logger: StructuredLogger) -> Iterator[DatabaseManager]:
    manager = DatabaseManager(
        sqlite_path=tmp_path / "expenseflow_test.db",
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def user_repo(db: DatabaseManager, logger: StructuredLogger) -> UserRepository:
    return UserRepository(db=db, logger=logger)


@pytest.fixture
def policy_repo(db: DatabaseManager, logger: StructuredLogger) -> PolicyRepository:
    return PolicyRepository(db=db, logger=logger)


@pytest.fixture
def expense_repo(db: DatabaseManager, logger: StructuredLogger) -> ExpenseRepository:
    return ExpenseRepository(db=db, logger=logger)


@pytest.fixture
def user_service(user_repo, expense_repo, policy_repo, db, logger) -> UserService:
    return UserService(
        repo=user_repo, expense_repo=expense_repo, policy_repo=policy_repo, db=db, logger=logger,
    )


@pytest.fixture
def policy_service(policy_repo, user_repo, config, db, logger) -> PolicyService:
    return PolicyService(
        repo=policy_repo, user_repo=user_repo, config=config, db=db, logger=logger,
    )


@pytest.fixture
def workflow(expense_repo, user_repo, policy_service, db, logger) -> ExpenseWorkflowService:
    return ExpenseWorkflowService(
        expense_repo=expense_repo,
        user_repo=user_repo,
        policy_service=policy_service,
        db=db,
        logger=logger,
        locks=KeyedLock(),
    )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

@pytest.fixture
def directory_users(user_repo: UserRepository) -> dict[str, User]:
    """admin, manager, finance, director and an employee reporting to manager."""
    created: dict[str, User] = {}
    for user in (
        User(id="admin", name="Ada Admin", role=UserRole.ADMIN),
        User(id="mgr", name="Max Manager", role=UserRole.MANAGER),
        User(id="fin", name="Fay Finance", role=UserRole.FINANCE),
        User(id="dir", name="Dee Director", role=UserRole.DIRECTOR),
        User(id="emp", name="Eve Employee", role=UserRole.EMPLOYEE, manager_id="mgr"),
    ):
        created[user.id] = user_repo.create(user)
    return created


@pytest.fixture
def save_policy(policy_repo: PolicyRepository) -> Callable[..., ApprovalPolicy]:
    """Store a policy built from keyword overrides of a rules-off default."""

    def _save(
        chain: Optional[list[tuple[str, str]]] = None,
        percentage: Optional[int] = None,
        override_approver: Optional[str] = None,
    ) -> ApprovalPolicy:
        steps = chain if chain is not None else [
            ("Manager", "Direct Manager"),
            ("Finance", "Finance Reviewer"),
            ("Director", "Director/CFO"),
        ]
        return policy_repo.save(
            ApprovalPolicy(
                base_currency="USD",
                sequential_chain=[
                    ChainStepTemplate(role=role, step_name=name) for role, name in steps
                ],
                percentage_rule=PercentageRule(
                    enabled=percentage is not None, threshold=percentage or 0,
                ),
                override_rule=OverrideRule(
                    enabled=override_approver is not None, approver_id=override_approver,
                ),
            )
        )

    return _save


# ---------------------------------------------------------------------------
# Pure-model builders
# ---------------------------------------------------------------------------

def make_policy(
    percentage: Optional[int] = None,
    override_approver: Optional[str] = None,
) -> ApprovalPolicy:
    return ApprovalPolicy(
        base_currency="USD",
        percentage_rule=PercentageRule(enabled=percentage is not None, threshold=percentage or 0),
        override_rule=OverrideRule(
            enabled=override_approver is not None, approver_id=override_approver,
        ),
    )


def make_expense(approver_ids: list[str], expense_id: str = "exp-1") -> Expense:
    """A fresh Pending expense whose chain is one step per approver id."""
    return Expense(
        id=expense_id,
        user_id="emp",
        user_name="Eve Employee",
        amount=Decimal("100.00"),
        currency="USD",
        base_amount=Decimal("100.00"),
        base_currency="USD",
        category="Travel",
        description="Taxi",
        status=ApprovalStatus.PENDING,
        current_approver_index=0,
        approval_chain=[
            ApprovalStep(step_name=f"Step {i + 1}", approver_id=approver_id)
            for i, approver_id in enumerate(approver_ids)
        ],
        submitted_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
