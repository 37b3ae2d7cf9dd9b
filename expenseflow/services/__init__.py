"""
Business Logic Services Package.

Services depend on the Repository layer for data access; the approval
state machine and chain builder are plain function modules they call.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the application layer (CLI /
request handlers) can consume without knowing the dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from expenseflow.config import AppConfig
from expenseflow.database import DatabaseManager
from expenseflow.logger import get_logger
from expenseflow.repositories.expense_repository import ExpenseRepository
from expenseflow.repositories.policy_repository import PolicyRepository
from expenseflow.repositories.user_repository import UserRepository
from expenseflow.services.expense_workflow import ExpenseWorkflowService
from expenseflow.services.policy_service import PolicyService
from expenseflow.services.users import UserService
from expenseflow.utils.locking import KeyedLock


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    user_service: UserService
    policy_service: PolicyService
    expense_workflow_service: ExpenseWorkflowService


def create_services(db: DatabaseManager, config: AppConfig) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry point calls it once at startup.

    Args:
        db: Initialised DatabaseManager with the schema applied.
        config: Application configuration.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories
    # ------------------------------------------------------------------
    user_repo = UserRepository(db=db, logger=logger)
    policy_repo = PolicyRepository(db=db, logger=logger)
    expense_repo = ExpenseRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    user_service = UserService(
        repo=user_repo,
        expense_repo=expense_repo,
        policy_repo=policy_repo,
        db=db,
        logger=logger,
    )
    policy_service = PolicyService(
        repo=policy_repo,
        user_repo=user_repo,
        config=config,
        db=db,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 3. Orchestration
    # ------------------------------------------------------------------
    expense_workflow_service = ExpenseWorkflowService(
        expense_repo=expense_repo,
        user_repo=user_repo,
        policy_service=policy_service,
        db=db,
        logger=logger,
        locks=KeyedLock(),
    )

    return ServiceContainer(
        user_service=user_service,
        policy_service=policy_service,
        expense_workflow_service=expense_workflow_service,
    )
