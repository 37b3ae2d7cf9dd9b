"""
Directory Administration Service.

Admin operations on the user directory that the approval workflow reads:
listing, creation, role/manager reassignment and deletion.

Architectural notes:
    - Reassignments only affect chains built afterwards; chains of
      in-flight expenses are never rebuilt.
    - Deleting a user deletes every expense they submitted in the same
      batch as the user row.  Users the policy names explicitly (override
      approver or a fixed chain step) cannot be deleted until the policy
      stops naming them.
    - Manager assignments are checked for self-reference and cycles
      against a fresh directory snapshot.
"""

from __future__ import annotations

import uuid
from typing import Optional

from expenseflow.database import DatabaseManager
from expenseflow.exceptions import (
    ExpenseWorkflowError,
    ManagerCycleError,
    UserNotFound,
    UserReferencedByPolicy,
)
from expenseflow.logger import StructuredLogger
from expenseflow.models.enums import UserRole
from expenseflow.models.service_models import ServiceResult, UserUpdate
from expenseflow.models.user import User
from expenseflow.repositories.expense_repository import ExpenseRepository
from expenseflow.repositories.policy_repository import PolicyRepository
from expenseflow.repositories.user_repository import UserRepository
from expenseflow.services.base_service import BaseService
from expenseflow.utils.audit import log_audit_event


class UserService(BaseService):
    """Service layer for admin user management operations."""

    def __init__(
        self,
        repo: UserRepository,
        expense_repo: ExpenseRepository,
        policy_repo: PolicyRepository,
        db: DatabaseManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._expense_repo = expense_repo
        self._policy_repo = policy_repo
        self._db = db

    def get_all_users(self) -> ServiceResult:
        """Fetch all users in creation order."""
        try:
            users: list[User] = self._repo.get_all()
            return ServiceResult(
                success=True,
                data=[user.model_dump(mode="json") for user in users],
            )
        except Exception as exc:
            self._logger.error("Failed to fetch users: %s", exc)
            return ServiceResult(
                success=False,
                error=f"Database error fetching users: {exc}",
                status_code=500,
            )

    def get_user(self, user_id: str) -> Optional[User]:
        return self._repo.get_by_id(user_id)

    def create_user(
        self,
        name: str,
        role: str,
        current_user: Optional[User],
        email: Optional[str] = None,
        manager_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ServiceResult:
        """
        Add a user to the directory.

        The very first user must be an Admin and may be created without an
        acting user; every later user must be created by an Admin.
        """
        try:
            directory = self._repo.snapshot()

            if len(directory) == 0:
                if role != UserRole.ADMIN:
                    return self._forbidden("The first user must be an Admin.")
            elif current_user is None or current_user.role != UserRole.ADMIN:
                return self._forbidden("New users must be created by an Admin.")

            new_id = user_id or str(uuid.uuid4())
            if new_id in directory:
                return ServiceResult(
                    success=False,
                    error=f"User '{new_id}' already exists.",
                    error_code="USER_EXISTS",
                    status_code=400,
                )
            if manager_id is not None and manager_id not in directory:
                raise UserNotFound(f"Manager '{manager_id}' not found.")

            user = self._repo.create(
                User(id=new_id, name=name, email=email, role=role, manager_id=manager_id)
            )

            log_audit_event(
                logger=self._logger,
                action="CREATE_USER",
                entity_type="User",
                entity_id=user.id,
                user_id=current_user.id if current_user is not None else user.id,
                details={"role": user.role, "manager_id": user.manager_id},
                db=self._db,
            )
            return ServiceResult(success=True, data=user.model_dump(mode="json"), status_code=201)
        except ExpenseWorkflowError as exc:
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error("Error creating user: %s", exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Could not create user: {exc}",
                status_code=500,
            )

    def update_user(
        self,
        user_id: str,
        update: UserUpdate,
        current_user: User,
    ) -> ServiceResult:
        """Reassign a user's role and/or manager.

        Only fields explicitly set on *update* are applied.
        """
        if current_user.role != UserRole.ADMIN:
            return self._forbidden("Only Admin users can update users.")

        try:
            directory = self._repo.snapshot()
            user = directory.get(user_id)
            if user is None:
                raise UserNotFound("User not found.")

            new_role: str = update.role if update.role is not None else user.role
            new_manager_id: Optional[str] = (
                update.manager_id if "manager_id" in update.model_fields_set else user.manager_id
            )

            if new_manager_id is not None:
                if new_manager_id not in directory:
                    raise UserNotFound(f"Manager '{new_manager_id}' not found.")
                if directory.would_create_cycle(user_id, new_manager_id):
                    raise ManagerCycleError(
                        f"Assigning manager '{new_manager_id}' to '{user_id}' "
                        "would create a reporting cycle."
                    )

            updated = self._repo.update_assignment(user_id, new_role, new_manager_id)
            if updated is None:
                raise UserNotFound("User not found.")

            log_audit_event(
                logger=self._logger,
                action="UPDATE_USER",
                entity_type="User",
                entity_id=user_id,
                user_id=current_user.id,
                details={
                    "old_role": user.role,
                    "new_role": updated.role,
                    "old_manager_id": user.manager_id,
                    "new_manager_id": updated.manager_id,
                },
                db=self._db,
            )
            return ServiceResult(success=True, data=updated.model_dump(mode="json"))
        except ExpenseWorkflowError as exc:
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error("Repository update failed for %s: %s", user_id, exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Could not update user: {exc}",
                status_code=500,
            )

    def delete_user(self, user_id: str, current_user: User) -> ServiceResult:
        """Delete a user and every expense they submitted."""
        if current_user.role != UserRole.ADMIN:
            return self._forbidden("Only Admin users can delete users.")
        if user_id == current_user.id:
            return ServiceResult(
                success=False,
                error="Admins cannot delete their own account.",
                error_code="SELF_DELETE",
                status_code=400,
            )

        try:
            with self._db.batch_write():
                policy = self._policy_repo.get()
                if policy is not None and policy.references_user(user_id):
                    raise UserReferencedByPolicy(
                        f"User '{user_id}' is named in the approval policy; "
                        "update the policy before deleting them."
                    )
                deleted_expenses = self._expense_repo.delete_by_user(user_id)
                if not self._repo.delete(user_id):
                    raise UserNotFound("User not found.")

            log_audit_event(
                logger=self._logger,
                action="DELETE_USER",
                entity_type="User",
                entity_id=user_id,
                user_id=current_user.id,
                details={"deleted_expenses": deleted_expenses},
                db=self._db,
            )
            return ServiceResult(
                success=True,
                data={"message": "User deleted successfully", "deleted_expenses": deleted_expenses},
            )
        except ExpenseWorkflowError as exc:
            return self._error_result(exc)
        except Exception as exc:
            self._logger.error("Error deleting user %s: %s", user_id, exc, exc_info=True)
            return ServiceResult(
                success=False,
                error=f"Could not delete user: {exc}",
                status_code=500,
            )
