"""
User Repository.

Data access for the directory.  ``get_all`` always returns users in
creation order so that "first user holding a role" is reproducible.
"""

from __future__ import annotations

from typing import Optional

from expenseflow.database import DatabaseManager
from expenseflow.logger import StructuredLogger
from expenseflow.models.directory import DirectorySnapshot
from expenseflow.models.user import User
from expenseflow.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository):
    """Data access layer for User entities."""

    TABLE = "users"

    _COLUMNS: str = "id, name, email, role, manager_id, created_at, updated_at"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, user_id: str) -> Optional[User]:
        row = self.sqlite.execute(
            f"SELECT {self._COLUMNS} FROM {self.TABLE} WHERE id = ?", (user_id,)
        ).fetchone()
        return User(**dict(row)) if row else None

    def get_all(self) -> list[User]:
        """Fetch all users in creation order."""
        rows = self.sqlite.execute(
            f"SELECT {self._COLUMNS} FROM {self.TABLE} ORDER BY created_at, rowid"
        ).fetchall()
        return [User(**dict(row)) for row in rows]

    def get_direct_reports(self, manager_id: str) -> list[User]:
        rows = self.sqlite.execute(
            f"SELECT {self._COLUMNS} FROM {self.TABLE} "
            "WHERE manager_id = ? ORDER BY created_at, rowid",
            (manager_id,),
        ).fetchall()
        return [User(**dict(row)) for row in rows]

    def snapshot(self) -> DirectorySnapshot:
        """Return a fresh, creation-ordered directory snapshot."""
        return DirectorySnapshot(self.get_all())

    def create(self, user: User) -> User:
        """Insert a new user and return it as stored."""
        created_at_str: Optional[str] = (
            user.created_at.isoformat() if user.created_at else None
        )
        with self._db.write_lock:
            self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE} (id, name, email, role, manager_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?,
                        COALESCE(?, CURRENT_TIMESTAMP),
                        CURRENT_TIMESTAMP)
                """,
                (
                    user.id,
                    user.name,
                    user.email,
                    user.role,
                    user.manager_id,
                    created_at_str,
                ),
            )
            self._commit()
        self._logger.info("User created: %s", user.id)
        return self.get_by_id(user.id) or user

    def update_assignment(
        self,
        user_id: str,
        role: str,
        manager_id: Optional[str],
    ) -> Optional[User]:
        """Set a user's role and manager.  Returns the updated user or ``None``."""
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET role = ?, manager_id = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (role, manager_id, user_id),
            )
            if cursor.rowcount == 0:
                return None
            self._commit()
        return self.get_by_id(user_id)

    def delete(self, user_id: str) -> bool:
        """Hard-delete a user.  Direct reports lose their manager assignment.

        Expenses are removed by the ``ON DELETE CASCADE`` foreign key; the
        user service additionally deletes them explicitly inside the same
        batch so the mirror receives the deletes.
        """
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE id = ?", (user_id,)
            )
            if cursor.rowcount == 0:
                return False
            self._commit()
        self._logger.info("User deleted: %s", user_id)
        return True
