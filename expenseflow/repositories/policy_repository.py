"""
Approval Policy Repository.

The policy is a singleton stored as one JSON document in the
``approval_policy`` table (row ``id = 1``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from expenseflow.database import DatabaseManager
from expenseflow.logger import StructuredLogger
from expenseflow.models.policy import ApprovalPolicy
from expenseflow.repositories.base_repository import BaseRepository

_POLICY_ROW_ID: int = 1


class PolicyRepository(BaseRepository):
    """Data access layer for the singleton :class:`ApprovalPolicy`."""

    TABLE = "approval_policy"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get(self) -> Optional[ApprovalPolicy]:
        """Return the stored policy, or ``None`` if none was saved yet.

        Raises:
            pydantic.ValidationError: If the stored document is corrupt.
        """
        row = self.sqlite.execute(
            f"SELECT document, updated_at FROM {self.TABLE} WHERE id = ?",
            (_POLICY_ROW_ID,),
        ).fetchone()
        if row is None:
            return None
        try:
            return ApprovalPolicy.model_validate_json(row["document"])
        except ValidationError:
            self._logger.error(
                "Stored approval policy document failed validation.", exc_info=True,
            )
            raise

    def save(self, policy: ApprovalPolicy) -> ApprovalPolicy:
        """Insert or replace the policy document."""
        stored = policy.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        document: str = stored.model_dump_json()
        with self._db.write_lock:
            self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE} (id, document, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    document   = excluded.document,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (_POLICY_ROW_ID, document),
            )
            self._commit()
        self._logger.info("Approval policy saved.")
        return stored
