"""
Expense Repository (the Expense Store).

Persists expense records with their embedded approval chain.  Decision
writes use an optimistic compare-and-swap on the ``version`` column,
guarded by ``status = 'Pending'``, so a load-decide-save cycle can never
silently overwrite a concurrent decision on the same expense.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from pydantic import TypeAdapter

from expenseflow.database import DatabaseManager
from expenseflow.exceptions import ConcurrentDecisionConflict, ExpenseNotFound
from expenseflow.logger import StructuredLogger
from expenseflow.models.enums import ApprovalStatus
from expenseflow.models.expense import ApprovalStep, Expense
from expenseflow.repositories.base_repository import BaseRepository

_CHAIN_ADAPTER: TypeAdapter[list[ApprovalStep]] = TypeAdapter(list[ApprovalStep])


class ExpenseRepository(BaseRepository):
    """Data access layer for Expense entities."""

    TABLE = "expenses"

    # Column allowlist; must match the Expense model fields.
    _COLUMNS: tuple[str, ...] = (
        "id",
        "user_id",
        "user_name",
        "amount",
        "currency",
        "base_amount",
        "base_currency",
        "category",
        "description",
        "date",
        "receipt_url",
        "status",
        "current_approver_index",
        "approval_chain",
        "submitted_at",
        "updated_at",
        "version",
    )

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, expense_id: str) -> Optional[Expense]:
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE id = ?", (expense_id,)
        ).fetchone()
        return self._parse_row(row) if row else None

    def load_for_decision(self, expense_id: str) -> Expense:
        """Load an expense for a decision cycle.

        The returned ``version`` is the value :meth:`save` must be given
        as ``expected_version``.

        Raises:
            ExpenseNotFound: If no expense has this id.
        """
        expense = self.get_by_id(expense_id)
        if expense is None:
            raise ExpenseNotFound(f"Expense '{expense_id}' not found.")
        return expense

    def list_all(self) -> list[Expense]:
        """All expenses, newest submission first."""
        rows = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} ORDER BY submitted_at DESC, rowid DESC"
        ).fetchall()
        return [self._parse_row(row) for row in rows]

    def list_pending(self) -> list[Expense]:
        """Pending expenses, oldest submission first."""
        rows = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE status = ? "
            "ORDER BY submitted_at ASC, rowid ASC",
            (str(ApprovalStatus.PENDING),),
        ).fetchall()
        return [self._parse_row(row) for row in rows]

    def list_by_submitters(self, user_ids: list[str]) -> list[Expense]:
        """Expenses submitted by any of *user_ids*, newest first."""
        if not user_ids:
            return []
        placeholders = ", ".join("?" for _ in user_ids)
        rows = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE user_id IN ({placeholders}) "
            "ORDER BY submitted_at DESC, rowid DESC",
            list(user_ids),
        ).fetchall()
        return [self._parse_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, expense: Expense) -> Expense:
        """Insert a new expense."""
        data = self._serialize(expense)
        columns_sql = ", ".join(self._COLUMNS)
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        with self._db.write_lock:
            self.sqlite.execute(
                f"INSERT INTO {self.TABLE} ({columns_sql}) VALUES ({placeholders})",
                [data[col] for col in self._COLUMNS],
            )
            self._commit()
        self._logger.info("Expense created: %s", expense.id)
        return expense

    def save(self, expense: Expense, expected_version: int) -> Expense:
        """Persist a decided expense if nobody else wrote it first.

        The update only matches when the stored row still has
        *expected_version* and is still ``Pending``.  On success the
        stored version is bumped and the returned copy carries it.

        Raises:
            ExpenseNotFound: If the expense no longer exists.
            ConcurrentDecisionConflict: If the stored row moved on.
        """
        now = datetime.now(timezone.utc)
        saved = expense.model_copy(
            update={"version": expected_version + 1, "updated_at": now},
        )
        data = self._serialize(saved)

        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET status = ?,
                    current_approver_index = ?,
                    approval_chain = ?,
                    updated_at = ?,
                    version = version + 1
                WHERE id = ? AND version = ? AND status = ?
                """,
                (
                    data["status"],
                    data["current_approver_index"],
                    data["approval_chain"],
                    data["updated_at"],
                    expense.id,
                    expected_version,
                    str(ApprovalStatus.PENDING),
                ),
            )
            if cursor.rowcount == 0:
                exists = self.sqlite.execute(
                    f"SELECT 1 FROM {self.TABLE} WHERE id = ?", (expense.id,)
                ).fetchone()
                if exists is None:
                    raise ExpenseNotFound(f"Expense '{expense.id}' not found.")
                self._logger.warning(
                    "Optimistic version check failed for expense %s (expected v%d).",
                    expense.id,
                    expected_version,
                )
                raise ConcurrentDecisionConflict(
                    f"Expense '{expense.id}' was modified by another decision. "
                    "Reload it and try again."
                )
            self._commit()
        return saved

    def delete_by_user(self, user_id: str) -> int:
        """Delete every expense submitted by *user_id*.  Returns the count."""
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE user_id = ?", (user_id,)
            )
            self._commit()
        if cursor.rowcount:
            self._logger.info(
                "Deleted %d expense(s) submitted by user %s.", cursor.rowcount, user_id,
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _parse_row(self, row: sqlite3.Row) -> Expense:
        data: dict[str, object] = dict(row)
        raw_chain = data.get("approval_chain") or "[]"
        data["approval_chain"] = _CHAIN_ADAPTER.validate_json(str(raw_chain))
        return Expense(**data)

    def _serialize(self, expense: Expense) -> dict[str, object]:
        data: dict[str, object] = expense.model_dump(mode="json", exclude={"approval_chain"})
        data["approval_chain"] = _CHAIN_ADAPTER.dump_json(expense.approval_chain).decode("utf-8")
        return data
