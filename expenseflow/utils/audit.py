"""
Structured Audit Logging Utility.

Every workflow state change (submission, approval, rejection, policy edit,
directory edit) is logged as a structured JSON object and, when a
database is supplied, persisted to the ``audit_log`` table.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from expenseflow.database import DatabaseManager
from expenseflow.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Flat scalar values only; nested structures belong in their own entity.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    db: Optional[DatabaseManager] = None,
) -> AuditEvent:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Persistence failures are logged as warnings and never propagated: the
    state change being audited has already been committed.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"SUBMIT"``, ``"APPROVE"``,
            ``"REJECT"``, ``"UPDATE_POLICY"``).
        entity_type: Type of entity affected (``"Expense"``, ``"User"``,
            ``"ApprovalPolicy"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the user who performed the action.
        details: Optional additional context (e.g. old/new values).
        db: Optional database manager; when given, the event is also
            written to ``audit_log`` under the write lock.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT %s %s/%s", action, entity_type, entity_id, extra={"audit": event.model_dump()},
    )

    if db is not None:
        try:
            with db.write_lock:
                persist_audit_event(db.sqlite, event)
                if not db.in_batch:
                    db.sqlite.commit()
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    """Write a validated audit event to the ``audit_log`` table.

    Does **not** commit; the caller owns the transaction.
    """
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details, default=str),
        ),
    )
