"""Shared utilities for the ExpenseFlow engine.

Convenience re-exports so consumers can import directly from
``expenseflow.utils``.
"""

from expenseflow.utils.audit import AuditEvent, log_audit_event
from expenseflow.utils.locking import KeyedLock

__all__ = [
    "AuditEvent",
    "KeyedLock",
    "log_audit_event",
]
