"""
Centralized SQLite Schema Initialization.

Defines the canonical schema for the ExpenseFlow local database and
provides a single entry-point -- :func:`initialize_schema` -- that creates
all required tables idempotently.  A single-row ``schema_version`` table
records the applied version.

Tables:
    - ``users``: the directory (id, name, role, manager_id).  Creation
      order (``created_at``, then ``rowid``) is the stable iteration order
      used for role-based approver resolution.
    - ``approval_policy``: single-row JSON document (``id = 1``).
    - ``expenses``: expense records with the embedded approval chain as
      JSON and an optimistic ``version`` counter.
    - ``audit_log``: persistent audit trail of administrative and
      approval actions.

Usage::

    from expenseflow.logger import StructuredLogger
    from expenseflow.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3

from expenseflow.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- directory -------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT UNIQUE,
        role TEXT NOT NULL DEFAULT 'Employee',
        manager_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CHECK (manager_id IS NULL OR manager_id <> id)
    )
    """,
    # -- singleton approval policy ---------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS approval_policy (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        document TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- expenses ---------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS expenses (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        user_name TEXT NOT NULL DEFAULT '',
        amount TEXT NOT NULL,
        currency TEXT NOT NULL,
        base_amount TEXT NOT NULL,
        base_currency TEXT NOT NULL,
        category TEXT DEFAULT '',
        description TEXT DEFAULT '',
        date TEXT,
        receipt_url TEXT,
        status TEXT NOT NULL DEFAULT 'Pending'
               CHECK (status IN ('Pending', 'Approved', 'Rejected')),
        current_approver_index INTEGER NOT NULL DEFAULT 0,
        approval_chain TEXT NOT NULL DEFAULT '[]',
        submitted_at TEXT NOT NULL,
        updated_at TEXT,
        version INTEGER NOT NULL DEFAULT 1
    )
    """,
]

_INDEX_DEFINITIONS: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)",
    "CREATE INDEX IF NOT EXISTS idx_users_manager_id ON users(manager_id)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_status ON expenses(status)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_user_id ON expenses(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_expenses_submitted_at ON expenses(submitted_at)",
]


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    row = conn.execute(
        "SELECT version FROM schema_version WHERE id = 1"
    ).fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Safe to call on every startup.  A fresh database gets every table and
    index in one atomic transaction; on failure the transaction is rolled
    back and the error re-raised so the next startup retries.

    Args:
        conn: An open SQLite connection.
        logger: Structured logger for progress output.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info(
        "Upgrading schema from version %d to %d …",
        current,
        CURRENT_SCHEMA_VERSION,
    )

    try:
        for ddl in _TABLE_DEFINITIONS:
            conn.execute(ddl)
        for stmt in _INDEX_DEFINITIONS:
            conn.execute(stmt)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(
            "Schema initialisation failed; rolled back to version %d.", current,
        )
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
