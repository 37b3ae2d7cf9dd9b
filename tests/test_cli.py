"""Command-line front end wired against a temporary database."""

from __future__ import annotations

import sqlite3

import pytest

import main as cli
from expenseflow.config import AppConfig


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "cli.db"
    config = AppConfig(
        _env_file=None,
        SQLITE_PATH=str(path),
        LOG_FILE=str(tmp_path / "cli.log"),
    )
    monkeypatch.setattr(cli, "get_config", lambda: config)
    return path


def _rows(path, sql, params=()):
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def test_end_to_end_approval(db_path):
    assert cli.main(["init", "--admin-name", "Ada"]) == 0
    admin_id = _rows(db_path, "SELECT id FROM users")[0]["id"]

    assert cli.main(["users", "add", "--as", admin_id, "--id", "mgr",
                     "--name", "Max", "--role", "Manager"]) == 0
    assert cli.main(["users", "add", "--as", admin_id, "--id", "emp",
                     "--name", "Eve", "--manager-id", "mgr"]) == 0
    assert cli.main(["policy", "set", "--as", admin_id,
                     '{"sequential_chain": [{"role": "Manager", "step_name": "Direct Manager"}]}']) == 0

    assert cli.main(["submit", "--user", "emp", "--amount", "25", "--currency", "usd"]) == 0
    expense_id = _rows(db_path, "SELECT id FROM expenses")[0]["id"]

    assert cli.main(["pending", "--approver", "mgr"]) == 0
    assert cli.main(["decide", expense_id, "--approver", "emp", "--action", "Approved"]) == 1
    assert cli.main(["decide", expense_id, "--approver", "mgr", "--action", "Approved"]) == 0

    status = _rows(db_path, "SELECT status FROM expenses WHERE id = ?", (expense_id,))[0]["status"]
    assert status == "Approved"


def test_invalid_policy_json_fails(db_path):
    cli.main(["init", "--admin-name", "Ada"])
    admin_id = _rows(db_path, "SELECT id FROM users")[0]["id"]

    assert cli.main(["policy", "set", "--as", admin_id, "{not json"]) == 1
    assert cli.main(["policy", "set", "--as", admin_id, "[]"]) == 1


def test_show_missing_expense_fails(db_path):
    assert cli.main(["expenses", "--id", "missing"]) == 1
