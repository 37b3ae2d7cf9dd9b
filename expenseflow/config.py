"""
Application Configuration.

Pydantic Settings model for the ExpenseFlow approval engine.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Local store ---
    SQLITE_PATH: str = "expenseflow_local.db"

    # --- Default approval policy (seeded on first read) ---
    DEFAULT_BASE_CURRENCY: str = "USD"
    DEFAULT_SEQUENTIAL_CHAIN: list[dict[str, str]] = Field(default_factory=lambda: [
        {"role": "Manager", "step_name": "Direct Manager"},
        {"role": "Finance", "step_name": "Finance Reviewer"},
        {"role": "Director", "step_name": "Director/CFO"},
    ])
    DEFAULT_PERCENTAGE_RULE_ENABLED: bool = True
    DEFAULT_PERCENTAGE_THRESHOLD: int = Field(default=60, ge=1, le=100)

    # --- Logging ---
    LOG_FILE: str = "expenseflow.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Warn when no ``.env`` file is present.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        """
        _log = logging.getLogger("expenseflow.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path skips the lock while
    first initialisation stays thread-safe.  Prefer constructor injection
    of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
