"""
JSON logging for ExpenseFlow.

Each component receives a ``StructuredLogger`` that writes one JSON object
per line to a stream (stdout unless told otherwise) and to a size-rotated
log file.  Context passed through ``extra=`` is kept under the ``extra``
key with its JSON types intact, which is how audit events reach the log.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

from expenseflow.config import get_config

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_FIELDS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}


class JSONFormatter(logging.Formatter):
    """Render a record as ``timestamp``/``level``/``logger_name``/``message`` JSON.

    ``extra`` and ``exception`` keys are added only when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }
        context = {
            key: value for key, value in vars(record).items() if key not in _RECORD_FIELDS
        }
        if context:
            payload["extra"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger:
    """Named JSON logger injected into repositories and services.

    :mod:`logging` caches loggers by name, so a second ``StructuredLogger``
    with the same name shares the handlers attached by the first.  Unset
    file options fall back to ``LOG_FILE``, ``LOG_MAX_BYTES`` and
    ``LOG_BACKUP_COUNT`` from :class:`~expenseflow.config.AppConfig`.
    """

    def __init__(
        self,
        name: str = "expenseflow",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        if log_file is None or max_bytes is None or backup_count is None:
            settings = get_config()
            log_file = log_file or settings.LOG_FILE
            max_bytes = settings.LOG_MAX_BYTES if max_bytes is None else max_bytes
            backup_count = settings.LOG_BACKUP_COUNT if backup_count is None else backup_count

        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s is not writable (%s); logging to the stream only.", path, exc,
            )
            return
        rotating.setFormatter(formatter)
        self._logger.addHandler(rotating)

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)


def get_logger(name: str = "expenseflow") -> StructuredLogger:
    """Return a ``StructuredLogger`` configured from application settings."""
    return StructuredLogger(name=name)
