"""
Base Service Class.

Minimal base class standardizing the logger pattern and the translation
of workflow errors into :class:`ServiceResult` envelopes.
"""

from __future__ import annotations

from expenseflow.exceptions import ExpenseWorkflowError
from expenseflow.logger import StructuredLogger
from expenseflow.models.service_models import ServiceResult


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @staticmethod
    def _error_result(exc: ExpenseWorkflowError) -> ServiceResult:
        return ServiceResult(
            success=False,
            error=exc.message,
            error_code=exc.code,
            status_code=exc.status_code,
        )

    @staticmethod
    def _forbidden(message: str) -> ServiceResult:
        return ServiceResult(
            success=False,
            error=message,
            error_code="FORBIDDEN",
            status_code=403,
        )
