"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from expenseflow.models.enums import DecisionAction

T = TypeVar("T")

__all__ = [
    "DecisionRequest",
    "ServiceResult",
    "UserUpdate",
]


class DecisionRequest(BaseModel):
    """One approver's decision on the current step of an expense."""

    approver_id: str = Field(min_length=1)
    action: DecisionAction
    comment: Optional[str] = None


class UserUpdate(BaseModel):
    """Admin edit of a directory entry: role and/or manager reassignment.

    Only fields explicitly set are applied; passing ``manager_id=None``
    clears the assignment, omitting it keeps the current manager.
    """

    role: Optional[str] = Field(default=None, min_length=1)
    manager_id: Optional[str] = None


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    All public service methods return this, giving the request layer a
    consistent contract.  ``error_code`` carries the stable machine code of
    the domain error (e.g. ``"WRONG_APPROVER"``) so callers can branch on
    it without parsing messages.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 200
