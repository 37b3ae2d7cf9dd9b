"""
Shared Enumerations for ExpenseFlow Models.

StrEnum values compare equal to their string equivalents, so persisted
rows and callers passing plain strings (``"Approved"``) keep working.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Well-known directory roles.

    The role set is open-ended: ``User.role`` is a plain string and any
    value may appear in a policy template.  ``MANAGER`` is special in chain
    building: it resolves to the submitter's direct manager rather than to
    a user holding that role.
    """

    ADMIN = "Admin"
    MANAGER = "Manager"
    EMPLOYEE = "Employee"
    FINANCE = "Finance"
    DIRECTOR = "Director"


class ApprovalStatus(StrEnum):
    """Status of an expense and of each step in its approval chain.

    An expense is terminal once it leaves ``PENDING``.
    """

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class DecisionAction(StrEnum):
    """The two outcomes an approver may record on the current step."""

    APPROVED = "Approved"
    REJECTED = "Rejected"
