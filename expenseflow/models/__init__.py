from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for short imports:
    from expenseflow.models import Expense, ApprovalStep, ApprovalPolicy, User
    from expenseflow.models import ApprovalStatus, DecisionAction, UserRole
"""

from expenseflow.models.enums import ApprovalStatus, DecisionAction, UserRole
from expenseflow.models.user import User
from expenseflow.models.directory import DirectorySnapshot
from expenseflow.models.policy import (
    ApprovalPolicy,
    ChainStepTemplate,
    OverrideRule,
    PercentageRule,
)
from expenseflow.models.expense import ApprovalStep, Expense, ExpenseSubmission

__all__ = [
    "ApprovalPolicy",
    "ApprovalStatus",
    "ApprovalStep",
    "ChainStepTemplate",
    "DecisionAction",
    "DirectorySnapshot",
    "Expense",
    "ExpenseSubmission",
    "OverrideRule",
    "PercentageRule",
    "User",
    "UserRole",
]
