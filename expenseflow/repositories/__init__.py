"""
Repository Layer.

All SQL lives here.  Services depend on repositories, never on the raw
connection.
"""

from expenseflow.repositories.base_repository import BaseRepository
from expenseflow.repositories.expense_repository import ExpenseRepository
from expenseflow.repositories.policy_repository import PolicyRepository
from expenseflow.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "ExpenseRepository",
    "PolicyRepository",
    "UserRepository",
]
