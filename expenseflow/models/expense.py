"""
Expense Model.

An expense claim with its embedded approval chain.  The chain is built
once at submission time, has a fixed length afterwards and is only ever
mutated through :func:`expenseflow.services.approval_engine.decide`.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from expenseflow.models.enums import ApprovalStatus


class ApprovalStep(BaseModel):
    """One position in an expense's approval chain."""

    step_name: str
    approver_id: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    comment: Optional[str] = None
    decided_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ExpenseSubmission(BaseModel):
    """Validated input for a new expense claim.

    ``base_amount`` is the amount already converted to the company base
    currency by the caller.  When omitted the original amount is carried
    over unchanged.
    """

    user_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    base_amount: Optional[Decimal] = Field(default=None, ge=0)
    category: str = ""
    description: str = ""
    date: Optional[str] = None
    receipt_url: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls: type[ExpenseSubmission], v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class Expense(BaseModel):
    """Represents a persisted expense record."""

    id: str
    user_id: str
    user_name: str = ""
    amount: Decimal
    currency: str
    base_amount: Decimal
    base_currency: str
    category: str = ""
    description: str = ""
    date: Optional[str] = None
    receipt_url: Optional[str] = None

    # Workflow state
    status: ApprovalStatus = ApprovalStatus.PENDING
    current_approver_index: int = Field(default=0, ge=0)
    approval_chain: list[ApprovalStep] = Field(default_factory=list)

    # Metadata
    submitted_at: datetime
    updated_at: Optional[datetime] = None
    version: int = Field(default=1, ge=1)

    model_config = {"from_attributes": True}

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    @property
    def current_step(self) -> Optional[ApprovalStep]:
        """The step awaiting a decision, or ``None`` once the chain is consumed."""
        if not self.is_pending or self.current_approver_index >= len(self.approval_chain):
            return None
        return self.approval_chain[self.current_approver_index]

    @property
    def current_approver_id(self) -> Optional[str]:
        step = self.current_step
        return step.approver_id if step is not None else None

    @property
    def approved_count(self) -> int:
        return sum(1 for step in self.approval_chain if step.status == ApprovalStatus.APPROVED)
