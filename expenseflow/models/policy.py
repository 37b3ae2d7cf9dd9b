"""
Approval Policy Model.

Company-wide configuration read by the chain builder and the approval
state machine.  One policy document exists per deployment; it is stored
as a single JSON row and re-read before every submission and decision.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from expenseflow.models.enums import UserRole


class ChainStepTemplate(BaseModel):
    """One step of the sequential chain template.

    ``role == "Manager"`` resolves to the submitter's direct manager; any
    other role resolves to the first directory user holding it.  Setting
    ``approver_id`` names the approver explicitly and bypasses role
    lookup.
    """

    role: str = Field(min_length=1)
    step_name: str = Field(min_length=1)
    approver_id: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("role", "step_name")
    @classmethod
    def strip_text(cls: type[ChainStepTemplate], v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @property
    def is_manager_step(self) -> bool:
        return self.approver_id is None and self.role == UserRole.MANAGER


class PercentageRule(BaseModel):
    """Auto-approve once approved steps / chain length * 100 >= threshold."""

    enabled: bool = False
    threshold: int = Field(default=0, ge=0, le=100)

    @model_validator(mode="after")
    def _threshold_in_range_when_enabled(self) -> "PercentageRule":
        if self.enabled and not 1 <= self.threshold <= 100:
            raise ValueError(
                "Percentage threshold must be between 1 and 100 when the rule is enabled."
            )
        return self


class OverrideRule(BaseModel):
    """A designated approver whose single approval finalizes the claim."""

    enabled: bool = False
    approver_id: Optional[str] = None

    @model_validator(mode="after")
    def _approver_required_when_enabled(self) -> "OverrideRule":
        if self.enabled and not self.approver_id:
            raise ValueError(
                "An override approver must be selected when the override rule is enabled."
            )
        return self


class ApprovalPolicy(BaseModel):
    """The singleton approval policy document."""

    base_currency: str = Field(default="USD", min_length=3, max_length=3)
    sequential_chain: list[ChainStepTemplate] = Field(default_factory=list)
    percentage_rule: PercentageRule = Field(default_factory=PercentageRule)
    override_rule: OverrideRule = Field(default_factory=OverrideRule)
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("base_currency", mode="before")
    @classmethod
    def upper_currency(cls: type[ApprovalPolicy], v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def is_override_approver(self, approver_id: str) -> bool:
        """``True`` when the override rule is on and names *approver_id*."""
        return self.override_rule.enabled and self.override_rule.approver_id == approver_id

    def references_user(self, user_id: str) -> bool:
        """``True`` when an explicit chain step or the enabled override names *user_id*."""
        if self.is_override_approver(user_id):
            return True
        return any(step.approver_id == user_id for step in self.sequential_chain)
