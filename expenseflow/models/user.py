"""
User Model.

Directory entry consumed by the chain builder.  Only ``id``, ``role`` and
``manager_id`` take part in approver resolution; the remaining fields are
carried for display and audit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class User(BaseModel):
    """Represents a directory user.

    ``role`` is an open-ended string (see :class:`UserRole` for the
    well-known values).  ``manager_id`` references another user and must
    never form a cycle; the user service enforces that on every write.
    """

    id: str
    name: str
    email: Optional[str] = None
    role: str = Field(default="Employee", min_length=1)
    manager_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("manager_id", mode="before")
    @classmethod
    def blank_manager_is_none(cls: type[User], v: object) -> Optional[object]:
        if isinstance(v, str) and not v.strip():
            return None
        return v
