from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .models import AccountRole


class AccountRead(BaseModel):
    """Public view of an account; never carries credential fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: AccountRole
    is_active: bool
    created_at: datetime


class ManagerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
