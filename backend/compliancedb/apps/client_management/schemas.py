from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from compliancedb.apps.accounts.schemas import AccountRead

from .models import ClientStatus


class JoinDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RequestAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateClientRequest(BaseModel):
    full_name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class JoinTeamRequest(BaseModel):
    manager_id: str = Field(min_length=1)


class JoinRequestUpdate(BaseModel):
    decision: JoinDecision


class ActionRequest(BaseModel):
    action: RequestAction


class ClientLimitUpdate(BaseModel):
    client_limit: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ClientEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    client_id: str
    manager_id: str
    status: ClientStatus
    requested_at: datetime
    approved_at: Optional[datetime] = None


class ClientEntryWithClient(ClientEntryRead):
    client: Optional[AccountRead] = None


class ClientPage(BaseModel):
    data: List[ClientEntryWithClient]
    total_data: int
    total_pages: int


class ManagerAssignmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    manager_id: str
    manager: AccountRead
    status: ClientStatus
    requested_at: datetime
    approved_at: Optional[datetime] = None


class LimitStatusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    client_limit: int
    current_clients: int
    remaining: int


class ClientLimitRead(BaseModel):
    manager_id: str
    client_limit: int
