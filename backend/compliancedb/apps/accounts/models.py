# backend/compliancedb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, Index, String

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """Account kinds relevant to record ownership.

    TRANSPORT_MANAGER accounts act on behalf of approved clients;
    STANDALONE_USER accounts own their operational records.
    """

    SUPER_ADMIN = "SUPER_ADMIN"                 # Platform operator
    TRANSPORT_MANAGER = "TRANSPORT_MANAGER"     # "manager"
    STANDALONE_USER = "STANDALONE_USER"         # "standalone" / client


MANAGER_ROLES = frozenset({AccountRole.TRANSPORT_MANAGER})
STANDALONE_ROLES = frozenset({AccountRole.STANDALONE_USER})


# ---------------------------------------------------------------------------
# ACCOUNT
# ---------------------------------------------------------------------------


class Account(Base):
    """
    A login-capable account.

    Operational records (vehicles, drivers, plans, ...) are always owned
    by a STANDALONE_USER account; managers reach them only through an
    approved client relationship.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_role_active", "role", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(64), nullable=True)

    role = Column(
        SAEnum(AccountRole, name="account_role_enum", native_enum=False),
        nullable=False,
        default=AccountRole.STANDALONE_USER,
        index=True,
    )
    hashed_password = Column(String(255), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def is_standalone(self) -> bool:
        return self.role in STANDALONE_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == AccountRole.SUPER_ADMIN

    def __repr__(self) -> str:
        return f"<Account id={self.id} email={self.email} role={self.role}>"
