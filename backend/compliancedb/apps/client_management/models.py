# backend/compliancedb/apps/client_management/models.py

from __future__ import annotations

import enum
import os
from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from compliancedb.apps.accounts import models as account_models  # noqa: F401  (Account mapper)
from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7

DEFAULT_CLIENT_LIMIT = int(os.getenv("CLIENT_LIMIT_DEFAULT", "4"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClientStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    LEAVE_REQUESTED = "LEAVE_REQUESTED"
    REMOVE_REQUESTED = "REMOVE_REQUESTED"
    REVOKED = "REVOKED"


LIVE_STATUSES = (
    ClientStatus.PENDING,
    ClientStatus.APPROVED,
    ClientStatus.LEAVE_REQUESTED,
    ClientStatus.REMOVE_REQUESTED,
)


class ManagerClientRelationship(Base):
    """
    One row per transport manager: the client limit and every client
    entry the manager has ever had.

    `active_count` mirrors the number of non-REVOKED entries and is the
    column the admission check conditions on, so that "admit only while
    below the limit" is a single-row conditional update.
    """

    __tablename__ = "client_management"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    manager_id = Column(
        String(36),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    client_limit = Column(Integer, nullable=False, default=DEFAULT_CLIENT_LIMIT)
    active_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    manager = relationship("Account", foreign_keys=[manager_id], lazy="joined")
    clients = relationship(
        "ClientEntry",
        back_populates="relationship_record",
        order_by="ClientEntry.position",
        lazy="selectin",
    )

    @property
    def entries_by_client(self) -> Dict[str, "ClientEntry"]:
        return {entry.client_id: entry for entry in self.clients}

    def __repr__(self) -> str:
        return (
            f"<ManagerClientRelationship manager={self.manager_id} "
            f"limit={self.client_limit} active={self.active_count}>"
        )


class ClientEntry(Base):
    """
    A client's membership in one manager's team.

    Entries are never deleted: leaving or being removed ends in REVOKED,
    and re-joining the same manager resets this row to PENDING.
    """

    __tablename__ = "client_entries"
    __table_args__ = (
        UniqueConstraint("relationship_id", "client_id", name="uq_client_entries_relationship_client"),
        # A client holds at most one live entry across every manager.
        Index(
            "uq_client_entries_live_client",
            "client_id",
            unique=True,
            postgresql_where=text("status <> 'REVOKED'"),
            sqlite_where=text("status <> 'REVOKED'"),
        ),
        Index("ix_client_entries_relationship_status", "relationship_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    relationship_id = Column(
        String(36),
        ForeignKey("client_management.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    status = Column(
        SAEnum(ClientStatus, name="client_status_enum", native_enum=False),
        nullable=False,
        default=ClientStatus.PENDING,
        index=True,
    )
    requested_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    relationship_record = relationship("ManagerClientRelationship", back_populates="clients")
    client = relationship("Account", foreign_keys=[client_id], lazy="joined")

    @property
    def manager_id(self) -> str:
        return self.relationship_record.manager_id

    @property
    def manager(self):
        return self.relationship_record.manager

    @property
    def is_live(self) -> bool:
        return self.status != ClientStatus.REVOKED

    def __repr__(self) -> str:
        return f"<ClientEntry client={self.client_id} status={self.status}>"
