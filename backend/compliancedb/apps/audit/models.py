from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, JSON, String, desc

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(Base):
    """
    Who changed which relationship or limit, and how.

    `before` / `after` hold the relevant slice of state on either side of
    the change. Rows are written once and never touched again.
    """

    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    actor_account_id = Column(
        String(36),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # e.g. "client_management.entry" / "<manager_id>:<client_id>" / "approve_join"
    entity_type = Column(String(64), nullable=False)
    entity_id = Column(String(128), nullable=False)
    action = Column(String(64), nullable=False)

    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_audit_events_action", "entity_type", "action"),
        Index("ix_audit_events_time_desc", desc("occurred_at")),
    )

    def __repr__(self) -> str:
        return f"<AuditEvent {self.entity_type}:{self.entity_id} {self.action}>"
