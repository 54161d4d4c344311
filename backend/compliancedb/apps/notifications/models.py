from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Index, JSON, String, Text

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


class EmailStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class EmailLog(Base):
    """One row per outbound email, whatever the provider did with it."""

    __tablename__ = "email_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    template_key = Column(String(128), nullable=False)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    # Sensitive keys are masked before they reach this column.
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True)

    status = Column(SAEnum(EmailStatus, name="email_status_enum", native_enum=False, length=32), nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_email_logs_account_created", "account_id", "created_at"),
        Index("ix_email_logs_status", "status"),
        Index("ix_email_logs_template_recipient", "template_key", "recipient"),
    )

    def __repr__(self) -> str:
        return f"<EmailLog {self.template_key} -> {self.recipient} [{self.status}]>"
