from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

AuditEvent = models.AuditEvent


def create_audit_event(db: Session, *, data: schemas.AuditEventCreate) -> AuditEvent:
    """Stage one audit row in the caller's transaction; the caller commits."""
    values: Dict[str, Any] = data.model_dump(exclude={"metadata", "occurred_at"})
    event = AuditEvent(**values, metadata_json=data.metadata)
    if data.occurred_at:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    actor_account_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[AuditEvent]:
    """
    Record an audit event.

    Pass `critical=True` when the event must land together with the change
    it describes: the failure is re-raised so the whole transaction rolls
    back. Otherwise the failure is logged and None returned.
    """
    payload = schemas.AuditEventCreate(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_account_id=actor_account_id,
        before=before,
        after=after,
        correlation_id=correlation_id,
        metadata=metadata,
    )
    try:
        return create_audit_event(db, data=payload)
    except Exception:
        if critical:
            logger.error(
                "Critical audit event could not be written",
                extra={"entity_type": entity_type, "entity_id": entity_id, "action": action},
            )
            raise
        logger.warning(
            "Skipped audit event after write failure",
            extra={"entity_type": entity_type, "entity_id": entity_id, "action": action},
        )
    return None


def list_audit_events(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Sequence[AuditEvent]:
    """Newest first; ties on `occurred_at` fall back to id order (uuid7 is time ordered)."""
    criteria: List[Any] = []
    if entity_type:
        criteria.append(AuditEvent.entity_type == entity_type)
    if entity_id:
        criteria.append(AuditEvent.entity_id == entity_id)
    if start is not None:
        criteria.append(AuditEvent.occurred_at >= start)
    if end is not None:
        criteria.append(AuditEvent.occurred_at <= end)

    return (
        db.query(AuditEvent)
        .filter(*criteria)
        .order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .all()
    )
