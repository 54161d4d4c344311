"""
Capacity Enforcer.

A manager may hold at most `client_limit` non-REVOKED entries at the
moment a new entry is admitted. Lowering the limit never revokes anyone;
it only blocks further admissions until the count drops below it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import errors, models, store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitStatus:
    client_limit: int
    current_clients: int

    @property
    def remaining(self) -> int:
        return self.client_limit - self.current_clients


def active_count(relationship: Optional[models.ManagerClientRelationship]) -> int:
    """Number of entries whose status is anything but REVOKED."""
    if relationship is None:
        return 0
    return sum(1 for entry in relationship.clients if entry.is_live)


def limit_status(db: Session, relationship: Optional[models.ManagerClientRelationship]) -> LimitStatus:
    if relationship is None:
        return LimitStatus(client_limit=models.DEFAULT_CLIENT_LIMIT, current_clients=0)
    return LimitStatus(
        client_limit=relationship.client_limit,
        current_clients=store.count_live_entries(db, relationship.id),
    )


def ensure_capacity(db: Session, relationship: Optional[models.ManagerClientRelationship]) -> None:
    """Early, read-only check; `reserve_slot` is the authoritative one."""
    status = limit_status(db, relationship)
    if status.current_clients >= status.client_limit:
        raise errors.CapacityExceeded(limit=status.client_limit, current=status.current_clients)


def reserve_slot(db: Session, relationship: models.ManagerClientRelationship) -> None:
    """
    Take one slot on the manager row, only while `active_count < client_limit`.

    The comparison and the increment are one UPDATE; on Postgres the row
    lock it takes serialises concurrent admissions for the same manager
    until the surrounding transaction ends.
    """
    table = models.ManagerClientRelationship
    result = db.execute(
        update(table)
        .where(table.id == relationship.id, table.active_count < table.client_limit)
        .values(active_count=table.active_count + 1, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.refresh(relationship)
    if result.rowcount != 1:
        logger.info(
            "Admission refused at client limit",
            extra={
                "manager_id": relationship.manager_id,
                "client_limit": relationship.client_limit,
                "active_count": relationship.active_count,
            },
        )
        raise errors.CapacityExceeded(
            limit=relationship.client_limit,
            current=relationship.active_count,
        )


def release_slot(db: Session, relationship_id: str) -> None:
    table = models.ManagerClientRelationship
    db.execute(
        update(table)
        .where(table.id == relationship_id, table.active_count > 0)
        .values(active_count=table.active_count - 1, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
