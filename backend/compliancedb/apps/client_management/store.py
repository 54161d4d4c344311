"""
Relationship Store.

Every write to `client_management` / `client_entries` goes through this
module, and every write is a conditional UPDATE (or an INSERT guarded by
unique constraints) so that a concurrent change is detected by the
database instead of being overwritten:

- entry transitions match on the entry id *and* the status the caller
  observed;
- admissions reserve a slot with a single-row conditional update on the
  manager row (see `capacity.reserve_slot`);
- the partial unique index on live `client_id`s rejects a client
  joining two managers at once.

Functions here flush but never commit; the service layer owns the
transaction.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from compliancedb.apps.accounts import models as account_models
from compliancedb.apps.workflow import Transition

from . import errors, models

logger = logging.getLogger(__name__)

ClientStatus = models.ClientStatus

ALREADY_ASSIGNED_MESSAGE = "You are already assigned to a Transport Manager. Leave the current team first."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Manager rows
# ---------------------------------------------------------------------------


def get_relationship(db: Session, manager_id: str) -> Optional[models.ManagerClientRelationship]:
    # Counters move through Core UPDATEs, so always overwrite the identity map copy.
    return (
        db.query(models.ManagerClientRelationship)
        .populate_existing()
        .filter(models.ManagerClientRelationship.manager_id == manager_id)
        .first()
    )


def ensure_relationship(
    db: Session,
    manager_id: str,
    *,
    client_limit: Optional[int] = None,
) -> models.ManagerClientRelationship:
    """
    Return the manager's row, creating it with the default limit if needed.

    Creation commits on its own: an empty manager row is harmless, and
    committing it up front keeps the later admission a single conditional
    write. Call this before staging any other change on the session.
    """
    existing = get_relationship(db, manager_id)
    if existing is not None:
        return existing

    record = models.ManagerClientRelationship(manager_id=manager_id, active_count=0)
    if client_limit is not None:
        record.client_limit = client_limit
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first.
        db.rollback()
        existing = get_relationship(db, manager_id)
        if existing is None:
            raise
        return existing
    db.refresh(record)
    logger.info("Client management record created", extra={"manager_id": manager_id})
    return record


def write_limit(db: Session, relationship_id: str, new_limit: int) -> None:
    db.execute(
        update(models.ManagerClientRelationship)
        .where(models.ManagerClientRelationship.id == relationship_id)
        .values(client_limit=new_limit, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Entry lookups
# ---------------------------------------------------------------------------


def get_entry(db: Session, relationship_id: str, client_id: str) -> Optional[models.ClientEntry]:
    return (
        db.query(models.ClientEntry)
        .filter(
            models.ClientEntry.relationship_id == relationship_id,
            models.ClientEntry.client_id == client_id,
        )
        .first()
    )


def get_entry_for_manager(db: Session, manager_id: str, client_id: str) -> Optional[models.ClientEntry]:
    return (
        db.query(models.ClientEntry)
        .join(models.ManagerClientRelationship)
        .filter(
            models.ManagerClientRelationship.manager_id == manager_id,
            models.ClientEntry.client_id == client_id,
        )
        .first()
    )


def find_live_entry_for_client(db: Session, client_id: str) -> Optional[models.ClientEntry]:
    """The client's live entry under any manager, if there is one."""
    return (
        db.query(models.ClientEntry)
        .options(joinedload(models.ClientEntry.relationship_record))
        .filter(
            models.ClientEntry.client_id == client_id,
            models.ClientEntry.status.in_(models.LIVE_STATUSES),
        )
        .order_by(models.ClientEntry.requested_at.desc())
        .first()
    )


def find_entry_for_client_in_status(
    db: Session,
    client_id: str,
    status: models.ClientStatus,
) -> Optional[models.ClientEntry]:
    return (
        db.query(models.ClientEntry)
        .options(joinedload(models.ClientEntry.relationship_record))
        .filter(
            models.ClientEntry.client_id == client_id,
            models.ClientEntry.status == status,
        )
        .first()
    )


def has_entry_in_status(
    db: Session,
    *,
    manager_id: str,
    client_id: str,
    statuses: Sequence[models.ClientStatus],
) -> bool:
    stmt = (
        select(models.ClientEntry.id)
        .join(models.ManagerClientRelationship)
        .where(
            models.ManagerClientRelationship.manager_id == manager_id,
            models.ClientEntry.client_id == client_id,
            models.ClientEntry.status.in_(list(statuses)),
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def list_entries_in_status(
    db: Session,
    *,
    manager_id: str,
    status: models.ClientStatus,
) -> List[models.ClientEntry]:
    return (
        db.query(models.ClientEntry)
        .join(models.ManagerClientRelationship)
        .filter(
            models.ManagerClientRelationship.manager_id == manager_id,
            models.ClientEntry.status == status,
        )
        .order_by(models.ClientEntry.requested_at.asc())
        .all()
    )


def page_live_entries(
    db: Session,
    *,
    manager_id: str,
    page_no: int,
    show_per_page: int,
    search: Optional[str] = None,
) -> dict:
    """Live entries of one manager with the client account, searchable and paginated."""
    query = (
        db.query(models.ClientEntry)
        .join(models.ManagerClientRelationship)
        .join(account_models.Account, account_models.Account.id == models.ClientEntry.client_id)
        .filter(
            models.ManagerClientRelationship.manager_id == manager_id,
            models.ClientEntry.status != ClientStatus.REVOKED,
        )
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                account_models.Account.full_name.ilike(pattern),
                account_models.Account.email.ilike(pattern),
                account_models.Account.phone.ilike(pattern),
            )
        )

    total = query.count()
    rows = (
        query.order_by(models.ClientEntry.position.asc())
        .offset((page_no - 1) * show_per_page)
        .limit(show_per_page)
        .all()
    )
    return {
        "data": rows,
        "total_data": total,
        "total_pages": math.ceil(total / show_per_page) if show_per_page else 0,
    }


def count_live_entries(db: Session, relationship_id: str) -> int:
    return (
        db.query(func.count(models.ClientEntry.id))
        .filter(
            models.ClientEntry.relationship_id == relationship_id,
            models.ClientEntry.status != ClientStatus.REVOKED,
        )
        .scalar()
        or 0
    )


# ---------------------------------------------------------------------------
# Conditional writes
# ---------------------------------------------------------------------------


def _transition_values(transition: Transition, now: datetime) -> dict:
    values = {"status": ClientStatus(transition.to_state), "updated_at": now}
    if transition.to_state == ClientStatus.PENDING.value:
        values["requested_at"] = now
        values["approved_at"] = None
    if transition.stamps_approval:
        values["approved_at"] = now
        if transition.admits:
            values["requested_at"] = now
    return values


def _raise_for_missed_update(
    db: Session,
    entry_id: str,
    expected_status: models.ClientStatus,
    transition: Transition,
) -> None:
    current = db.execute(
        select(models.ClientEntry.status).where(models.ClientEntry.id == entry_id)
    ).scalar_one_or_none()
    logger.warning(
        "Conditional entry update matched no row",
        extra={
            "entry_id": entry_id,
            "expected_status": expected_status.value,
            "current_status": current.value if current is not None else None,
            "action": transition.action,
        },
    )
    if current is None:
        raise errors.NotFound("Client entry no longer exists")
    if current.value not in transition.from_states:
        raise errors.InvalidTransition(
            f"Cannot {transition.action} a client entry that is now {current.value}",
            detail=[{"field": "status", "reason": f"{current.value} is not a valid starting status"}],
        )
    raise errors.ConflictingWrite("The client entry changed while this request was being processed")


def apply_transition(
    db: Session,
    entry: models.ClientEntry,
    *,
    expected_status: models.ClientStatus,
    transition: Transition,
    now: Optional[datetime] = None,
) -> models.ClientEntry:
    """
    Move `entry` to the transition's target status, only if it is still in
    `expected_status`.

    When the update matches no row the entry is re-read: a vanished row is
    NotFound, a status the transition cannot start from is InvalidTransition,
    anything else is ConflictingWrite. A live-client unique violation (the
    client joined another manager meanwhile) is AlreadyAssigned.
    """
    now = now or _utcnow()
    entry_id = entry.id
    client_id = entry.client_id
    try:
        result = db.execute(
            update(models.ClientEntry)
            .where(
                models.ClientEntry.id == entry_id,
                models.ClientEntry.status == expected_status,
            )
            .values(**_transition_values(transition, now))
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        logger.info(
            "Client entry update rejected by uniqueness constraint",
            extra={"entry_id": entry_id, "client_id": client_id, "action": transition.action},
        )
        raise errors.AlreadyAssigned(ALREADY_ASSIGNED_MESSAGE) from exc
    if result.rowcount != 1:
        _raise_for_missed_update(db, entry_id, expected_status, transition)
    db.flush()
    db.refresh(entry)
    return entry


def insert_entry(
    db: Session,
    relationship: models.ManagerClientRelationship,
    *,
    client_id: str,
    transition: Transition,
    now: Optional[datetime] = None,
) -> models.ClientEntry:
    """
    Append a brand-new entry. A unique violation means the client already
    holds a live entry somewhere (or this manager row gained one
    concurrently); the caller's transaction must be rolled back.
    """
    now = now or _utcnow()
    position = (
        db.query(func.count(models.ClientEntry.id))
        .filter(models.ClientEntry.relationship_id == relationship.id)
        .scalar()
        or 0
    )
    entry = models.ClientEntry(
        relationship_id=relationship.id,
        client_id=client_id,
        position=position,
        **_transition_values(transition, now),
    )
    entry.requested_at = now
    # A failed flush expires `relationship`; keep what the log needs.
    relationship_id, manager_id = relationship.id, relationship.manager_id
    db.add(entry)
    try:
        db.flush()
    except IntegrityError as exc:
        logger.info(
            "Client entry insert rejected by uniqueness constraint",
            extra={"relationship_id": relationship_id, "manager_id": manager_id, "client_id": client_id},
        )
        raise errors.AlreadyAssigned(ALREADY_ASSIGNED_MESSAGE) from exc
    return entry


def write_active_count(db: Session, relationship_id: str, active_count: int) -> None:
    db.execute(
        update(models.ManagerClientRelationship)
        .where(models.ManagerClientRelationship.id == relationship_id)
        .values(active_count=active_count, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )


def clients_with_multiple_live_entries(db: Session) -> List[str]:
    """Client ids holding more than one non-REVOKED entry across all managers."""
    rows = (
        db.query(models.ClientEntry.client_id)
        .filter(models.ClientEntry.status != ClientStatus.REVOKED)
        .group_by(models.ClientEntry.client_id)
        .having(func.count(models.ClientEntry.id) > 1)
        .all()
    )
    return [row[0] for row in rows]
