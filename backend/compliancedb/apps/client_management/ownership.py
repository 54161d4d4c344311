"""
Ownership Resolver.

Every domain module (vehicles, drivers, plans, training, policies, ...)
asks this module whether a requester may touch a record before it reads
or writes it:

- a standalone account may touch records it owns or created;
- a manager must name the standalone account it acts for, must hold an
  APPROVED entry for that account, and the record must belong to it.

Records without an owning standalone id fall back to creator equality.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from sqlalchemy import Column, ForeignKey, String, false, or_
from sqlalchemy.orm import Session, declared_attr

from compliancedb.apps.accounts import models as account_models

from . import errors, models, store


# ---------------------------------------------------------------------------
# Requester variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StandaloneRequester:
    account_id: str
    kind: str = "standalone"


@dataclass(frozen=True)
class ManagerRequester:
    account_id: str
    target_standalone_id: Optional[str] = None
    kind: str = "manager"


Requester = Union[StandaloneRequester, ManagerRequester]


def requester_for(
    account: account_models.Account,
    standalone_id: Optional[str] = None,
) -> Requester:
    """Role dispatch at the boundary: one explicit variant per account kind."""
    if account.role == account_models.AccountRole.STANDALONE_USER:
        return StandaloneRequester(account_id=account.id)
    if account.role == account_models.AccountRole.TRANSPORT_MANAGER:
        return ManagerRequester(account_id=account.id, target_standalone_id=standalone_id)
    raise errors.Forbidden("Only transport managers and standalone users own operational records")


@dataclass(frozen=True)
class OwnershipDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = OwnershipDecision(True)


# ---------------------------------------------------------------------------
# Record shape
# ---------------------------------------------------------------------------


class OwnedRecordMixin:
    """Columns every client-owned domain model carries."""

    @declared_attr
    def standalone_id(cls):
        return Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def created_by_id(cls):
        return Column(String(36), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)


def _get_value(obj: Any, *keys: str) -> Any:
    for key in keys:
        value = obj.get(key) if isinstance(obj, dict) else getattr(obj, key, None)
        if value is not None:
            return str(value)
    return None


def record_owner_ids(record: Any) -> Tuple[Optional[str], Optional[str]]:
    """(owning standalone id, creator id) for an ORM row, dict or plain object."""
    return (
        _get_value(record, "standalone_id", "stand_alone_id"),
        _get_value(record, "created_by_id", "created_by"),
    )


def _belongs_to(record: Any, account_id: str) -> bool:
    standalone_id, created_by_id = record_owner_ids(record)
    if standalone_id is None:
        return created_by_id == account_id
    return account_id in (standalone_id, created_by_id)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def is_approved_client(db: Session, manager_id: str, client_id: str) -> bool:
    if not manager_id or not client_id:
        return False
    return store.has_entry_in_status(
        db,
        manager_id=manager_id,
        client_id=client_id,
        statuses=(models.ClientStatus.APPROVED,),
    )


def check_ownership(db: Session, requester: Requester, record: Any) -> OwnershipDecision:
    if isinstance(requester, StandaloneRequester):
        if _belongs_to(record, requester.account_id):
            return ALLOW
        return OwnershipDecision(False, "not_owner")

    target = requester.target_standalone_id
    if not target:
        return OwnershipDecision(False, "missing_standalone_id")
    if not is_approved_client(db, requester.account_id, target):
        return OwnershipDecision(False, "client_not_approved")
    if not _belongs_to(record, target):
        return OwnershipDecision(False, "not_owner")
    return ALLOW


def ownership_filter(db: Session, model: Any, requester: Requester):
    """
    SQL clause selecting the rows of `model` the requester may see.

    For list queries, in place of per-module ownership filters.
    """
    if isinstance(requester, StandaloneRequester):
        owner_id = requester.account_id
    else:
        owner_id = requester.target_standalone_id
        if not owner_id or not is_approved_client(db, requester.account_id, owner_id):
            return false()
    return or_(
        model.standalone_id == owner_id,
        model.created_by_id == owner_id,
    )
