"""
Account Directory.

Resolves accounts to roles and activity status, provisions accounts on
behalf of managers, and lists the managers a standalone account may ask
to join. Client management consumes these helpers; it never queries the
accounts table directly.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from compliancedb.security import get_password_hash

from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DuplicateAccountError(ValueError):
    """Raised when an account with the same email already exists."""


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _normalise_email(value: str) -> str:
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_account(db: Session, account_id: str) -> Optional[models.Account]:
    if account_id is None:
        return None
    return (
        db.query(models.Account)
        .filter(models.Account.id == str(account_id).strip())
        .first()
    )


def get_account_by_email(db: Session, email: str) -> Optional[models.Account]:
    return (
        db.query(models.Account)
        .filter(models.Account.email == _normalise_email(email))
        .first()
    )


def get_account_role(db: Session, account_id: str) -> Optional[models.AccountRole]:
    account = get_account(db, account_id)
    return account.role if account else None


def list_active_managers(db: Session) -> List[models.Account]:
    return (
        db.query(models.Account)
        .filter(
            models.Account.role == models.AccountRole.TRANSPORT_MANAGER,
            models.Account.is_active.is_(True),
        )
        .order_by(models.Account.full_name.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


def create_account(
    db: Session,
    *,
    full_name: str,
    email: str,
    password: str,
    role: models.AccountRole = models.AccountRole.STANDALONE_USER,
    phone: Optional[str] = None,
    is_email_verified: bool = False,
) -> models.Account:
    """
    Add a new active account to the session.

    The row is flushed, not committed: callers that provision an account
    as part of a larger unit of work commit or roll back both together.
    """
    email = _normalise_email(email)
    if get_account_by_email(db, email):
        raise DuplicateAccountError("A user already exists with this email")

    account = models.Account(
        full_name=full_name.strip(),
        email=email,
        phone=(phone or "").strip() or None,
        role=role,
        hashed_password=get_password_hash(password),
        is_active=True,
        is_email_verified=is_email_verified,
    )
    db.add(account)
    db.flush()
    logger.info("Account provisioned", extra={"account_id": account.id, "role": role.value})
    return account
