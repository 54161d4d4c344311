from __future__ import annotations

from datetime import timedelta

import bcrypt
import pytest
from fastapi import HTTPException
from jose import jwt

from compliancedb import security
from compliancedb.apps.accounts import services as account_services
from compliancedb.apps.accounts.models import AccountRole


def test_create_account_normalises_and_hashes(db_session):
    account = account_services.create_account(
        db_session,
        full_name="  Pat Operator ",
        email=" Pat@Example.COM ",
        password="s3cret-pass",
        role=AccountRole.TRANSPORT_MANAGER,
        phone="  ",
    )
    db_session.commit()

    assert account.email == "pat@example.com"
    assert account.full_name == "Pat Operator"
    assert account.phone is None
    assert account.is_manager and not account.is_standalone
    assert security.verify_password("s3cret-pass", account.hashed_password)
    assert not security.verify_password("wrong", account.hashed_password)
    assert account_services.get_account_role(db_session, account.id) == AccountRole.TRANSPORT_MANAGER
    assert account_services.get_account_role(db_session, "missing") is None


def test_create_account_rejects_duplicate_email(db_session, make_account):
    make_account(email="dup@example.com")

    with pytest.raises(account_services.DuplicateAccountError):
        account_services.create_account(
            db_session,
            full_name="Dup",
            email="DUP@example.com",
            password="pw",
        )


def test_verify_password_accepts_legacy_bcrypt():
    legacy = bcrypt.hashpw(b"old-password", bcrypt.gensalt(rounds=4)).decode()

    assert security.verify_password("old-password", legacy)
    assert not security.verify_password("other", legacy)
    assert not security.verify_password("old-password", "plaintext")


def test_access_token_resolves_current_user(db_session, make_account):
    account = make_account(AccountRole.TRANSPORT_MANAGER)
    token = security.create_access_token(data={"sub": account.id, "role": account.role.value})

    assert security.get_current_user(token=token, db=db_session).id == account.id

    expired = security.create_access_token(data={"sub": account.id}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(HTTPException) as excinfo:
        security.get_current_user(token=expired, db=db_session)
    assert excinfo.value.status_code == 401

    forged = jwt.encode({"sub": account.id}, "not-the-key", algorithm=security.JWT_ALGORITHM)
    with pytest.raises(HTTPException):
        security.get_current_user(token=forged, db=db_session)


def test_require_roles_lets_super_admin_through(make_account):
    manager_only = security.require_roles(AccountRole.TRANSPORT_MANAGER)
    admin = make_account(AccountRole.SUPER_ADMIN)
    standalone = make_account()

    assert manager_only(current_user=admin) is admin
    with pytest.raises(HTTPException) as excinfo:
        manager_only(current_user=standalone)
    assert excinfo.value.status_code == 403

    with pytest.raises(ValueError):
        security.require_roles("PILOT")


def test_inactive_account_is_rejected(make_account):
    retired = make_account(is_active=False)

    with pytest.raises(HTTPException) as excinfo:
        security.get_current_active_user(current_user=retired)

    assert excinfo.value.status_code == 400
