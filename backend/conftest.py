from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"
os.environ.pop("NOTIFICATIONS_EMAIL_PROVIDER", None)
os.environ.pop("EMAIL_PROVIDER", None)

from compliancedb.database import Base  # noqa: E402
from compliancedb.apps.accounts import models as account_models  # noqa: E402
from compliancedb.apps.audit import models as audit_models  # noqa: E402
from compliancedb.apps.notifications import models as notification_models  # noqa: E402
from compliancedb.apps.client_management import models as cm_models  # noqa: E402

TABLES = [
    account_models.Account.__table__,
    audit_models.AuditEvent.__table__,
    notification_models.EmailLog.__table__,
    cm_models.ManagerClientRelationship.__table__,
    cm_models.ClientEntry.__table__,
]


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine, tables=TABLES)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, safe to use from several threads."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'compliance.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine, tables=TABLES)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def make_account(db_session):
    counter = {"n": 0}

    def _make(role=account_models.AccountRole.STANDALONE_USER, *, full_name=None, email=None, is_active=True):
        counter["n"] += 1
        n = counter["n"]
        account = account_models.Account(
            full_name=full_name or f"{role.value.title()} {n}",
            email=email or f"account{n}@example.com",
            phone=f"+44 7700 900{n:03d}",
            role=role,
            hashed_password="hash",
            is_active=is_active,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make
