# backend/compliancedb/alembic/env.py

from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context

# Make `compliancedb` importable when alembic runs from backend/.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

from compliancedb import database  # noqa: E402
from compliancedb.apps.accounts import models as _accounts  # noqa: F401, E402
from compliancedb.apps.audit import models as _audit  # noqa: F401, E402
from compliancedb.apps.client_management import models as _client_management  # noqa: F401, E402
from compliancedb.apps.notifications import models as _notifications  # noqa: F401, E402

target_metadata = database.Base.metadata
MIGRATION_OPTIONS = {"target_metadata": target_metadata, "compare_type": True}


def _offline_url() -> str:
    # alembic.ini ships a driver:// placeholder; the environment wins over it.
    configured = (config.get_main_option("sqlalchemy.url") or "").strip()
    if configured and not configured.startswith("driver://"):
        return configured
    return database.WRITE_DB_URL


def run_migrations_offline() -> None:
    context.configure(url=_offline_url(), literal_binds=True, **MIGRATION_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with database.write_engine.connect() as connection:
        # SQLite cannot ALTER most constraints in place.
        context.configure(
            connection=connection,
            render_as_batch=connection.dialect.name == "sqlite",
            **MIGRATION_OPTIONS,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
