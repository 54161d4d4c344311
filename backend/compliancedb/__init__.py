# backend/compliancedb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in compliancedb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models                    # accounts / roles
from .apps.audit import models as audit_models                          # audit trail
from .apps.notifications import models as notifications_models          # email log
from .apps.client_management import models as client_management_models  # manager/client relationships

__all__ = [
    "accounts_models",
    "audit_models",
    "notifications_models",
    "client_management_models",
]
