# backend/compliancedb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Account records and their role (super admin, transport manager, standalone)
- The account directory used by client management (role lookups,
  provisioning, active manager listing)

Record ownership and manager delegation live in the client_management app.
"""

from . import models, schemas, services  # noqa: F401

__all__ = ["models", "schemas", "services"]
