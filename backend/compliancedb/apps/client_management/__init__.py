# backend/compliancedb/apps/client_management/__init__.py
"""
Client management app

Responsible for:
- Manager/client relationships: join, leave and removal requests, and
  direct client provisioning by a manager
- Per-manager client limits
- Deciding whether a requester may touch a client-owned record

Domain apps call `ownership.check_ownership` / `ownership.ownership_filter`
(or depend on `dependencies.require_approved_client`) instead of building
their own owner filters.
"""

from . import models, ownership, services  # noqa: F401

__all__ = ["models", "ownership", "services"]
