"""
Periodic consistency sweep for manager/client relationships.

Run from cron: `python -m compliancedb.jobs.relationship_sweep`.

- Recomputes each manager's `active_count` from its entries and repairs
  drift, writing an audit event per repair.
- Reports clients holding more than one live entry. The partial unique
  index prevents this on Postgres and SQLite; stores created without it
  can still end up here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from compliancedb.apps.audit import services as audit_services
from compliancedb.apps.client_management import models as cm_models
from compliancedb.apps.client_management import services as cm_services
from compliancedb.apps.client_management import store
from compliancedb.database import WriteSessionLocal

logger = logging.getLogger(__name__)


def run(db: Optional[Session] = None) -> Dict[str, Any]:
    owns_session = db is None
    db = db or WriteSessionLocal()
    summary: Dict[str, Any] = {
        "managers_checked": 0,
        "counts_repaired": 0,
        "duplicate_clients": [],
    }
    try:
        records = (
            db.query(cm_models.ManagerClientRelationship)
            .populate_existing()
            .order_by(cm_models.ManagerClientRelationship.created_at.asc())
            .all()
        )
        for record in records:
            summary["managers_checked"] += 1
            actual = store.count_live_entries(db, record.id)
            if actual == record.active_count:
                continue

            previous = record.active_count
            store.write_active_count(db, record.id, actual)
            audit_services.log_event(
                db,
                actor_account_id=None,
                entity_type=cm_services.CLIENT_LIMIT_ENTITY,
                entity_id=record.manager_id,
                action="active_count_repaired",
                before={"active_count": previous},
                after={"active_count": actual},
                metadata={"job": "relationship_sweep"},
            )
            logger.warning(
                "Repaired client active count",
                extra={"manager_id": record.manager_id, "previous": previous, "actual": actual},
            )
            summary["counts_repaired"] += 1

        duplicates = store.clients_with_multiple_live_entries(db)
        for client_id in duplicates:
            logger.error(
                "Client holds more than one live relationship",
                extra={"client_id": client_id},
            )
        summary["duplicate_clients"] = duplicates

        db.commit()
        return summary
    except Exception:
        db.rollback()
        raise
    finally:
        if owns_session:
            db.close()


if __name__ == "__main__":
    result = run()
    print(
        f"Relationship sweep checked {result['managers_checked']} managers, "
        f"repaired {result['counts_repaired']}, "
        f"found {len(result['duplicate_clients'])} clients with duplicate live entries"
    )
