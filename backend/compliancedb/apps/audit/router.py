from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from compliancedb.apps.accounts.models import Account, AccountRole
from compliancedb.database import get_read_db
from compliancedb.security import require_roles

from . import schemas, services


router = APIRouter(
    prefix="/audit",
    tags=["audit"],
)


# Read-only: audit rows are written by the services whose changes they describe.
@router.get("/", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
    current_user: Account = Depends(require_roles(AccountRole.SUPER_ADMIN)),
):
    return services.list_audit_events(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        start=start,
        end=end,
    )
