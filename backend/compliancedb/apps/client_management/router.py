from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from compliancedb.apps.accounts import models as account_models
from compliancedb.apps.accounts import schemas as account_schemas
from compliancedb.database import get_db
from compliancedb.security import get_current_active_user, require_roles

from . import errors, schemas, services

router = APIRouter(
    prefix="/client-management",
    tags=["client-management"],
)

AccountRole = account_models.AccountRole

MANAGER_ONLY = require_roles(AccountRole.TRANSPORT_MANAGER)
STANDALONE_ONLY = require_roles(AccountRole.STANDALONE_USER)
ADMIN_ONLY = require_roles(AccountRole.SUPER_ADMIN)


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except errors.ClientManagementError as exc:
        raise errors.to_http_exception(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Manager side
# ---------------------------------------------------------------------------


@router.post(
    "/clients",
    response_model=schemas.ClientEntryWithClient,
    status_code=status.HTTP_201_CREATED,
)
def create_client(
    payload: schemas.CreateClientRequest,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    with _service_errors():
        return services.create_client(
            db,
            manager=current_user,
            full_name=payload.full_name,
            email=payload.email,
            phone=payload.phone,
        )


@router.get("/clients", response_model=schemas.ClientPage)
def list_my_clients(
    page_no: int = 1,
    show_per_page: int = services.DEFAULT_PAGE_SIZE,
    search_key: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    with _service_errors():
        page = services.list_clients(
            db,
            manager_id=current_user.id,
            page_no=page_no,
            show_per_page=show_per_page,
            search=search_key,
        )
    return schemas.ClientPage.model_validate(page)


@router.get("/transport-manager/{manager_id}/clients", response_model=schemas.ClientPage)
def list_manager_clients(
    manager_id: str,
    page_no: int = 1,
    show_per_page: int = services.DEFAULT_PAGE_SIZE,
    search_key: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(ADMIN_ONLY),
):
    with _service_errors():
        page = services.list_clients(
            db,
            manager_id=manager_id,
            page_no=page_no,
            show_per_page=show_per_page,
            search=search_key,
        )
    return schemas.ClientPage.model_validate(page)


@router.get("/join-requests", response_model=List[schemas.ClientEntryWithClient])
def list_join_requests(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    return services.list_pending_join_requests(db, manager_id=current_user.id)


@router.put("/join-requests/{client_id}", response_model=schemas.ClientEntryRead)
def decide_join_request(
    client_id: str,
    payload: schemas.JoinRequestUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    with _service_errors():
        return services.decide_join_request(
            db,
            manager=current_user,
            client_id=client_id,
            decision=payload.decision,
        )


@router.get("/client-limit", response_model=schemas.LimitStatusRead)
def get_client_limit(
    manager_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    # Administrators may look at any manager; managers only at themselves.
    if current_user.role != AccountRole.SUPER_ADMIN or not manager_id:
        manager_id = current_user.id
    limit = services.get_limit_status(db, manager_id=manager_id)
    return schemas.LimitStatusRead.model_validate(limit)


@router.get("/leave-requests", response_model=List[schemas.ClientEntryWithClient])
def list_leave_requests(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    return services.list_leave_requests(db, manager_id=current_user.id)


@router.patch("/leave-requests/{client_id}", response_model=schemas.ClientEntryRead)
def decide_leave_request(
    client_id: str,
    payload: schemas.ActionRequest,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    with _service_errors():
        return services.decide_leave_request(
            db,
            manager=current_user,
            client_id=client_id,
            action=payload.action,
        )


@router.patch("/request-remove/{client_id}", response_model=schemas.ClientEntryRead)
def request_removal(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(MANAGER_ONLY),
):
    with _service_errors():
        return services.request_removal(db, manager=current_user, client_id=client_id)


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------


@router.get("/managers", response_model=List[account_schemas.ManagerSummary])
def list_managers(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(get_current_active_user),
):
    return services.list_active_managers(db)


@router.post(
    "/request-join-team",
    response_model=schemas.ClientEntryRead,
    status_code=status.HTTP_201_CREATED,
)
def request_join_team(
    payload: schemas.JoinTeamRequest,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(STANDALONE_ONLY),
):
    with _service_errors():
        return services.request_join(db, client=current_user, manager_id=payload.manager_id)


@router.get("/manager", response_model=schemas.ManagerAssignmentRead)
def get_my_manager(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(STANDALONE_ONLY),
):
    with _service_errors():
        return services.get_manager_for_client(db, client_id=current_user.id)


@router.patch("/request-leave", response_model=schemas.ClientEntryRead)
def request_leave(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(STANDALONE_ONLY),
):
    with _service_errors():
        return services.request_leave(db, client=current_user)


@router.get("/remove-request", response_model=Optional[schemas.ManagerAssignmentRead])
def get_remove_request(
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(STANDALONE_ONLY),
):
    return services.get_pending_removal(db, client_id=current_user.id)


@router.patch("/remove-request", response_model=schemas.ClientEntryRead)
def decide_remove_request(
    payload: schemas.ActionRequest,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(STANDALONE_ONLY),
):
    with _service_errors():
        return services.decide_removal(db, client=current_user, action=payload.action)


@router.delete("/clients/{client_id}/remove-manager", response_model=schemas.ClientEntryRead)
def remove_manager(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(get_current_active_user),
):
    with _service_errors():
        return services.revoke_client(db, actor=current_user, client_id=client_id)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@router.put("/transport-manager/{manager_id}/client-limit", response_model=schemas.ClientLimitRead)
def set_client_limit(
    manager_id: str,
    payload: schemas.ClientLimitUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.Account = Depends(ADMIN_ONLY),
):
    with _service_errors():
        record = services.set_limit(
            db,
            actor=current_user,
            manager_id=manager_id,
            new_limit=payload.client_limit,
        )
    return schemas.ClientLimitRead(manager_id=record.manager_id, client_limit=record.client_limit)
