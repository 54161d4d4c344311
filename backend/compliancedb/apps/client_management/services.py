"""
Relationship Service.

Orchestrates the manager/client operations: checks the caller's role,
resolves the transition, performs the conditional writes through
`store`/`capacity` and records the audit event, all in one transaction.
Failures are raised as `errors.ClientManagementError` subclasses after the
session has been rolled back.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Union

from sqlalchemy.orm import Session

from compliancedb.apps.accounts import models as account_models
from compliancedb.apps.accounts import services as account_services
from compliancedb.apps.audit import services as audit_services
from compliancedb.apps.notifications import service as notification_service
from compliancedb.apps.workflow import CLIENT_ENTRY, Transition, TransitionError, resolve_transition
from compliancedb.apps.workflow import record_transition
from compliancedb.apps.workflow import registry as workflow_registry
from compliancedb.utils.identifiers import generate_password

from . import capacity, errors, models, store
from .schemas import JoinDecision, RequestAction

logger = logging.getLogger(__name__)

AccountRole = account_models.AccountRole
ClientStatus = models.ClientStatus

CLIENT_LIMIT_ENTITY = "client_management.limit"

DEFAULT_PAGE_SIZE = int(os.getenv("CLIENT_LIST_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("CLIENT_LIST_MAX_PAGE_SIZE", "100"))
CLIENT_PASSWORD_BYTES = int(os.getenv("CLIENT_PASSWORD_BYTES", "5"))

CREDENTIALS_TEMPLATE = "client_credentials"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _unit_of_work(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _actor_kind(account: account_models.Account) -> str:
    if account.role == AccountRole.SUPER_ADMIN:
        return workflow_registry.ADMIN
    if account.role == AccountRole.TRANSPORT_MANAGER:
        return workflow_registry.MANAGER
    return workflow_registry.CLIENT


def _require_manager(account: account_models.Account) -> None:
    if account.role != AccountRole.TRANSPORT_MANAGER:
        raise errors.Forbidden("Only Transport Managers can perform this action")


def _require_standalone(account: account_models.Account) -> None:
    if account.role != AccountRole.STANDALONE_USER:
        raise errors.Forbidden("Only standalone users can perform this action")


def _resolve(action: str, actor: str, from_state: Optional[ClientStatus]) -> Transition:
    try:
        return resolve_transition(
            CLIENT_ENTRY,
            action=action,
            actor=actor,
            from_state=from_state.value if from_state is not None else None,
        )
    except TransitionError as exc:
        raise errors.from_transition_error(exc) from exc


def _entity_id(manager_id: str, client_id: str) -> str:
    return f"{manager_id}:{client_id}"


def _record(
    db: Session,
    *,
    actor: account_models.Account,
    entry: models.ClientEntry,
    transition: Transition,
    from_state: Optional[ClientStatus],
    correlation_id: Optional[str],
) -> None:
    record_transition(
        db,
        actor_account_id=actor.id,
        entity_type=CLIENT_ENTRY,
        entity_id=_entity_id(entry.manager_id, entry.client_id),
        transition=transition,
        from_state=from_state.value if from_state is not None else None,
        after_obj={
            "approved_at": entry.approved_at.isoformat() if entry.approved_at else None,
        },
        correlation_id=correlation_id,
    )


def _apply_action(
    db: Session,
    *,
    actor: account_models.Account,
    entry: models.ClientEntry,
    action: str,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    """Run one non-admitting transition on an existing entry."""
    from_state = ClientStatus(entry.status)
    transition = _resolve(action, _actor_kind(actor), from_state)

    with _unit_of_work(db):
        store.apply_transition(db, entry, expected_status=from_state, transition=transition, now=_utcnow())
        if transition.releases:
            capacity.release_slot(db, entry.relationship_id)
        _record(
            db,
            actor=actor,
            entry=entry,
            transition=transition,
            from_state=from_state,
            correlation_id=correlation_id,
        )

    db.refresh(entry)
    logger.info(
        "Client entry transitioned",
        extra={
            "action": action,
            "manager_id": entry.manager_id,
            "client_id": entry.client_id,
            "from_status": from_state.value,
            "to_status": transition.to_state,
        },
    )
    return entry


def _manager_entry(db: Session, manager_id: str, client_id: str, *, missing: str) -> models.ClientEntry:
    entry = store.get_entry_for_manager(db, manager_id, client_id)
    if entry is None:
        raise errors.NotFound(missing)
    return entry


def _notify_credentials(
    db: Session,
    *,
    client: account_models.Account,
    manager: account_models.Account,
    password: str,
    correlation_id: Optional[str],
) -> None:
    try:
        notification_service.send_email(
            template_key=CREDENTIALS_TEMPLATE,
            recipient=client.email,
            subject="Your account has been created",
            context={
                "full_name": client.full_name,
                "email": client.email,
                "password": password,
                "manager_name": manager.full_name,
            },
            correlation_id=correlation_id,
            account_id=client.id,
            db=db,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Failed to send client credentials",
            extra={"client_id": client.id, "manager_id": manager.id},
        )


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------


def create_client(
    db: Session,
    *,
    manager: account_models.Account,
    full_name: str,
    email: str,
    phone: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    """
    Provision a standalone account and admit it straight into APPROVED.

    The account and its entry are committed together; the credentials
    email goes out afterwards and a delivery failure leaves both in place.
    """
    _require_manager(manager)
    relationship = store.ensure_relationship(db, manager.id)
    capacity.ensure_capacity(db, relationship)
    transition = _resolve("direct_create", workflow_registry.MANAGER, None)

    password = generate_password(CLIENT_PASSWORD_BYTES)
    with _unit_of_work(db):
        try:
            client = account_services.create_account(
                db,
                full_name=full_name,
                email=email,
                password=password,
                role=AccountRole.STANDALONE_USER,
                phone=phone,
                is_email_verified=True,
            )
        except account_services.DuplicateAccountError as exc:
            raise errors.AlreadyAssigned(str(exc), code="email_in_use") from exc

        capacity.reserve_slot(db, relationship)
        entry = store.insert_entry(db, relationship, client_id=client.id, transition=transition, now=_utcnow())
        _record(
            db,
            actor=manager,
            entry=entry,
            transition=transition,
            from_state=None,
            correlation_id=correlation_id,
        )

    db.refresh(entry)
    logger.info(
        "Client created by manager",
        extra={"manager_id": manager.id, "client_id": client.id},
    )
    _notify_credentials(db, client=client, manager=manager, password=password, correlation_id=correlation_id)
    return entry


def request_join(
    db: Session,
    *,
    client: account_models.Account,
    manager_id: str,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    """
    Ask to join a manager's team. A previously REVOKED entry with the same
    manager is reset to PENDING rather than duplicated.
    """
    _require_standalone(client)
    manager = account_services.get_account(db, manager_id)
    if manager is None or not manager.is_active:
        raise errors.NotFound("Transport Manager not found")
    if manager.role != AccountRole.TRANSPORT_MANAGER:
        raise errors.Forbidden("Selected account is not a Transport Manager")

    live = store.find_live_entry_for_client(db, client.id)
    if live is not None:
        if live.manager_id == manager.id:
            raise errors.AlreadyAssigned(
                "You already have a pending or active request with this Transport Manager"
            )
        raise errors.AlreadyAssigned(store.ALREADY_ASSIGNED_MESSAGE)

    relationship = store.ensure_relationship(db, manager.id)
    entry = store.get_entry(db, relationship.id, client.id)
    from_state = ClientStatus(entry.status) if entry is not None else None
    transition = _resolve("request_join", workflow_registry.CLIENT, from_state)
    capacity.ensure_capacity(db, relationship)

    now = _utcnow()
    with _unit_of_work(db):
        capacity.reserve_slot(db, relationship)
        if entry is None:
            entry = store.insert_entry(db, relationship, client_id=client.id, transition=transition, now=now)
        else:
            store.apply_transition(db, entry, expected_status=from_state, transition=transition, now=now)
        _record(
            db,
            actor=client,
            entry=entry,
            transition=transition,
            from_state=from_state,
            correlation_id=correlation_id,
        )

    db.refresh(entry)
    logger.info(
        "Join request submitted",
        extra={"manager_id": manager.id, "client_id": client.id, "rejoin": from_state is not None},
    )
    return entry


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def list_clients(
    db: Session,
    *,
    manager_id: str,
    page_no: int = 1,
    show_per_page: Optional[int] = None,
    search: Optional[str] = None,
) -> dict:
    page_no = max(int(page_no or 1), 1)
    per_page = int(show_per_page or DEFAULT_PAGE_SIZE)
    per_page = min(max(per_page, 1), MAX_PAGE_SIZE)
    return store.page_live_entries(
        db,
        manager_id=manager_id,
        page_no=page_no,
        show_per_page=per_page,
        search=(search or "").strip() or None,
    )


def get_manager_for_client(db: Session, *, client_id: str) -> models.ClientEntry:
    entry = store.find_live_entry_for_client(db, client_id)
    if entry is None:
        raise errors.NotFound("You are not assigned to any Transport Manager")
    return entry


def get_limit_status(db: Session, *, manager_id: str) -> capacity.LimitStatus:
    return capacity.limit_status(db, store.get_relationship(db, manager_id))


def list_pending_join_requests(db: Session, *, manager_id: str) -> List[models.ClientEntry]:
    return store.list_entries_in_status(db, manager_id=manager_id, status=ClientStatus.PENDING)


def list_leave_requests(db: Session, *, manager_id: str) -> List[models.ClientEntry]:
    return store.list_entries_in_status(db, manager_id=manager_id, status=ClientStatus.LEAVE_REQUESTED)


def list_active_managers(db: Session) -> List[account_models.Account]:
    return account_services.list_active_managers(db)


def get_pending_removal(db: Session, *, client_id: str) -> Optional[models.ClientEntry]:
    return store.find_entry_for_client_in_status(db, client_id, ClientStatus.REMOVE_REQUESTED)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def revoke_client(
    db: Session,
    *,
    actor: account_models.Account,
    client_id: str,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    """End the client's live relationship. Admins may revoke anyone, a client only itself."""
    if actor.role == AccountRole.STANDALONE_USER and actor.id != client_id:
        raise errors.Forbidden("You can only remove your own Transport Manager")
    if actor.role == AccountRole.TRANSPORT_MANAGER:
        raise errors.Forbidden("Transport Managers must request removal instead")

    entry = store.find_live_entry_for_client(db, client_id)
    if entry is None:
        raise errors.NotFound("Client is not assigned to any Transport Manager")
    return _apply_action(db, actor=actor, entry=entry, action="revoke", correlation_id=correlation_id)


def set_limit(
    db: Session,
    *,
    actor: account_models.Account,
    manager_id: str,
    new_limit: int,
    correlation_id: Optional[str] = None,
) -> models.ManagerClientRelationship:
    """
    Change a manager's client limit. Existing entries are untouched even
    when the new limit is below the current count.
    """
    if not actor.is_super_admin:
        raise errors.Forbidden("Only administrators can change client limits")
    if new_limit is None or int(new_limit) <= 0:
        raise ValueError("client_limit must be a positive integer")
    new_limit = int(new_limit)

    manager = account_services.get_account(db, manager_id)
    if manager is None:
        raise errors.NotFound("Transport Manager not found")
    if manager.role != AccountRole.TRANSPORT_MANAGER:
        raise errors.Forbidden("Client limits apply to Transport Managers only")

    existing = store.get_relationship(db, manager_id)
    previous = existing.client_limit if existing is not None else None
    relationship = existing or store.ensure_relationship(db, manager_id, client_limit=new_limit)

    with _unit_of_work(db):
        store.write_limit(db, relationship.id, new_limit)
        audit_services.log_event(
            db,
            actor_account_id=actor.id,
            entity_type=CLIENT_LIMIT_ENTITY,
            entity_id=manager_id,
            action="set_limit",
            before={"client_limit": previous},
            after={"client_limit": new_limit},
            correlation_id=correlation_id,
        )

    db.refresh(relationship)
    logger.info(
        "Client limit updated",
        extra={"manager_id": manager_id, "previous": previous, "client_limit": new_limit},
    )
    return relationship


def decide_join_request(
    db: Session,
    *,
    manager: account_models.Account,
    client_id: str,
    decision: Union[JoinDecision, str],
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    _require_manager(manager)
    decision = JoinDecision(decision)
    entry = _manager_entry(db, manager.id, client_id, missing="Join request not found")
    action = "approve_join" if decision == JoinDecision.APPROVE else "reject_join"
    return _apply_action(db, actor=manager, entry=entry, action=action, correlation_id=correlation_id)


def request_leave(
    db: Session,
    *,
    client: account_models.Account,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    _require_standalone(client)
    entry = store.find_live_entry_for_client(db, client.id)
    if entry is None:
        raise errors.NotFound("You are not assigned to any Transport Manager")
    return _apply_action(db, actor=client, entry=entry, action="request_leave", correlation_id=correlation_id)


def decide_leave_request(
    db: Session,
    *,
    manager: account_models.Account,
    client_id: str,
    action: Union[RequestAction, str],
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    _require_manager(manager)
    action = RequestAction(action)
    entry = _manager_entry(db, manager.id, client_id, missing="Leave request not found")
    name = "accept_leave" if action == RequestAction.ACCEPT else "reject_leave"
    return _apply_action(db, actor=manager, entry=entry, action=name, correlation_id=correlation_id)


def request_removal(
    db: Session,
    *,
    manager: account_models.Account,
    client_id: str,
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    _require_manager(manager)
    entry = _manager_entry(db, manager.id, client_id, missing="Client not found in your team")
    return _apply_action(db, actor=manager, entry=entry, action="request_removal", correlation_id=correlation_id)


def decide_removal(
    db: Session,
    *,
    client: account_models.Account,
    action: Union[RequestAction, str],
    correlation_id: Optional[str] = None,
) -> models.ClientEntry:
    _require_standalone(client)
    action = RequestAction(action)
    entry = store.find_live_entry_for_client(db, client.id)
    if entry is None:
        raise errors.NotFound("No removal request found")
    name = "accept_removal" if action == RequestAction.ACCEPT else "reject_removal"
    return _apply_action(db, actor=client, entry=entry, action=name, correlation_id=correlation_id)
