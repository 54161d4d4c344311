from __future__ import annotations

import threading

import pytest

from compliancedb.apps.accounts import models as account_models
from compliancedb.apps.accounts.models import AccountRole
from compliancedb.apps.client_management import capacity, errors, models, services, store


def test_limit_status_defaults_without_record():
    status = capacity.limit_status(None, None)

    assert status.client_limit == models.DEFAULT_CLIENT_LIMIT
    assert status.current_clients == 0
    assert status.remaining == models.DEFAULT_CLIENT_LIMIT


def test_reserve_slot_stops_at_limit(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    relationship = store.ensure_relationship(db_session, manager.id, client_limit=2)

    capacity.reserve_slot(db_session, relationship)
    capacity.reserve_slot(db_session, relationship)
    with pytest.raises(errors.CapacityExceeded) as excinfo:
        capacity.reserve_slot(db_session, relationship)

    assert excinfo.value.limit == 2
    assert excinfo.value.current == 2
    assert excinfo.value.to_detail()["detail"] == {"limit": 2, "current": 2}
    assert relationship.active_count == 2


def test_release_slot_never_goes_negative(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    relationship = store.ensure_relationship(db_session, manager.id)

    capacity.release_slot(db_session, relationship.id)
    db_session.commit()
    db_session.refresh(relationship)

    assert relationship.active_count == 0


def test_active_count_ignores_revoked_entries(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    kept = make_account()
    gone = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)
    db_session.add_all(
        [
            models.ClientEntry(
                relationship_id=relationship.id,
                client_id=kept.id,
                position=0,
                status=models.ClientStatus.LEAVE_REQUESTED,
            ),
            models.ClientEntry(
                relationship_id=relationship.id,
                client_id=gone.id,
                position=1,
                status=models.ClientStatus.REVOKED,
            ),
        ]
    )
    db_session.commit()
    db_session.refresh(relationship)

    assert capacity.active_count(relationship) == 1
    assert capacity.limit_status(db_session, relationship).current_clients == 1


def test_lowering_limit_keeps_existing_clients(db_session, make_account):
    admin = make_account(AccountRole.SUPER_ADMIN)
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    for i in range(3):
        services.create_client(db_session, manager=manager, full_name=f"Client {i}", email=f"c{i}@fleetco.co.uk")

    services.set_limit(db_session, actor=admin, manager_id=manager.id, new_limit=1)

    status = services.get_limit_status(db_session, manager_id=manager.id)
    assert status.client_limit == 1
    assert status.current_clients == 3
    assert status.remaining == -2
    assert len(services.list_clients(db_session, manager_id=manager.id)["data"]) == 3

    newcomer = make_account()
    with pytest.raises(errors.CapacityExceeded):
        services.request_join(db_session, client=newcomer, manager_id=manager.id)


def test_concurrent_join_requests_admit_exactly_the_limit(file_session_factory):
    limit = 3
    attempts = 8

    setup = file_session_factory()
    admin = account_models.Account(
        full_name="Admin", email="admin@fleetco.co.uk", role=AccountRole.SUPER_ADMIN, hashed_password="hash"
    )
    manager = account_models.Account(
        full_name="Manager", email="manager@fleetco.co.uk", role=AccountRole.TRANSPORT_MANAGER, hashed_password="hash"
    )
    clients = [
        account_models.Account(
            full_name=f"Client {i}", email=f"client{i}@fleetco.co.uk", role=AccountRole.STANDALONE_USER, hashed_password="hash"
        )
        for i in range(attempts)
    ]
    setup.add_all([admin, manager, *clients])
    setup.commit()
    services.set_limit(setup, actor=admin, manager_id=manager.id, new_limit=limit)
    manager_id = manager.id
    client_ids = [c.id for c in clients]
    setup.close()

    barrier = threading.Barrier(attempts)
    outcomes = []
    lock = threading.Lock()

    def _join(client_id):
        db = file_session_factory()
        try:
            client = db.get(account_models.Account, client_id)
            barrier.wait()
            try:
                services.request_join(db, client=client, manager_id=manager_id)
                result = "admitted"
            except errors.CapacityExceeded:
                result = "capacity"
            with lock:
                outcomes.append(result)
        finally:
            db.close()

    threads = [threading.Thread(target=_join, args=(client_id,)) for client_id in client_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("admitted") == min(attempts, limit)
    assert outcomes.count("capacity") == attempts - limit

    check = file_session_factory()
    try:
        relationship = store.get_relationship(check, manager_id)
        assert relationship.active_count == limit
        assert store.count_live_entries(check, relationship.id) == limit
    finally:
        check.close()
