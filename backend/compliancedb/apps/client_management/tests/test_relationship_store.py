from __future__ import annotations

import pytest
from sqlalchemy import delete

from compliancedb.apps.accounts.models import AccountRole
from compliancedb.apps.client_management import errors, models, store
from compliancedb.apps.workflow import CLIENT_ENTRY, get_transition

ClientStatus = models.ClientStatus


def _transition(action):
    return get_transition(CLIENT_ENTRY, action)


def test_ensure_relationship_creates_once_with_default_limit(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)

    first = store.ensure_relationship(db_session, manager.id)
    second = store.ensure_relationship(db_session, manager.id)

    assert first.id == second.id
    assert first.client_limit == models.DEFAULT_CLIENT_LIMIT
    assert first.active_count == 0
    assert db_session.query(models.ManagerClientRelationship).count() == 1


def test_insert_entry_appends_in_order(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    clients = [make_account() for _ in range(3)]
    relationship = store.ensure_relationship(db_session, manager.id)

    for client in clients:
        store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()
    db_session.refresh(relationship)

    assert [entry.client_id for entry in relationship.clients] == [c.id for c in clients]
    assert [entry.position for entry in relationship.clients] == [0, 1, 2]
    assert set(relationship.entries_by_client) == {c.id for c in clients}
    assert all(entry.status == ClientStatus.PENDING for entry in relationship.clients)


def test_direct_create_stamps_approval(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)

    entry = store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("direct_create"))

    assert entry.status == ClientStatus.APPROVED
    assert entry.approved_at is not None


def test_second_live_entry_for_client_is_rejected(db_session, make_account):
    first_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    second_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    first = store.ensure_relationship(db_session, first_manager.id)
    second = store.ensure_relationship(db_session, second_manager.id)

    store.insert_entry(db_session, first, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()

    with pytest.raises(errors.AlreadyAssigned):
        store.insert_entry(db_session, second, client_id=client.id, transition=_transition("request_join"))
    db_session.rollback()


def test_revoked_entry_does_not_block_another_manager(db_session, make_account):
    first_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    second_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    first = store.ensure_relationship(db_session, first_manager.id)
    second = store.ensure_relationship(db_session, second_manager.id)

    entry = store.insert_entry(db_session, first, client_id=client.id, transition=_transition("request_join"))
    store.apply_transition(
        db_session,
        entry,
        expected_status=ClientStatus.PENDING,
        transition=_transition("reject_join"),
    )
    other = store.insert_entry(db_session, second, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()

    assert other.status == ClientStatus.PENDING
    assert store.find_live_entry_for_client(db_session, client.id).id == other.id


def test_apply_transition_requires_observed_status(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)
    entry = store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()

    store.apply_transition(
        db_session,
        entry,
        expected_status=ClientStatus.PENDING,
        transition=_transition("approve_join"),
    )
    assert entry.status == ClientStatus.APPROVED

    # A second decision based on the stale PENDING read matches nothing, and
    # APPROVED is not a status a join can be rejected from.
    with pytest.raises(errors.InvalidTransition):
        store.apply_transition(
            db_session,
            entry,
            expected_status=ClientStatus.PENDING,
            transition=_transition("reject_join"),
        )
    db_session.refresh(entry)
    assert entry.status == ClientStatus.APPROVED


def test_entry_revoked_between_read_and_write_is_invalid_transition(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)
    entry = store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("direct_create"))
    db_session.commit()
    observed = ClientStatus(entry.status)

    store.apply_transition(db_session, entry, expected_status=observed, transition=_transition("revoke"))
    db_session.commit()

    with pytest.raises(errors.InvalidTransition) as excinfo:
        store.apply_transition(db_session, entry, expected_status=observed, transition=_transition("request_leave"))
    assert "REVOKED" in excinfo.value.message


def test_missed_update_from_still_eligible_status_is_conflicting_write(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)
    entry = store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("request_join"))
    store.apply_transition(
        db_session, entry, expected_status=ClientStatus.PENDING, transition=_transition("approve_join")
    )
    db_session.commit()

    # Revoke accepts APPROVED too, so a stale PENDING read is a lost race, not a bad action.
    with pytest.raises(errors.ConflictingWrite):
        store.apply_transition(
            db_session, entry, expected_status=ClientStatus.PENDING, transition=_transition("revoke")
        )


def test_missed_update_on_deleted_entry_is_not_found(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    relationship = store.ensure_relationship(db_session, manager.id)
    entry = store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()
    db_session.execute(delete(models.ClientEntry).where(models.ClientEntry.id == entry.id))

    with pytest.raises(errors.NotFound):
        store.apply_transition(
            db_session, entry, expected_status=ClientStatus.PENDING, transition=_transition("approve_join")
        )
    db_session.rollback()


def test_rejoin_update_rejected_when_client_went_live_elsewhere(db_session, make_account):
    first_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    second_manager = make_account(AccountRole.TRANSPORT_MANAGER)
    client = make_account()
    first = store.ensure_relationship(db_session, first_manager.id)
    second = store.ensure_relationship(db_session, second_manager.id)
    revoked = store.insert_entry(db_session, first, client_id=client.id, transition=_transition("request_join"))
    store.apply_transition(
        db_session, revoked, expected_status=ClientStatus.PENDING, transition=_transition("reject_join")
    )
    store.insert_entry(db_session, second, client_id=client.id, transition=_transition("request_join"))
    db_session.commit()

    with pytest.raises(errors.AlreadyAssigned):
        store.apply_transition(
            db_session, revoked, expected_status=ClientStatus.REVOKED, transition=_transition("request_join")
        )
    db_session.rollback()


def test_page_live_entries_searches_and_paginates(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    relationship = store.ensure_relationship(db_session, manager.id)
    alice = make_account(full_name="Alice Haulage", email="alice@haulage.co.uk")
    bob = make_account(full_name="Bob Freight", email="bob@freight.co.uk")
    carol = make_account(full_name="Carol Freight", email="carol@freight.co.uk")
    for client in (alice, bob, carol):
        store.insert_entry(db_session, relationship, client_id=client.id, transition=_transition("direct_create"))
    revoked = store.get_entry(db_session, relationship.id, alice.id)
    store.apply_transition(
        db_session,
        revoked,
        expected_status=ClientStatus.APPROVED,
        transition=_transition("revoke"),
    )
    db_session.commit()

    page = store.page_live_entries(db_session, manager_id=manager.id, page_no=1, show_per_page=1)
    assert page["total_data"] == 2
    assert page["total_pages"] == 2
    assert [entry.client_id for entry in page["data"]] == [bob.id]

    found = store.page_live_entries(db_session, manager_id=manager.id, page_no=1, show_per_page=10, search="CAROL")
    assert [entry.client_id for entry in found["data"]] == [carol.id]

    nothing = store.page_live_entries(db_session, manager_id=manager.id, page_no=1, show_per_page=10, search="alice")
    assert nothing == {"data": [], "total_data": 0, "total_pages": 0}


def test_status_lookups(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    relationship = store.ensure_relationship(db_session, manager.id)
    pending = make_account()
    approved = make_account()
    store.insert_entry(db_session, relationship, client_id=pending.id, transition=_transition("request_join"))
    store.insert_entry(db_session, relationship, client_id=approved.id, transition=_transition("direct_create"))
    db_session.commit()

    assert [e.client_id for e in store.list_entries_in_status(db_session, manager_id=manager.id, status=ClientStatus.PENDING)] == [pending.id]
    assert store.has_entry_in_status(
        db_session, manager_id=manager.id, client_id=approved.id, statuses=(ClientStatus.APPROVED,)
    )
    assert not store.has_entry_in_status(
        db_session, manager_id=manager.id, client_id=pending.id, statuses=(ClientStatus.APPROVED,)
    )
    assert store.count_live_entries(db_session, relationship.id) == 2
    assert store.find_entry_for_client_in_status(db_session, approved.id, ClientStatus.REMOVE_REQUESTED) is None
