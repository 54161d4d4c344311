from __future__ import annotations

from compliancedb.apps.accounts.models import AccountRole
from compliancedb.apps.audit import services as audit_services
from compliancedb.apps.client_management import services, store
from compliancedb.jobs import relationship_sweep


def test_sweep_repairs_drifted_counts(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    services.create_client(db_session, manager=manager, full_name="Client One", email="one@fleetco.co.uk")
    services.create_client(db_session, manager=manager, full_name="Client Two", email="two@fleetco.co.uk")
    relationship = store.get_relationship(db_session, manager.id)
    store.write_active_count(db_session, relationship.id, 5)
    db_session.commit()

    summary = relationship_sweep.run(db_session)

    assert summary == {"managers_checked": 1, "counts_repaired": 1, "duplicate_clients": []}
    assert store.get_relationship(db_session, manager.id).active_count == 2
    events = audit_services.list_audit_events(
        db_session, entity_type=services.CLIENT_LIMIT_ENTITY, entity_id=manager.id
    )
    assert [(e.action, e.before, e.after) for e in events] == [
        ("active_count_repaired", {"active_count": 5}, {"active_count": 2})
    ]


def test_sweep_leaves_consistent_rows_alone(db_session, make_account):
    manager = make_account(AccountRole.TRANSPORT_MANAGER)
    services.create_client(db_session, manager=manager, full_name="Client One", email="one@fleetco.co.uk")

    summary = relationship_sweep.run(db_session)

    assert summary["counts_repaired"] == 0
    assert audit_services.list_audit_events(db_session, entity_type=services.CLIENT_LIMIT_ENTITY) == []
