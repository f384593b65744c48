from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import StatementError

from opnamedb.apps.audit import router as audit_router
from opnamedb.apps.audit import schemas, services


def test_log_event_writes_record(db_session):
    event = services.log_event(
        db_session,
        actor_user_id=None,
        entity_type="batch",
        entity_id="42",
        action="stock_write_back",
        before={"stock_quantity": 10},
        after={"stock_quantity": 8},
        metadata={"opname_task_id": 7},
    )
    db_session.commit()

    assert event is not None
    assert event.entity_type == "batch"
    read = schemas.AuditEventRead.model_validate(event)
    assert read.metadata == {"opname_task_id": 7}


def test_non_critical_failure_is_logged_and_swallowed(db_session):
    event = services.log_event(
        db_session,
        actor_user_id=None,
        entity_type="batch",
        entity_id="42",
        action="update_expiry",
        after={"bad": object()},
    )

    assert event is None
    db_session.rollback()


def test_critical_failure_is_raised(db_session):
    with pytest.raises((StatementError, TypeError)):
        services.log_event(
            db_session,
            actor_user_id=None,
            entity_type="batch",
            entity_id="42",
            action="stock_write_back",
            after={"bad": object()},
            critical=True,
        )
    db_session.rollback()


def test_list_audit_events_filters_by_entity_and_time(db_session):
    now = datetime.now(timezone.utc)
    for entity_id, offset in (("1", 2), ("1", 1), ("2", 0)):
        services.create_audit_event(
            db_session,
            data=schemas.AuditEventCreate(
                entity_type="opname_task",
                entity_id=entity_id,
                action="submit",
                occurred_at=now - timedelta(hours=offset),
            ),
        )
    db_session.commit()

    events = services.list_audit_events(db_session, entity_type="opname_task", entity_id="1")
    assert len(events) == 2
    assert events[0].occurred_at >= events[1].occurred_at

    recent = services.list_audit_events(db_session, start=now - timedelta(minutes=90))
    assert {e.entity_id for e in recent} == {"1", "2"}
    assert len(recent) == 2

    assert len(services.list_audit_events(db_session, limit=1)) == 1


def test_audit_route_is_registered():
    assert "/audit/" in {route.path for route in audit_router.router.routes}
