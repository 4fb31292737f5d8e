from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from mmstock.apps.audit import models as audit_models
from mmstock.apps.audit import router as audit_router
from mmstock.apps.audit import schemas as audit_schemas
from mmstock.apps.audit import services as audit_services


def test_log_event_snapshots_the_actor(db_session, company, admin):
    event = audit_services.log_event(
        db_session,
        company_id=company.id,
        actor=admin,
        entity_type="produto",
        entity_id="prod-1",
        action="criar",
        description="Produto MM-1 criado",
        after={"idmm": "MM-1"},
        metadata={"source": "test"},
    )
    db_session.commit()

    assert event is not None
    assert event.actor_user_id == admin.id
    assert event.actor_name == "Ana Admin"
    assert event.actor_email == admin.email
    assert event.actor_role == "admin"
    read = audit_schemas.AuditEventRead.model_validate(event)
    assert read.metadata == {"source": "test"}


def test_non_critical_failure_is_swallowed(db_session, company, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(audit_services, "create_audit_event", _boom)

    assert (
        audit_services.log_event(
            db_session,
            company_id=company.id,
            actor=None,
            entity_type="cliente",
            entity_id="c-1",
            action="editar",
        )
        is None
    )
    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            company_id=company.id,
            actor=None,
            entity_type="movimento",
            entity_id="m-1",
            action="criar",
            critical=True,
        )


def _event(db, company, actor, action, occurred_at, entity_type="produto"):
    audit_services.create_audit_event(
        db,
        company_id=company.id,
        data=audit_schemas.AuditEventCreate(
            entity_type=entity_type,
            action=action,
            actor_user_id=actor.id,
            actor_name=actor.full_name,
            occurred_at=occurred_at,
        ),
    )


def test_list_filters_and_ordering(db_session, company, other_company, admin, operator):
    now = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
    _event(db_session, company, admin, "criar", now - timedelta(days=2))
    _event(db_session, company, operator, "editar", now)
    _event(db_session, company, operator, "cancelar", now.replace(hour=23, minute=30), entity_type="movimento")
    _event(db_session, other_company, admin, "criar", now)
    db_session.commit()

    events = audit_services.list_audit_events(db_session, company_id=company.id)
    assert [e.action for e in events] == ["cancelar", "editar", "criar"]

    same_day = audit_services.list_audit_events(
        db_session, company_id=company.id, date_from=date(2026, 3, 10), date_to=date(2026, 3, 10)
    )
    assert {e.action for e in same_day} == {"editar", "cancelar"}

    by_operator = audit_services.list_audit_events(db_session, company_id=company.id, user_id=operator.id)
    assert len(by_operator) == 2

    movements = audit_services.list_audit_events(db_session, company_id=company.id, entity_type="movimento")
    assert [e.action for e in movements] == ["cancelar"]


def test_actions_and_actors_are_distinct_and_sorted(db_session, company, admin, operator):
    now = datetime.now(timezone.utc)
    _event(db_session, company, operator, "editar", now)
    _event(db_session, company, admin, "criar", now)
    _event(db_session, company, admin, "criar", now)
    db_session.commit()

    assert audit_services.list_actions(db_session, company_id=company.id) == ["criar", "editar"]
    actors = audit_services.list_actors(db_session, company_id=company.id)
    assert [a.name for a in actors] == ["Ana Admin", "Rui Operador"]


def test_audit_routes_are_registered():
    paths = {route.path for route in audit_router.router.routes}
    assert {"/audit/", "/audit/actions", "/audit/actors"} <= paths
    assert audit_models.AuditEvent.__tablename__ == "audit_events"
