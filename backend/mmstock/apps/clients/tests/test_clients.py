from __future__ import annotations

import pytest
from fastapi import HTTPException

from mmstock.apps.clients import router as clients_router
from mmstock.apps.clients import schemas as client_schemas
from mmstock.apps.clients import services as client_services


def _create(db, company, name, **extra):
    client = client_services.create_client(
        db,
        company_id=company.id,
        payload=client_schemas.ClientCreate(name=name, **extra),
    )
    db.commit()
    return client


def test_search_and_order_by_name(db_session, company):
    _create(db_session, company, "Rochas do Alentejo")
    _create(db_session, company, "Alentejo Stone Export", city="Borba")
    _create(db_session, company, "Mármores Lusos")

    found = client_services.list_clients(db_session, company_id=company.id, search="alentejo")
    assert [c.name for c in found] == ["Alentejo Stone Export", "Rochas do Alentejo"]


def test_deactivated_clients_are_hidden_by_default(db_session, company, admin):
    client = _create(db_session, company, "  Cliente Antigo ")
    assert client.name == "Cliente Antigo"

    client_services.deactivate_client(db_session, company_id=company.id, client=client, actor=admin)
    db_session.commit()

    assert client_services.list_clients(db_session, company_id=company.id) == []
    assert len(client_services.list_clients(db_session, company_id=company.id, active_only=False)) == 1


def test_update_and_company_scope(db_session, company, other_company):
    client = _create(db_session, company, "Granitos SA")
    updated = client_services.update_client(
        db_session,
        company_id=company.id,
        client=client,
        payload=client_schemas.ClientUpdate(phone="266000000"),
    )
    assert updated.phone == "266000000"

    with pytest.raises(HTTPException) as exc:
        client_services.get_client(db_session, company_id=other_company.id, client_id=client.id)
    assert exc.value.status_code == 404


def test_update_rejects_null_name():
    with pytest.raises(ValueError):
        client_schemas.ClientUpdate(name=None)


def test_update_payload_cannot_deactivate(db_session, company, admin):
    client = _create(db_session, company, "Pedras do Norte")
    payload = client_schemas.ClientUpdate.model_validate({"is_active": False, "city": "Braga"})
    client_services.update_client(db_session, company_id=company.id, client=client, payload=payload)
    db_session.commit()
    assert client.is_active is True
    assert client.city == "Braga"

    client_services.deactivate_client(db_session, company_id=company.id, client=client, actor=admin)
    client_services.reactivate_client(db_session, company_id=company.id, client=client, actor=admin)
    db_session.commit()
    assert [c.id for c in client_services.list_clients(db_session, company_id=company.id)] == [client.id]


def test_client_routes_are_registered():
    methods = {(route.path, tuple(sorted(route.methods))) for route in clients_router.router.routes}
    assert ("/clients/", ("GET",)) in methods
    assert ("/clients/{client_id}", ("DELETE",)) in methods
    assert ("/clients/{client_id}/reactivate", ("POST",)) in methods
