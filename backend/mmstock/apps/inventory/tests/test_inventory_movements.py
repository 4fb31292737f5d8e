from __future__ import annotations

import pytest
from fastapi import HTTPException

from mmstock.apps.audit import models as audit_models
from mmstock.apps.clients import models as client_models
from mmstock.apps.inventory import models as inventory_models
from mmstock.apps.inventory import schemas as inventory_schemas
from mmstock.apps.inventory import services as inventory_services
from mmstock.apps.products import models as product_models


@pytest.fixture()
def product(db_session, company):
    product = product_models.Product(
        company_id=company.id,
        idmm="MM-2026-001",
        stone_type="Mármore",
        form=product_models.ProductFormEnum.BLOCK,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture()
def client(db_session, company):
    client = client_models.Client(company_id=company.id, name="Pedras do Sul, Lda")
    db_session.add(client)
    db_session.commit()
    return client


def _create(db, company, actor, **fields):
    movement = inventory_services.create_movement(
        db,
        company_id=company.id,
        payload=inventory_schemas.MovementCreate(**fields),
        actor=actor,
    )
    db.commit()
    return movement


def _entry(db, company, actor, product, location, quantity=5.0, **extra):
    return _create(
        db,
        company,
        actor,
        movement_type="entrada",
        material_origin="producao_propria",
        product_id=product.id,
        quantity=quantity,
        destination_location_id=location.id,
        **extra,
    )


def _qty(db, company, product, location):
    return inventory_services.stock_quantity(
        db, company_id=company.id, product_id=product.id, location_id=location.id
    )


def test_entry_creates_stock_row(db_session, company, operator, parques, product):
    movement = _entry(db_session, company, operator, product, parques["MM001"], quantity=3)

    assert movement.operator_id == operator.id
    assert movement.document_type == inventory_models.DocumentTypeEnum.NONE
    assert _qty(db_session, company, product, parques["MM001"]) == 3


def test_transfer_moves_stock_between_parques(db_session, company, operator, parques, product):
    _entry(db_session, company, operator, product, parques["MM001"], quantity=5)

    _create(
        db_session,
        company,
        operator,
        movement_type="transferencia",
        document_type="guia_transferencia",
        document_number="GT-12",
        product_id=product.id,
        quantity=2,
        origin_location_id=parques["MM001"].id,
        destination_location_id=parques["MM005"].id,
    )

    assert _qty(db_session, company, product, parques["MM001"]) == 3
    assert _qty(db_session, company, product, parques["MM005"]) == 2


def test_exit_beyond_available_stock_is_rejected(db_session, company, operator, parques, product, client):
    _entry(db_session, company, operator, product, parques["MM001"], quantity=2)

    with pytest.raises(HTTPException) as exc:
        _create(
            db_session,
            company,
            operator,
            movement_type="saida",
            document_type="factura",
            document_number="FT 2026/10",
            product_id=product.id,
            quantity=3,
            origin_location_id=parques["MM001"].id,
            client_id=client.id,
        )
    db_session.rollback()

    assert exc.value.status_code == 409
    assert "Stock insuficiente" in exc.value.detail
    assert _qty(db_session, company, product, parques["MM001"]) == 2
    assert db_session.query(inventory_models.Movement).count() == 1


def test_validation_collects_every_message(db_session, company, operator, parques, product):
    with pytest.raises(HTTPException) as exc:
        _create(
            db_session,
            company,
            operator,
            movement_type="saida",
            product_id=product.id,
            quantity=0,
            origin_location_id=parques["MM001"].id,
        )

    assert exc.value.status_code == 422
    assert "Documento obrigatório para saídas" in exc.value.detail
    assert "Número do documento é obrigatório" in exc.value.detail
    assert "Quantidade deve ser maior que 0" in exc.value.detail
    assert "Cliente obrigatório" in exc.value.detail


def test_purchased_entry_needs_a_document():
    errors = inventory_services.validate_movement_payload(
        inventory_schemas.MovementCreate(
            movement_type="entrada",
            material_origin="adquirido",
            product_id="p-1",
            quantity=1,
            destination_location_id="loc-1",
        )
    )
    assert errors == ["Documento obrigatório para material adquirido"]


def test_transfer_to_same_parque_is_rejected():
    errors = inventory_services.validate_movement_payload(
        inventory_schemas.MovementCreate(
            movement_type="transferencia",
            document_type="guia_transferencia",
            document_number="GT-1",
            product_id="p-1",
            quantity=1,
            origin_location_id="loc-1",
            destination_location_id="loc-1",
        )
    )
    assert errors == ["Parque de origem e destino devem ser diferentes"]


def test_fields_not_applicable_to_the_type_are_dropped(db_session, company, operator, parques, product, client):
    movement = _entry(
        db_session,
        company,
        operator,
        product,
        parques["MM001"],
        quantity=1,
        client_id=client.id,
        origin_location_id=parques["MM002"].id,
    )

    assert movement.client_id is None
    assert movement.origin_location_id is None
    assert _qty(db_session, company, product, parques["MM002"]) == 0


def test_unknown_product_is_reported(db_session, company, operator, parques):
    with pytest.raises(HTTPException) as exc:
        _create(
            db_session,
            company,
            operator,
            movement_type="entrada",
            material_origin="producao_propria",
            product_id="does-not-exist",
            quantity=1,
            destination_location_id=parques["MM001"].id,
        )
    assert exc.value.status_code == 422
    assert exc.value.detail == ["Produto não encontrado"]


def test_cancel_reverses_stock_and_blocks_second_cancel(db_session, company, operator, admin, parques, product):
    movement = _entry(db_session, company, operator, product, parques["MM001"], quantity=4)

    cancelled = inventory_services.cancel_movement(
        db_session,
        company_id=company.id,
        movement_id=movement.id,
        reason="Registo em duplicado",
        actor=admin,
    )
    db_session.commit()

    assert cancelled.is_cancelled is True
    assert cancelled.cancelled_by_id == admin.id
    assert cancelled.cancellation_reason == "Registo em duplicado"
    assert _qty(db_session, company, product, parques["MM001"]) == 0

    with pytest.raises(HTTPException) as exc:
        inventory_services.cancel_movement(
            db_session,
            company_id=company.id,
            movement_id=movement.id,
            reason="outra vez",
            actor=admin,
        )
    assert exc.value.status_code == 409


def test_cancel_that_would_go_negative_changes_nothing(
    db_session, company, operator, admin, parques, product, client
):
    entry = _entry(db_session, company, operator, product, parques["MM001"], quantity=5)
    _create(
        db_session,
        company,
        operator,
        movement_type="saida",
        document_type="factura",
        document_number="FT 1",
        product_id=product.id,
        quantity=3,
        origin_location_id=parques["MM001"].id,
        client_id=client.id,
    )

    with pytest.raises(HTTPException) as exc:
        inventory_services.cancel_movement(
            db_session,
            company_id=company.id,
            movement_id=entry.id,
            reason="erro",
            actor=admin,
        )
    db_session.rollback()

    assert exc.value.status_code == 409
    refreshed = db_session.get(inventory_models.Movement, entry.id)
    assert refreshed.is_cancelled is False
    assert _qty(db_session, company, product, parques["MM001"]) == 2


def test_idempotency_key_replays_the_first_movement(db_session, company, operator, parques, product):
    first = _entry(db_session, company, operator, product, parques["MM001"], quantity=2, idempotency_key="abc-1")
    second = _entry(db_session, company, operator, product, parques["MM001"], quantity=2, idempotency_key="abc-1")

    assert first.id == second.id
    assert _qty(db_session, company, product, parques["MM001"]) == 2

    with pytest.raises(HTTPException) as exc:
        _entry(db_session, company, operator, product, parques["MM001"], quantity=7, idempotency_key="abc-1")
    assert exc.value.status_code == 409


def test_movement_writes_audit_event(db_session, company, operator, parques, product):
    movement = _entry(db_session, company, operator, product, parques["MM001"], quantity=1)

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_id == movement.id)
        .one()
    )
    assert event.action == "criar"
    assert event.entity_type == "movimento"
    assert event.description == "Movimento de entrada registado"
    assert event.actor_name == operator.full_name


def test_list_movements_hides_cancelled_and_filters_by_parque(
    db_session, company, operator, admin, parques, product
):
    kept = _entry(db_session, company, operator, product, parques["MM001"], quantity=1)
    dropped = _entry(db_session, company, operator, product, parques["MM005"], quantity=1)
    inventory_services.cancel_movement(
        db_session, company_id=company.id, movement_id=dropped.id, reason="erro", actor=admin
    )
    db_session.commit()

    visible = inventory_services.list_movements(db_session, company_id=company.id)
    assert [m.id for m in visible] == [kept.id]

    everything = inventory_services.list_movements(db_session, company_id=company.id, include_cancelled=True)
    assert {m.id for m in everything} == {kept.id, dropped.id}

    at_mm005 = inventory_services.list_movements(
        db_session, company_id=company.id, location_id=parques["MM005"].id, include_cancelled=True
    )
    assert [m.id for m in at_mm005] == [dropped.id]

    latest = inventory_services.latest_movement_for_product(
        db_session, company_id=company.id, product_id=product.id
    )
    assert latest.id == kept.id


def test_movements_are_scoped_to_the_company(db_session, company, other_company, operator, parques, product):
    movement = _entry(db_session, company, operator, product, parques["MM001"], quantity=1)

    with pytest.raises(HTTPException) as exc:
        inventory_services.get_movement(db_session, company_id=other_company.id, movement_id=movement.id)
    assert exc.value.status_code == 404
