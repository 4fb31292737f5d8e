from __future__ import annotations

import pytest
from fastapi import HTTPException

from mmstock.apps.products import models as product_models
from mmstock.apps.products import router as products_router
from mmstock.apps.products import schemas as product_schemas
from mmstock.apps.products import services as product_services


def _create(db, company, idmm="MM-2026-001", **extra):
    data = {"idmm": idmm, "stone_type": "Mármore"}
    data.update(extra)
    product = product_services.create_product(
        db,
        company_id=company.id,
        payload=product_schemas.ProductCreate(**data),
    )
    db.commit()
    return product


def test_block_measures_and_inventory_value(db_session, company):
    product = _create(
        db_session,
        company,
        length_cm=280,
        width_cm=150,
        height_cm=120,
        weight_ton=12.5,
        valuation=300,
    )
    assert product.area_m2 == 4.2
    assert product.volume_m3 == 5.04
    assert product.inventory_value == 3750.0


def test_slab_volume_uses_thickness(db_session, company):
    product = _create(
        db_session,
        company,
        form=product_models.ProductFormEnum.SLAB,
        length_cm=300,
        width_cm=200,
        height_cm=50,
        thickness_cm=2,
        valuation=80,
    )
    assert product.area_m2 == 6.0
    assert product.volume_m3 == 0.12
    assert product.inventory_value == 480.0


def test_measures_are_none_without_length_and_width():
    assert product_services.compute_measures(
        form=product_models.ProductFormEnum.BLOCK,
        length_cm=None,
        width_cm=100,
        height_cm=100,
        thickness_cm=None,
    ) == (None, None)


def test_idmm_is_unique_case_insensitively(db_session, company):
    _create(db_session, company, idmm="MM-7")

    with pytest.raises(HTTPException) as exc:
        _create(db_session, company, idmm="mm-7")
    assert exc.value.status_code == 409


def test_lookup_by_idmm(db_session, company, other_company):
    product = _create(db_session, company, idmm="MM-2026-042")

    found = product_services.get_product_by_idmm(db_session, company_id=company.id, idmm=" mm-2026-042 ")
    assert found.id == product.id
    assert product_services.get_product_by_idmm(db_session, company_id=other_company.id, idmm="MM-2026-042") is None
    assert product_services.get_product_by_idmm(db_session, company_id=company.id, idmm="") is None


def test_update_replaces_pargas_and_recomputes(db_session, company):
    product = _create(
        db_session,
        company,
        form=product_models.ProductFormEnum.SLAB,
        length_cm=100,
        width_cm=100,
        pargas=[{"slot": 1, "name": "Parga 1", "quantity": 10}],
    )
    assert [p.slot for p in product.pargas] == [1]

    updated = product_services.update_product(
        db_session,
        company_id=company.id,
        product=product,
        payload=product_schemas.ProductUpdate(
            thickness_cm=3,
            pargas=[{"slot": 2, "quantity": 4}, {"slot": 3, "quantity": 6}],
        ),
    )
    db_session.commit()

    assert [p.slot for p in updated.pargas] == [2, 3]
    assert updated.volume_m3 == 0.03


def test_update_rewrites_an_existing_parga_slot(db_session, company):
    product = _create(
        db_session,
        company,
        form=product_models.ProductFormEnum.SLAB,
        pargas=[{"slot": 1, "name": "Parga 1", "quantity": 10}, {"slot": 2, "quantity": 3}],
    )

    product_services.update_product(
        db_session,
        company_id=company.id,
        product=product,
        payload=product_schemas.ProductUpdate(
            pargas=[{"slot": 1, "quantity": 5}, {"slot": 3, "quantity": 1}],
        ),
    )
    db_session.commit()
    db_session.expire_all()

    stored = (
        db_session.query(product_models.ProductParga)
        .filter(product_models.ProductParga.product_id == product.id)
        .order_by(product_models.ProductParga.slot)
        .all()
    )
    assert [(p.slot, p.name, p.quantity) for p in stored] == [(1, None, 5), (3, None, 1)]


@pytest.mark.parametrize("field", ["idmm", "stone_type", "form"])
def test_update_rejects_null_for_required_fields(field):
    with pytest.raises(ValueError):
        product_schemas.ProductUpdate.model_validate({field: None})


def test_update_payload_cannot_change_active_flag(db_session, company):
    product = _create(db_session, company)
    payload = product_schemas.ProductUpdate.model_validate({"is_active": False, "valuation": 120})
    assert "is_active" not in payload.model_dump(exclude_unset=True)

    product_services.update_product(db_session, company_id=company.id, product=product, payload=payload)
    db_session.commit()
    assert product.is_active is True
    assert product.valuation == 120


def test_reactivate_product(db_session, company, admin):
    product = _create(db_session, company)
    product_services.deactivate_product(db_session, company_id=company.id, product=product, actor=admin)
    db_session.commit()

    product_services.reactivate_product(db_session, company_id=company.id, product=product, actor=admin)
    db_session.commit()

    listed = product_services.list_products(db_session, company_id=company.id)
    assert [p.id for p in listed] == [product.id]


def test_duplicate_parga_slots_fail_validation():
    with pytest.raises(ValueError):
        product_schemas.ProductCreate(
            idmm="X",
            stone_type="Granito",
            pargas=[{"slot": 1}, {"slot": 1}],
        )


def test_list_products_filters(db_session, company, admin):
    _create(db_session, company, idmm="MM-1", stone_type="Mármore")
    granite = _create(db_session, company, idmm="MM-2", stone_type="Granito")
    old = _create(db_session, company, idmm="MM-3", stone_type="Granito")
    product_services.deactivate_product(db_session, company_id=company.id, product=old, actor=admin)
    db_session.commit()

    listed = product_services.list_products(db_session, company_id=company.id, stone_type="gran")
    assert [p.id for p in listed] == [granite.id]
    assert product_services.list_stone_types(db_session, company_id=company.id) == ["Granito", "Mármore"]


def test_public_link_and_qr_png(db_session, company):
    product = _create(db_session, company, idmm="MM 2026/001")

    url = product_services.product_public_url(product.idmm)
    assert url.endswith("/p/MM%202026%2F001")
    assert product_services.product_qr_filename(product.idmm) == "qrcode-MM_2026_001.png"
    png = product_services.product_qr_png(product)
    assert png.startswith(b"\x89PNG")


def test_product_routes_are_registered():
    paths = {route.path for route in products_router.router.routes}
    assert {
        "/products/",
        "/products/stone-types",
        "/products/by-idmm/{idmm}",
        "/products/{product_id}",
        "/products/{product_id}/public-link",
        "/products/{product_id}/qr-code",
        "/products/{product_id}/reactivate",
    } <= paths
