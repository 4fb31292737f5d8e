from __future__ import annotations

from datetime import date
from io import BytesIO

import pytest
from openpyxl import load_workbook

from mmstock.apps.exports import router as exports_router
from mmstock.apps.exports import services as export_services
from mmstock.apps.inventory import schemas as inventory_schemas
from mmstock.apps.inventory import services as inventory_services
from mmstock.apps.products import models as product_models


def _product(db, company, idmm, **fields):
    product = product_models.Product(company_id=company.id, idmm=idmm, stone_type="Mármore", **fields)
    db.add(product)
    db.commit()
    return product


def _entry(db, company, actor, product, location, quantity):
    inventory_services.create_movement(
        db,
        company_id=company.id,
        payload=inventory_schemas.MovementCreate(
            movement_type="entrada",
            material_origin="producao_propria",
            product_id=product.id,
            quantity=quantity,
            destination_location_id=location.id,
        ),
        actor=actor,
    )
    db.commit()


def _sheet(content):
    return load_workbook(BytesIO(content)).active


@pytest.mark.parametrize(
    "value,expected",
    [
        ("#1a56db", "FF1A56DB"),
        ("057a55", "FF057A55"),
        ("#abc", "FFAABBCC"),
        ("#zzzzzz", "FF1A56DB"),
        (None, "FF1A56DB"),
    ],
)
def test_argb_from_hex(value, expected):
    assert export_services.argb_from_hex(value) == expected


def test_export_filename():
    name = export_services.export_filename(export_services.ExportKind.MOVEMENTS, "magratex", date(2026, 3, 10))
    assert name == "movimentos_magratex_2026-03-10.xlsx"


def test_totals_row_sums_named_columns():
    headers = ["IDMM", "Quantidade", "Notas"]
    rows = [["A", 2, "x"], ["B", 1.5, None], ["C", None, ""]]
    assert export_services.totals_row(headers, rows, ["Quantidade"]) == ["TOTAIS", 3.5, None]


def test_workbook_header_uses_brand_colour():
    content = export_services.build_workbook(
        sheet_title="Stock",
        headers=["IDMM", "Quantidade"],
        rows=[["MM-1", 2]],
        brand_color="#057a55",
    )
    ws = _sheet(content)

    header = ws["A1"]
    assert header.value == "IDMM"
    assert header.font.bold is True
    assert header.fill.start_color.rgb == "FF057A55"
    assert ws.freeze_panes == "A2"
    assert ws.max_row == 2


def test_stock_export_has_totals(db_session, company, operator, parques):
    first = _product(db_session, company, "MM-1")
    second = _product(db_session, company, "MM-2")
    _entry(db_session, company, operator, first, parques["MM001"], 3)
    _entry(db_session, company, operator, second, parques["MM002"], 2)

    filename, content = export_services.build_export(
        db_session,
        company=company,
        kind=export_services.ExportKind.STOCK,
        today=date(2026, 3, 10),
    )
    ws = _sheet(content)

    assert filename == "stock_multimarmore_2026-03-10.xlsx"
    assert ws.title == "Stock"
    assert [ws.cell(row=r, column=1).value for r in range(2, 5)] == ["MM-1", "MM-2", "TOTAIS"]
    assert ws.cell(row=4, column=7).value == 5


def test_stock_export_filters_by_parque(db_session, company, operator, parques):
    first = _product(db_session, company, "MM-1")
    _entry(db_session, company, operator, first, parques["MM001"], 3)
    _entry(db_session, company, operator, first, parques["MM003"], 1)

    _, content = export_services.build_export(
        db_session,
        company=company,
        kind=export_services.ExportKind.STOCK,
        filters={"location_id": parques["MM003"].id, "stone_type": None},
    )
    ws = _sheet(content)
    assert ws.cell(row=2, column=5).value == "MM003"
    assert ws.cell(row=3, column=1).value == "TOTAIS"


def test_products_export_values(db_session, company):
    _product(
        db_session,
        company,
        "MM-1",
        form=product_models.ProductFormEnum.BLOCK,
        length_cm=280,
        width_cm=150,
        height_cm=120,
        area_m2=4.2,
        volume_m3=5.04,
        weight_ton=12.5,
        valuation=300,
    )

    _, content = export_services.build_export(
        db_session, company=company, kind=export_services.ExportKind.PRODUCTS
    )
    ws = _sheet(content)
    row = [cell.value for cell in ws[2]]
    assert row[:4] == ["MM-1", "Mármore", "bloco", "280 x 150 x 120"]
    assert row[-1] == 3750
    assert ws.cell(row=3, column=1).value == "TOTAIS"


def test_movements_export_without_totals(db_session, company, operator, parques):
    product = _product(db_session, company, "MM-1")
    _entry(db_session, company, operator, product, parques["MM001"], 3)

    _, content = export_services.build_export(
        db_session, company=company, kind=export_services.ExportKind.MOVEMENTS
    )
    ws = _sheet(content)
    assert ws.title == "Movimentos"
    assert ws.max_row == 2
    assert [ws.cell(row=2, column=c).value for c in (2, 3, 6, 9, 10)] == [
        "Entrada",
        "MM-1",
        parques["MM001"].name,
        "Rui Operador",
        "Não",
    ]


def test_router_drops_filters_the_kind_does_not_take():
    filters = exports_router._filters_for(
        export_services.ExportKind.PRODUCTS,
        {"stone_type": "Granito", "location_id": "loc-1", "idmm": None},
    )
    assert filters == {"stone_type": "Granito"}
