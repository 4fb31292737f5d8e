from __future__ import annotations

import enum
import logging
from datetime import date, datetime
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.apps.inventory import models as inventory_models
from mmstock.apps.inventory import services as inventory_services
from mmstock.apps.products import services as product_services

logger = logging.getLogger(__name__)

MAX_COLUMN_WIDTH = 40
COLUMN_PADDING = 3
TOTALS_LABEL = "TOTAIS"
DEFAULT_BRAND_COLOR = "#1a56db"


class ExportKind(str, enum.Enum):
    STOCK = "stock"
    MOVEMENTS = "movimentos"
    PRODUCTS = "produtos"


MOVEMENT_TYPE_LABELS = {
    inventory_models.MovementTypeEnum.ENTRY: "Entrada",
    inventory_models.MovementTypeEnum.TRANSFER: "Transferência",
    inventory_models.MovementTypeEnum.EXIT: "Saída",
}


# ---------------------------------------------------------------------------
# WORKBOOK
# ---------------------------------------------------------------------------


def argb_from_hex(color: Optional[str]) -> str:
    """'#1a56db' -> 'FF1A56DB'. Invalid colours fall back to the default brand colour."""
    value = (color or "").strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    try:
        int(value, 16)
    except ValueError:
        value = ""
    if len(value) != 6:
        value = DEFAULT_BRAND_COLOR.lstrip("#")
    return f"FF{value.upper()}"


def _display_width(value: Any) -> int:
    if value is None:
        return 0
    return len(str(value))


def totals_row(headers: Sequence[str], rows: Sequence[Sequence[Any]], columns: Sequence[str]) -> List[Any]:
    """`TOTAIS` in the first cell and the sum of each named column."""
    totals: List[Any] = [None] * len(headers)
    totals[0] = TOTALS_LABEL
    for name in columns:
        idx = list(headers).index(name)
        totals[idx] = round(sum(float(row[idx] or 0) for row in rows), 4)
    return totals


def build_workbook(
    *,
    sheet_title: str,
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    brand_color: Optional[str],
    totals: Optional[Sequence[Any]] = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]

    ws.append(list(headers))
    fill = PatternFill(fill_type="solid", start_color=argb_from_hex(brand_color), end_color=argb_from_hex(brand_color))
    for cell in ws[1]:
        cell.font = Font(bold=True, color="FFFFFFFF")
        cell.fill = fill

    for row in rows:
        ws.append(list(row))
    if totals is not None:
        ws.append(list(totals))
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)

    all_rows = [list(headers), *[list(r) for r in rows]]
    if totals is not None:
        all_rows.append(list(totals))
    for idx in range(len(headers)):
        widest = max(_display_width(r[idx]) for r in all_rows if idx < len(r))
        ws.column_dimensions[get_column_letter(idx + 1)].width = min(widest, MAX_COLUMN_WIDTH) + COLUMN_PADDING

    ws.freeze_panes = "A2"

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_filename(kind: ExportKind, company_slug: str, today: Optional[date] = None) -> str:
    return f"{kind.value}_{company_slug}_{(today or date.today()).isoformat()}.xlsx"


# ---------------------------------------------------------------------------
# ROW BUILDERS
# ---------------------------------------------------------------------------


def _fmt_datetime(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def _dimensions(product) -> str:
    third = product.height_cm if product.height_cm is not None else product.thickness_cm
    parts = [product.length_cm, product.width_cm, third]
    if all(part is None for part in parts):
        return ""
    return " x ".join("-" if part is None else f"{part:g}" for part in parts)


def stock_sheet(db: Session, *, company_id: str, filters: Dict[str, Any]) -> Tuple[List[str], List[List[Any]], List[str]]:
    headers = ["IDMM", "Tipo de pedra", "Nome comercial", "Forma", "Código parque", "Parque", "Quantidade"]
    rows = [
        [
            level.product.idmm,
            level.product.stone_type,
            level.product.commercial_name or "",
            _enum_value(level.product.form),
            level.location.code,
            level.location.name,
            level.quantity,
        ]
        for level in inventory_services.list_stock(db, company_id=company_id, **filters)
    ]
    return headers, rows, ["Quantidade"]


def movements_sheet(db: Session, *, company_id: str, filters: Dict[str, Any]) -> Tuple[List[str], List[List[Any]], List[str]]:
    headers = [
        "Data",
        "Tipo",
        "IDMM",
        "Quantidade",
        "Origem",
        "Destino",
        "Cliente",
        "Documento",
        "Operador",
        "Cancelado",
    ]
    filters = dict(filters)
    filters.setdefault("limit", None)
    rows = []
    for movement in inventory_services.list_movements(db, company_id=company_id, **filters):
        document = ""
        if movement.document_type != inventory_models.DocumentTypeEnum.NONE:
            document = f"{_enum_value(movement.document_type)} {movement.document_number or ''}".strip()
        rows.append(
            [
                _fmt_datetime(movement.movement_date),
                MOVEMENT_TYPE_LABELS.get(movement.movement_type, _enum_value(movement.movement_type)),
                movement.product.idmm if movement.product else "",
                movement.quantity,
                movement.origin_location.name if movement.origin_location else "",
                movement.destination_location.name if movement.destination_location else "",
                movement.client.name if movement.client else "",
                document,
                movement.operator.full_name if movement.operator else "",
                "Sim" if movement.is_cancelled else "Não",
            ]
        )
    return headers, rows, []


def products_sheet(db: Session, *, company_id: str, filters: Dict[str, Any]) -> Tuple[List[str], List[List[Any]], List[str]]:
    headers = [
        "IDMM",
        "Tipo de pedra",
        "Forma",
        "Dimensões (cm)",
        "Área (m²)",
        "Volume (m³)",
        "Peso (ton)",
        "Valorização",
        "Valor inventário",
    ]
    rows = [
        [
            product.idmm,
            product.stone_type,
            _enum_value(product.form),
            _dimensions(product),
            product.area_m2,
            product.volume_m3,
            product.weight_ton,
            product.valuation,
            product.inventory_value,
        ]
        for product in product_services.list_products(db, company_id=company_id, **filters)
    ]
    return headers, rows, ["Área (m²)", "Volume (m³)", "Peso (ton)", "Valor inventário"]


_SHEETS: Dict[ExportKind, Tuple[str, Callable[..., Tuple[List[str], List[List[Any]], List[str]]]]] = {
    ExportKind.STOCK: ("Stock", stock_sheet),
    ExportKind.MOVEMENTS: ("Movimentos", movements_sheet),
    ExportKind.PRODUCTS: ("Produtos", products_sheet),
}


def build_export(
    db: Session,
    *,
    company: account_models.Company,
    kind: ExportKind,
    filters: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> Tuple[str, bytes]:
    """Return (filename, xlsx bytes) for an export kind."""
    try:
        sheet_title, builder = _SHEETS[kind]
    except KeyError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tipo de exportação desconhecido")

    clean_filters = {key: value for key, value in (filters or {}).items() if value is not None}
    headers, rows, total_columns = builder(db, company_id=company.id, filters=clean_filters)
    totals = totals_row(headers, rows, total_columns) if total_columns else None
    content = build_workbook(
        sheet_title=sheet_title,
        headers=headers,
        rows=rows,
        brand_color=company.brand_color,
        totals=totals,
    )
    logger.info(
        "Built export",
        extra={"company_id": company.id, "export_kind": kind.value, "row_count": len(rows)},
    )
    return export_filename(kind, company.slug, today), content
