from __future__ import annotations

import logging
import math
import re
import unicodedata
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mmstock.apps.audit import services as audit_services
from mmstock.apps.inventory import schemas as inventory_schemas
from mmstock.apps.inventory import services as inventory_services
from mmstock.apps.inventory.models import DocumentTypeEnum, MaterialOriginEnum, MovementTypeEnum
from mmstock.apps.locations import models as location_models
from mmstock.apps.locations import services as location_services
from mmstock.apps.locations.schemas import LocationSummary
from mmstock.apps.products import models as product_models
from mmstock.apps.products import schemas as product_schemas
from mmstock.apps.products import services as product_services
from . import schemas

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}
CSV_EXTENSIONS = {".csv"}

# Canonical field -> accepted header names, most specific first.
COLUMN_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "idmm": ("id_mm", "idmm", "id mm", "id-mm", "codigo", "ref"),
    "variety": ("variedade", "tipo_pedra", "tipo pedra", "tipo", "material", "pedra"),
    "commercial_name": ("nome_comercial", "nome comercial", "nome", "comercial"),
    "form": ("forma", "tipo_produto", "tipo produto", "formato"),
    "finish": ("acabamento", "acabam", "finish"),
    "dimensions": ("dimensoes", "dimensões", "dim"),
    "length": ("comprimento_cm", "comprimento", "comp", "c"),
    "width": ("largura_cm", "largura", "larg", "l"),
    "height": ("altura_cm", "altura", "alt", "h"),
    "thickness": ("espessura_cm", "espessura", "esp", "e"),
    "weight": ("peso_ton", "peso ton", "peso", "ton", "toneladas"),
    "parque": ("parque_mm", "parque mm", "parquemm", "parque", "local", "localizacao", "localização"),
    "line": ("linha", "corredor", "fila", "posicao", "posição"),
    "origin": ("origem_material", "origem material", "origem", "proveniencia", "proveniência"),
    "quantity": ("quantidade", "qtd", "qty", "un", "unidades"),
    "notes": ("notas", "observacoes", "observações", "obs", "danos", "defeitos"),
    "photo1": ("foto1_url", "foto1", "foto", "imagem", "url"),
    "photo2": ("foto2_url", "foto2"),
    "photo3": ("foto3_url", "foto3"),
    "photo4": ("foto4_url", "foto4"),
    "date": ("data", "data_registo", "data registo", "date"),
}

# Positional fallbacks when no header matches.
FALLBACK_COLUMNS = {"idmm": 0, "variety": 1}

MIN_FUZZY_CANDIDATE_LENGTH = 3
MAX_PHOTOS = 4

_DIMENSIONS_RE = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*[xX×]\s*(\d+(?:[.,]\d+)?)\s*(?:[xX×]\s*(\d+(?:[.,]\d+)?))?"
)

PRODUCT_EXISTS_WARNING = "Produto já existe - será criado apenas o movimento"


# ---------------------------------------------------------------------------
# HEADER MATCHING
# ---------------------------------------------------------------------------


def normalise_header(name: Any) -> str:
    """Lower-case, strip accents, drop underscores and whitespace."""
    text = unicodedata.normalize("NFD", str(name or "").strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[_\s]+", "", text)


def find_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[int]:
    """
    Index of the first header matching one of `candidates`.

    Passes: exact match, then prefix, then substring. Candidates shorter than
    three characters only take part in the exact pass.
    """
    normalised_headers = [normalise_header(h) for h in headers]
    normalised_candidates = [normalise_header(c) for c in candidates]

    for candidate in normalised_candidates:
        if candidate in normalised_headers:
            return normalised_headers.index(candidate)

    fuzzy = [c for c in normalised_candidates if len(c) >= MIN_FUZZY_CANDIDATE_LENGTH]
    for candidate in fuzzy:
        for idx, header in enumerate(normalised_headers):
            if header.startswith(candidate):
                return idx
    for candidate in fuzzy:
        for idx, header in enumerate(normalised_headers):
            if candidate in header:
                return idx
    return None


def map_columns(headers: Sequence[str]) -> Dict[str, Optional[int]]:
    column_map = {
        field: find_column(headers, candidates)
        for field, candidates in COLUMN_CANDIDATES.items()
    }
    for field, position in FALLBACK_COLUMNS.items():
        if column_map[field] is None and len(headers) > position:
            column_map[field] = position
    return column_map


# ---------------------------------------------------------------------------
# CELL PARSING
# ---------------------------------------------------------------------------


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def _cell(row: Sequence[Any], column_map: Dict[str, Optional[int]], field: str) -> Any:
    idx = column_map.get(field)
    if idx is None or idx >= len(row):
        return None
    value = row[idx]
    return None if _is_blank(value) else value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """Numeric cell value; accepts `,` as decimal separator. Blank or junk gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().replace(",", "."))
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _positive(value: Any) -> Optional[float]:
    number = parse_number(value)
    return number if number is not None and number > 0 else None


def parse_dimensions(value: Any) -> Optional[Tuple[float, float, Optional[float]]]:
    """Parse `200x150x80` style text (x, X or ×; `,` or `.` decimals)."""
    if value is None:
        return None
    match = _DIMENSIONS_RE.search(str(value).strip())
    if not match:
        return None
    first, second, third = (
        float(group.replace(",", ".")) if group else None for group in match.groups()
    )
    return first, second, third


def parse_form(value: Any) -> product_models.ProductFormEnum:
    text = _text(value).lower()
    if "chapa" in text:
        return product_models.ProductFormEnum.SLAB
    if any(token in text for token in ("ladrilho", "azulejo", "mosaico")):
        return product_models.ProductFormEnum.TILE
    return product_models.ProductFormEnum.BLOCK


def parse_origin(value: Any) -> MaterialOriginEnum:
    text = _text(value).lower()
    if any(token in text for token in ("adquirido", "compra", "ext")):
        return MaterialOriginEnum.PURCHASED
    return MaterialOriginEnum.OWN_PRODUCTION


def parse_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = pd.to_datetime(value.strip(), dayfirst=True, errors="coerce")
        if pd.isna(parsed):
            return None
        parsed = parsed.to_pydatetime()
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _photos(row: Sequence[Any], column_map: Dict[str, Optional[int]]) -> List[str]:
    photos: List[str] = []
    for slot in range(1, MAX_PHOTOS + 1):
        url = _text(_cell(row, column_map, f"photo{slot}"))
        if url.startswith(("http://", "https://")):
            photos.append(url)
    return photos[:MAX_PHOTOS]


def parse_row(row: Sequence[Any], column_map: Dict[str, Optional[int]]) -> Optional[schemas.ImportRowData]:
    """Turn one spreadsheet row into import data. Empty rows and rows without IDMM give None."""
    if all(_is_blank(value) for value in row):
        return None
    idmm = _text(_cell(row, column_map, "idmm"))
    if not idmm:
        return None

    form = parse_form(_cell(row, column_map, "form"))
    length = width = height = thickness = None
    dimensions = parse_dimensions(_cell(row, column_map, "dimensions"))
    if dimensions:
        length, width, third = dimensions
        if form == product_models.ProductFormEnum.BLOCK:
            height = third
        else:
            thickness = third
    else:
        length = _positive(_cell(row, column_map, "length"))
        width = _positive(_cell(row, column_map, "width"))
        height = _positive(_cell(row, column_map, "height"))
    if thickness is None:
        thickness = _positive(_cell(row, column_map, "thickness"))

    quantity = parse_number(_cell(row, column_map, "quantity"))
    if not quantity:
        quantity = 1.0

    return schemas.ImportRowData(
        idmm=idmm,
        variety=_text(_cell(row, column_map, "variety")),
        commercial_name=_text(_cell(row, column_map, "commercial_name")) or None,
        form=form,
        finish=_text(_cell(row, column_map, "finish")) or None,
        length_cm=length,
        width_cm=width,
        height_cm=height,
        thickness_cm=thickness,
        weight_ton=_positive(_cell(row, column_map, "weight")),
        parque=_text(_cell(row, column_map, "parque")),
        line=_text(_cell(row, column_map, "line")) or None,
        material_origin=parse_origin(_cell(row, column_map, "origin")),
        quantity=quantity,
        notes=_text(_cell(row, column_map, "notes")) or None,
        photos=_photos(row, column_map),
        movement_date=parse_date(_cell(row, column_map, "date")),
    )


# ---------------------------------------------------------------------------
# FILE READING
# ---------------------------------------------------------------------------


def read_sheet(content: bytes, filename: Optional[str]) -> pd.DataFrame:
    """Load the first sheet with no header inference; row 0 holds the headers."""
    ext = Path(filename or "").suffix.lower()
    buffer = BytesIO(content)
    try:
        if ext in CSV_EXTENSIONS:
            df = pd.read_csv(buffer, header=None, dtype=object)
        elif ext in EXCEL_EXTENSIONS:
            df = pd.read_excel(buffer, header=None, dtype=object)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Formato não suportado. Use XLSX, XLSM, XLS ou CSV.",
            )
    except HTTPException:
        raise
    except (ValueError, OSError) as exc:
        logger.warning("Failed to read import file", extra={"import_filename": filename}, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Não foi possível ler o ficheiro.",
        ) from exc

    if len(df.index) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="O ficheiro não contém dados suficientes",
        )
    return df


# ---------------------------------------------------------------------------
# PREVIEW
# ---------------------------------------------------------------------------


def _validate_rows(
    db: Session,
    *,
    company_id: str,
    parsed: List[Tuple[int, schemas.ImportRowData]],
) -> List[schemas.ImportRowPreview]:
    locations = location_services.list_locations(db, company_id=company_id, active_only=True)
    existing_idmms: Dict[str, bool] = {
        idmm.lower(): bool(is_active)
        for idmm, is_active in db.query(product_models.Product.idmm, product_models.Product.is_active)
        .filter(product_models.Product.company_id == company_id)
        .all()
    }
    seen: Dict[str, int] = {}

    previews: List[schemas.ImportRowPreview] = []
    for row_number, data in parsed:
        errors: List[str] = []
        warnings: List[str] = []

        if not data.variety:
            errors.append("Variedade/Tipo de pedra obrigatório")

        location: Optional[location_models.Location] = None
        if not data.parque:
            errors.append("Parque obrigatório")
        else:
            location = location_services.match_location(locations, data.parque)
            if location is None:
                errors.append(f"Parque '{data.parque}' não encontrado")

        if data.quantity <= 0:
            errors.append("Quantidade deve ser maior que 0")

        key = data.idmm.lower()
        exists = existing_idmms.get(key, False)
        if exists:
            warnings.append(PRODUCT_EXISTS_WARNING)
        elif key in existing_idmms:
            # Execute only moves stock into active products.
            errors.append(f"Produto {data.idmm} está desativado")
        if key in seen:
            warnings.append(f"IDMM repetido no ficheiro (linha {seen[key]})")
        else:
            seen[key] = row_number

        if errors:
            action = "invalid"
        elif exists:
            action = "existing"
        else:
            action = "new"

        previews.append(
            schemas.ImportRowPreview(
                row_number=row_number,
                data=data,
                errors=errors,
                warnings=warnings,
                action=action,
                location=LocationSummary.model_validate(location) if location else None,
            )
        )
    return previews


def build_preview(
    db: Session,
    *,
    company_id: str,
    content: bytes,
    filename: Optional[str],
) -> schemas.ImportPreview:
    df = read_sheet(content, filename)
    headers = ["" if _is_blank(value) else _text(value) for value in df.iloc[0].tolist()]
    column_map = map_columns(headers)

    parsed: List[Tuple[int, schemas.ImportRowData]] = []
    for position in range(1, len(df.index)):
        data = parse_row(df.iloc[position].tolist(), column_map)
        if data is not None:
            # Spreadsheet line numbers are 1-based with the header on line 1.
            parsed.append((position + 1, data))

    rows = _validate_rows(db, company_id=company_id, parsed=parsed)
    summary = schemas.ImportSummary(
        total=len(rows),
        valid=sum(1 for row in rows if row.action != "invalid"),
        invalid=sum(1 for row in rows if row.action == "invalid"),
        new_products=sum(1 for row in rows if row.action == "new"),
        existing_products=sum(1 for row in rows if row.action == "existing"),
    )
    return schemas.ImportPreview(
        filename=filename,
        column_map={field: idx for field, idx in column_map.items() if idx is not None},
        rows=rows,
        summary=summary,
    )


# ---------------------------------------------------------------------------
# EXECUTE
# ---------------------------------------------------------------------------


def _detail_text(detail: Any) -> str:
    if isinstance(detail, (list, tuple)):
        return "; ".join(str(item) for item in detail)
    return str(detail)


def _product_payload(data: schemas.ImportRowData) -> product_schemas.ProductCreate:
    photos = {f"photo{idx}_url": url for idx, url in enumerate(data.photos, start=1)}
    return product_schemas.ProductCreate(
        idmm=data.idmm,
        stone_type=data.variety,
        variety=data.variety,
        commercial_name=data.commercial_name,
        form=data.form,
        finish=data.finish,
        length_cm=data.length_cm,
        width_cm=data.width_cm,
        height_cm=data.height_cm,
        thickness_cm=data.thickness_cm,
        weight_ton=data.weight_ton,
        line=data.line,
        notes=data.notes,
        **photos,
    )


def _movement_payload(
    row: schemas.ImportRowPreview,
    *,
    product_id: str,
) -> inventory_schemas.MovementCreate:
    data = row.data
    purchased = data.material_origin == MaterialOriginEnum.PURCHASED
    return inventory_schemas.MovementCreate(
        movement_type=MovementTypeEnum.ENTRY,
        material_origin=data.material_origin,
        document_type=DocumentTypeEnum.TRANSPORT_GUIDE if purchased else DocumentTypeEnum.NONE,
        document_number=f"IMPORT-{row.row_number}" if purchased else None,
        product_id=product_id,
        quantity=data.quantity,
        destination_location_id=row.location.id,
        notes="Importação de inventário",
        movement_date=data.movement_date,
    )


def execute_import(
    db: Session,
    *,
    company_id: str,
    content: bytes,
    filename: Optional[str],
    actor,
) -> schemas.ImportResult:
    """
    Create products and entrada movements for every valid row.

    Each row runs in its own SAVEPOINT: a failing row is rolled back and
    reported while the others are kept.
    """
    preview = build_preview(db, company_id=company_id, content=content, filename=filename)
    valid_rows = [row for row in preview.rows if row.action != "invalid"]
    if not valid_rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nenhuma linha válida para importar",
        )

    products_created = 0
    movements_created = 0
    errors: List[schemas.ImportRowError] = []

    for row in valid_rows:
        try:
            with db.begin_nested():
                created = False
                product = product_services.get_product_by_idmm(
                    db, company_id=company_id, idmm=row.data.idmm
                )
                if product is None:
                    product = product_services.create_product(
                        db,
                        company_id=company_id,
                        payload=_product_payload(row.data),
                        actor=actor,
                        audit=False,
                    )
                    created = True
                inventory_services.create_movement(
                    db,
                    company_id=company_id,
                    payload=_movement_payload(row, product_id=product.id),
                    actor=actor,
                    audit_metadata={"source": "import", "row": row.row_number},
                )
        except HTTPException as exc:
            errors.append(schemas.ImportRowError(row=row.row_number, error=_detail_text(exc.detail)))
            continue
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning(
                "Import row failed",
                extra={"company_id": company_id, "row": row.row_number},
                exc_info=True,
            )
            errors.append(schemas.ImportRowError(row=row.row_number, error=str(exc)))
            continue
        products_created += int(created)
        movements_created += 1

    processed = movements_created
    result = schemas.ImportResult(
        success=processed > 0,
        total_rows=preview.summary.total,
        processed_rows=processed,
        products_created=products_created,
        movements_created=movements_created,
        skipped_rows=preview.summary.total - processed,
        errors=errors,
        finished_at=datetime.now(timezone.utc),
    )

    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="importacao",
        entity_id=None,
        action="importar",
        description=(
            f"Importação de inventário: {products_created} produtos e "
            f"{movements_created} movimentos criados"
        ),
        metadata={
            "filename": filename,
            "total_rows": result.total_rows,
            "processed_rows": processed,
            "errors": len(errors),
        },
    )
    logger.info(
        "Inventory import finished",
        extra={
            "company_id": company_id,
            "processed_rows": processed,
            "products_created": products_created,
            "error_count": len(errors),
        },
    )
    return result
