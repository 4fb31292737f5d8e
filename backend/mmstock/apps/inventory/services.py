from __future__ import annotations

import logging
import os
from collections import OrderedDict
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from mmstock.apps.accounts import services as account_services
from mmstock.apps.audit import services as audit_services
from mmstock.apps.clients import models as client_models
from mmstock.apps.locations import models as location_models
from mmstock.apps.products import models as product_models
from . import models, schemas

logger = logging.getLogger(__name__)

DEFAULT_MOVEMENT_LIMIT = 100
LOW_STOCK_THRESHOLD = float(os.getenv("LOW_STOCK_THRESHOLD", "5"))
QUANTITY_EPSILON = 1e-9

MOVEMENT_LABELS = {
    models.MovementTypeEnum.ENTRY: "entrada",
    models.MovementTypeEnum.TRANSFER: "transferência",
    models.MovementTypeEnum.EXIT: "saída",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# VALIDATION
# ---------------------------------------------------------------------------


def validate_movement_payload(payload: schemas.MovementCreate) -> List[str]:
    """
    Check the business rules of a new movement without touching the database.

    Returns the list of violated rules (empty when valid).
    """
    errors: List[str] = []
    kind = payload.movement_type
    if kind is None:
        return ["Tipo de movimento obrigatório"]

    document_missing = (
        payload.document_type == models.DocumentTypeEnum.NONE
        or not (payload.document_number or "").strip()
    )
    if kind in (models.MovementTypeEnum.TRANSFER, models.MovementTypeEnum.EXIT):
        if payload.document_type == models.DocumentTypeEnum.NONE:
            label = "transferências" if kind == models.MovementTypeEnum.TRANSFER else "saídas"
            errors.append(f"Documento obrigatório para {label}")
        if not (payload.document_number or "").strip():
            errors.append("Número do documento é obrigatório")
    elif kind == models.MovementTypeEnum.ENTRY:
        if payload.material_origin is None:
            errors.append("A origem do material é obrigatória para entradas")
        elif payload.material_origin == models.MaterialOriginEnum.PURCHASED and document_missing:
            errors.append("Documento obrigatório para material adquirido")

    if not payload.product_id:
        errors.append("Produto obrigatório")
    if payload.quantity is None or payload.quantity <= 0:
        errors.append("Quantidade deve ser maior que 0")

    if kind == models.MovementTypeEnum.ENTRY:
        if not payload.destination_location_id:
            errors.append("Parque de destino obrigatório")
    elif kind == models.MovementTypeEnum.TRANSFER:
        if not payload.origin_location_id:
            errors.append("Parque de origem obrigatório")
        if not payload.destination_location_id:
            errors.append("Parque de destino obrigatório")
        if (
            payload.origin_location_id
            and payload.origin_location_id == payload.destination_location_id
        ):
            errors.append("Parque de origem e destino devem ser diferentes")
    elif kind == models.MovementTypeEnum.EXIT:
        if not payload.origin_location_id:
            errors.append("Parque de origem obrigatório")
        if not payload.client_id:
            errors.append("Cliente obrigatório")
    return errors


def shape_movement_payload(payload: schemas.MovementCreate) -> schemas.MovementCreate:
    """Drop the fields that do not apply to the movement type."""
    kind = payload.movement_type
    return payload.model_copy(
        update={
            "material_origin": payload.material_origin if kind == models.MovementTypeEnum.ENTRY else None,
            "origin_location_id": payload.origin_location_id if kind != models.MovementTypeEnum.ENTRY else None,
            "destination_location_id": (
                payload.destination_location_id if kind != models.MovementTypeEnum.EXIT else None
            ),
            "client_id": payload.client_id if kind == models.MovementTypeEnum.EXIT else None,
            "document_number": (payload.document_number or "").strip() or None,
        }
    )


def _check_references(db: Session, *, company_id: str, payload: schemas.MovementCreate) -> List[str]:
    errors: List[str] = []
    product = (
        db.query(product_models.Product.id)
        .filter(
            product_models.Product.id == payload.product_id,
            product_models.Product.company_id == company_id,
            product_models.Product.is_active.is_(True),
        )
        .first()
    )
    if not product:
        errors.append("Produto não encontrado")

    for field, label in (
        ("origin_location_id", "origem"),
        ("destination_location_id", "destino"),
    ):
        location_id = getattr(payload, field)
        if not location_id:
            continue
        found = (
            db.query(location_models.Location.id)
            .filter(
                location_models.Location.id == location_id,
                location_models.Location.company_id == company_id,
                location_models.Location.is_active.is_(True),
            )
            .first()
        )
        if not found:
            errors.append(f"Parque de {label} não encontrado")

    if payload.client_id:
        found = (
            db.query(client_models.Client.id)
            .filter(
                client_models.Client.id == payload.client_id,
                client_models.Client.company_id == company_id,
            )
            .first()
        )
        if not found:
            errors.append("Cliente não encontrado")
    return errors


# ---------------------------------------------------------------------------
# STOCK BOOKKEEPING
# ---------------------------------------------------------------------------


def movement_effects(movement: models.Movement) -> List[Tuple[str, float]]:
    """Signed quantity per parque that the movement applies to stock."""
    qty = float(movement.quantity)
    if movement.movement_type == models.MovementTypeEnum.ENTRY:
        return [(movement.destination_location_id, qty)]
    if movement.movement_type == models.MovementTypeEnum.TRANSFER:
        return [
            (movement.origin_location_id, -qty),
            (movement.destination_location_id, qty),
        ]
    if movement.movement_type == models.MovementTypeEnum.EXIT:
        return [(movement.origin_location_id, -qty)]
    return []


def _locked_stock_row(
    db: Session,
    *,
    product_id: str,
    location_id: str,
) -> Optional[models.StockLevel]:
    return (
        db.query(models.StockLevel)
        .filter(
            models.StockLevel.product_id == product_id,
            models.StockLevel.location_id == location_id,
        )
        .with_for_update()
        .first()
    )


def _apply_effects(
    db: Session,
    *,
    company_id: str,
    product_id: str,
    effects: Sequence[Tuple[str, float]],
) -> None:
    """
    Apply signed deltas to stock rows.

    All rows are locked and checked before any is written, so a shortfall
    on one parque leaves every row untouched.
    """
    rows: Dict[str, Optional[models.StockLevel]] = {}
    for location_id, delta in effects:
        row = rows.get(location_id) or _locked_stock_row(db, product_id=product_id, location_id=location_id)
        rows[location_id] = row
        available = float(row.quantity) if row else 0.0
        if available + delta < -QUANTITY_EPSILON:
            location = db.get(location_models.Location, location_id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f"Stock insuficiente no parque {location.code if location else location_id}. "
                    f"Disponível: {available:g}"
                ),
            )

    for location_id, delta in effects:
        row = rows[location_id]
        if row is None:
            row = models.StockLevel(
                company_id=company_id,
                product_id=product_id,
                location_id=location_id,
                quantity=0.0,
            )
            db.add(row)
            rows[location_id] = row
        new_quantity = float(row.quantity or 0.0) + delta
        row.quantity = 0.0 if abs(new_quantity) < QUANTITY_EPSILON else new_quantity
        row.updated_at = _utcnow()
    db.flush()


def _snapshot(movement: models.Movement) -> dict:
    return {
        "movement_type": movement.movement_type.value,
        "product_id": movement.product_id,
        "quantity": movement.quantity,
        "origin_location_id": movement.origin_location_id,
        "destination_location_id": movement.destination_location_id,
        "client_id": movement.client_id,
        "document_type": movement.document_type.value if movement.document_type else None,
        "document_number": movement.document_number,
        "is_cancelled": bool(movement.is_cancelled),
    }


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


def create_movement(
    db: Session,
    *,
    company_id: str,
    payload: schemas.MovementCreate,
    actor,
    audit_metadata: Optional[dict] = None,
) -> models.Movement:
    """
    Validate and record a movement, updating stock levels in the same unit of work.

    With an idempotency key, a repeated request with the same body returns
    the movement recorded the first time.
    """
    errors = validate_movement_payload(payload)
    if errors:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=errors)
    payload = shape_movement_payload(payload)
    errors = _check_references(db, company_id=company_id, payload=payload)
    if errors:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=errors)

    idem = None
    if payload.idempotency_key:
        try:
            idem, created = account_services.register_idempotency_key(
                db,
                scope=f"movement-create:{company_id}",
                key=payload.idempotency_key,
                payload=payload.model_dump(mode="json", exclude={"idempotency_key"}),
            )
        except account_services.IdempotencyError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        if not created and idem.resource_id:
            return get_movement(db, company_id=company_id, movement_id=idem.resource_id)

    movement = models.Movement(
        company_id=company_id,
        movement_type=payload.movement_type,
        document_type=payload.document_type,
        document_number=payload.document_number,
        material_origin=payload.material_origin,
        product_id=payload.product_id,
        quantity=float(payload.quantity),
        origin_location_id=payload.origin_location_id,
        destination_location_id=payload.destination_location_id,
        client_id=payload.client_id,
        vehicle_plate=(payload.vehicle_plate or "").strip().upper() or None,
        operator_id=getattr(actor, "id", None),
        notes=payload.notes,
        movement_date=payload.movement_date or _utcnow(),
    )
    _apply_effects(
        db,
        company_id=company_id,
        product_id=movement.product_id,
        effects=movement_effects(movement),
    )
    db.add(movement)
    db.flush()
    if idem is not None:
        idem.resource_id = movement.id
        db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="movimento",
        entity_id=movement.id,
        action="criar",
        description=f"Movimento de {MOVEMENT_LABELS[movement.movement_type]} registado",
        after=_snapshot(movement),
        metadata=audit_metadata,
        critical=True,
    )
    return movement


def cancel_movement(
    db: Session,
    *,
    company_id: str,
    movement_id: str,
    reason: str,
    actor,
) -> models.Movement:
    """Mark a movement as cancelled and reverse its stock effects."""
    movement = get_movement(db, company_id=company_id, movement_id=movement_id)
    if movement.is_cancelled:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Movimento já cancelado")

    before = _snapshot(movement)
    reversed_effects = [(location_id, -delta) for location_id, delta in movement_effects(movement)]
    _apply_effects(
        db,
        company_id=company_id,
        product_id=movement.product_id,
        effects=reversed_effects,
    )

    movement.is_cancelled = True
    movement.cancelled_by_id = getattr(actor, "id", None)
    movement.cancelled_at = _utcnow()
    movement.cancellation_reason = reason.strip()
    db.add(movement)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="movimento",
        entity_id=movement.id,
        action="cancelar",
        description=f"Movimento de {MOVEMENT_LABELS[movement.movement_type]} cancelado: {movement.cancellation_reason}",
        before=before,
        after=_snapshot(movement),
        critical=True,
    )
    return movement


def get_movement(db: Session, *, company_id: str, movement_id: str) -> models.Movement:
    movement = (
        db.query(models.Movement)
        .filter(models.Movement.id == movement_id, models.Movement.company_id == company_id)
        .first()
    )
    if not movement:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movimento não encontrado")
    return movement


def _start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min).replace(tzinfo=timezone.utc)


def _end_of_day(value: date) -> datetime:
    return datetime.combine(value, time(23, 59, 59)).replace(tzinfo=timezone.utc)


def list_movements(
    db: Session,
    *,
    company_id: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    movement_type: Optional[models.MovementTypeEnum] = None,
    location_id: Optional[str] = None,
    product_id: Optional[str] = None,
    operator_id: Optional[str] = None,
    include_cancelled: bool = False,
    limit: Optional[int] = DEFAULT_MOVEMENT_LIMIT,
) -> List[models.Movement]:
    query = db.query(models.Movement).filter(models.Movement.company_id == company_id)
    if date_from:
        query = query.filter(models.Movement.movement_date >= _start_of_day(date_from))
    if date_to:
        query = query.filter(models.Movement.movement_date <= _end_of_day(date_to))
    if movement_type:
        query = query.filter(models.Movement.movement_type == movement_type)
    if location_id:
        query = query.filter(
            (models.Movement.origin_location_id == location_id)
            | (models.Movement.destination_location_id == location_id)
        )
    if product_id:
        query = query.filter(models.Movement.product_id == product_id)
    if operator_id:
        query = query.filter(models.Movement.operator_id == operator_id)
    if not include_cancelled:
        query = query.filter(models.Movement.is_cancelled.is_(False))
    query = query.order_by(models.Movement.movement_date.desc(), models.Movement.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def latest_movement_for_product(
    db: Session,
    *,
    company_id: str,
    product_id: str,
) -> Optional[models.Movement]:
    return (
        db.query(models.Movement)
        .filter(
            models.Movement.company_id == company_id,
            models.Movement.product_id == product_id,
            models.Movement.is_cancelled.is_(False),
        )
        .order_by(models.Movement.movement_date.desc(), models.Movement.created_at.desc())
        .first()
    )


# ---------------------------------------------------------------------------
# STOCK QUERIES
# ---------------------------------------------------------------------------


def list_stock(
    db: Session,
    *,
    company_id: str,
    stone_type: Optional[str] = None,
    commercial_name: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[product_models.ProductFormEnum] = None,
    location_id: Optional[str] = None,
) -> List[models.StockLevel]:
    query = (
        db.query(models.StockLevel)
        .join(product_models.Product, product_models.Product.id == models.StockLevel.product_id)
        .join(location_models.Location, location_models.Location.id == models.StockLevel.location_id)
        .filter(
            models.StockLevel.company_id == company_id,
            models.StockLevel.quantity > 0,
        )
    )
    if stone_type:
        query = query.filter(product_models.Product.stone_type.ilike(f"%{stone_type.strip()}%"))
    if commercial_name:
        query = query.filter(product_models.Product.commercial_name.ilike(f"%{commercial_name.strip()}%"))
    if idmm:
        query = query.filter(product_models.Product.idmm.ilike(f"%{idmm.strip()}%"))
    if form:
        query = query.filter(product_models.Product.form == form)
    if location_id:
        query = query.filter(models.StockLevel.location_id == location_id)
    return query.order_by(product_models.Product.idmm.asc(), location_models.Location.code.asc()).all()


def aggregate_stock(db: Session, *, company_id: str, **filters) -> List[schemas.ProductStock]:
    """Group stock rows per product, keeping the product order of list_stock."""
    grouped: "OrderedDict[str, schemas.ProductStock]" = OrderedDict()
    for row in list_stock(db, company_id=company_id, **filters):
        entry = grouped.get(row.product_id)
        if entry is None:
            entry = schemas.ProductStock(
                product=schemas.ProductSummary.model_validate(row.product),
                stock_by_location=[],
                total=0.0,
            )
            grouped[row.product_id] = entry
        entry.stock_by_location.append(
            schemas.LocationQuantity(
                location=schemas.LocationSummary.model_validate(row.location),
                quantity=row.quantity,
            )
        )
        entry.total += row.quantity
    return list(grouped.values())


def stock_quantity(db: Session, *, company_id: str, product_id: str, location_id: str) -> float:
    quantity = (
        db.query(models.StockLevel.quantity)
        .filter(
            models.StockLevel.company_id == company_id,
            models.StockLevel.product_id == product_id,
            models.StockLevel.location_id == location_id,
        )
        .scalar()
    )
    return float(quantity or 0.0)


def stock_by_location_summary(db: Session, *, company_id: str) -> List[schemas.LocationStockSummary]:
    totals = dict(
        (location_id, (count, total))
        for location_id, count, total in db.query(
            models.StockLevel.location_id,
            func.count(func.distinct(models.StockLevel.product_id)),
            func.coalesce(func.sum(models.StockLevel.quantity), 0.0),
        )
        .filter(
            models.StockLevel.company_id == company_id,
            models.StockLevel.quantity > 0,
        )
        .group_by(models.StockLevel.location_id)
        .all()
    )
    locations = (
        db.query(location_models.Location)
        .filter(
            location_models.Location.company_id == company_id,
            location_models.Location.is_active.is_(True),
        )
        .order_by(location_models.Location.code.asc())
        .all()
    )
    summary = [
        schemas.LocationStockSummary(
            location=schemas.LocationSummary.model_validate(location),
            total_products=int(totals.get(location.id, (0, 0.0))[0]),
            total_quantity=float(totals.get(location.id, (0, 0.0))[1]),
        )
        for location in locations
    ]
    return sorted(summary, key=lambda item: item.total_quantity, reverse=True)


def low_stock(
    db: Session,
    *,
    company_id: str,
    threshold: float = LOW_STOCK_THRESHOLD,
    limit: int = 10,
) -> List[models.StockLevel]:
    return (
        db.query(models.StockLevel)
        .filter(
            models.StockLevel.company_id == company_id,
            models.StockLevel.quantity > 0,
            models.StockLevel.quantity <= threshold,
        )
        .order_by(models.StockLevel.quantity.asc())
        .limit(limit)
        .all()
    )
