from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.apps.products.models import ProductFormEnum
from mmstock.database import get_db, get_read_db
from mmstock.security import get_current_active_user, require_admin

from . import models, schemas, services

router = APIRouter(
    prefix="",
    tags=["inventory"],
    dependencies=[Depends(get_current_active_user)],
)


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


@router.get("/movements", response_model=List[schemas.MovementRead])
def list_movements(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    movement_type: Optional[models.MovementTypeEnum] = None,
    location_id: Optional[str] = None,
    product_id: Optional[str] = None,
    operator_id: Optional[str] = None,
    include_cancelled: bool = False,
    limit: int = Query(services.DEFAULT_MOVEMENT_LIMIT, ge=1, le=5000),
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_movements(
        db,
        company_id=current_user.company_id,
        date_from=date_from,
        date_to=date_to,
        movement_type=movement_type,
        location_id=location_id,
        product_id=product_id,
        operator_id=operator_id,
        include_cancelled=include_cancelled,
        limit=limit,
    )


@router.post(
    "/movements",
    response_model=schemas.MovementRead,
    status_code=status.HTTP_201_CREATED,
)
def create_movement(
    payload: schemas.MovementCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    movement = services.create_movement(
        db,
        company_id=current_user.company_id,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(movement)
    return movement


@router.get("/movements/latest/{product_id}", response_model=Optional[schemas.MovementRead])
def latest_movement(
    product_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.latest_movement_for_product(
        db,
        company_id=current_user.company_id,
        product_id=product_id,
    )


@router.get("/movements/{movement_id}", response_model=schemas.MovementRead)
def get_movement(
    movement_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_movement(db, company_id=current_user.company_id, movement_id=movement_id)


@router.post("/movements/{movement_id}/cancel", response_model=schemas.MovementRead)
def cancel_movement(
    movement_id: str,
    payload: schemas.MovementCancel,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    movement = services.cancel_movement(
        db,
        company_id=current_user.company_id,
        movement_id=movement_id,
        reason=payload.reason,
        actor=current_user,
    )
    db.commit()
    db.refresh(movement)
    return movement


# ---------------------------------------------------------------------------
# STOCK
# ---------------------------------------------------------------------------


@router.get("/stock", response_model=List[schemas.StockLevelRead])
def list_stock(
    stone_type: Optional[str] = None,
    commercial_name: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[ProductFormEnum] = None,
    location_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_stock(
        db,
        company_id=current_user.company_id,
        stone_type=stone_type,
        commercial_name=commercial_name,
        idmm=idmm,
        form=form,
        location_id=location_id,
    )


@router.get("/stock/by-product", response_model=List[schemas.ProductStock])
def stock_by_product(
    stone_type: Optional[str] = None,
    commercial_name: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[ProductFormEnum] = None,
    location_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.aggregate_stock(
        db,
        company_id=current_user.company_id,
        stone_type=stone_type,
        commercial_name=commercial_name,
        idmm=idmm,
        form=form,
        location_id=location_id,
    )


@router.get("/stock/quantity", response_model=schemas.StockQuantity)
def stock_quantity(
    product_id: str,
    location_id: str,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    quantity = services.stock_quantity(
        db,
        company_id=current_user.company_id,
        product_id=product_id,
        location_id=location_id,
    )
    return schemas.StockQuantity(product_id=product_id, location_id=location_id, quantity=quantity)


@router.get("/stock/by-location", response_model=List[schemas.LocationStockSummary])
def stock_by_location(
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.stock_by_location_summary(db, company_id=current_user.company_id)


@router.get("/stock/low", response_model=List[schemas.StockLevelRead])
def low_stock(
    threshold: float = Query(services.LOW_STOCK_THRESHOLD, gt=0),
    limit: int = Query(10, ge=1, le=500),
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.low_stock(
        db,
        company_id=current_user.company_id,
        threshold=threshold,
        limit=limit,
    )
