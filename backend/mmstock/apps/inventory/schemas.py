from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from mmstock.apps.clients.schemas import ClientSummary
from mmstock.apps.locations.schemas import LocationSummary
from mmstock.apps.products.schemas import ProductSummary
from .models import DocumentTypeEnum, MaterialOriginEnum, MovementTypeEnum


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


class MovementCreate(BaseModel):
    """
    New stock movement.

    Fields that do not apply to the movement type (e.g. a client on an
    entrada) are accepted and dropped before saving.
    """

    movement_type: Optional[MovementTypeEnum] = None
    document_type: DocumentTypeEnum = DocumentTypeEnum.NONE
    document_number: Optional[str] = None
    material_origin: Optional[MaterialOriginEnum] = None
    product_id: Optional[str] = None
    quantity: float = 0
    origin_location_id: Optional[str] = None
    destination_location_id: Optional[str] = None
    client_id: Optional[str] = None
    vehicle_plate: Optional[str] = None
    notes: Optional[str] = None
    movement_date: Optional[datetime] = None
    idempotency_key: Optional[str] = None


class MovementCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class UserSummary(BaseModel):
    id: str
    full_name: str

    class Config:
        from_attributes = True


class MovementRead(BaseModel):
    id: str
    movement_type: MovementTypeEnum
    document_type: DocumentTypeEnum
    document_number: Optional[str] = None
    material_origin: Optional[MaterialOriginEnum] = None
    product_id: str
    product: Optional[ProductSummary] = None
    quantity: float
    origin_location_id: Optional[str] = None
    origin_location: Optional[LocationSummary] = None
    destination_location_id: Optional[str] = None
    destination_location: Optional[LocationSummary] = None
    client_id: Optional[str] = None
    client: Optional[ClientSummary] = None
    vehicle_plate: Optional[str] = None
    operator_id: Optional[str] = None
    operator: Optional[UserSummary] = None
    notes: Optional[str] = None
    movement_date: datetime
    is_cancelled: bool
    cancelled_by_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# STOCK
# ---------------------------------------------------------------------------


class StockLevelRead(BaseModel):
    id: str
    product_id: str
    product: ProductSummary
    location_id: str
    location: LocationSummary
    quantity: float
    updated_at: datetime

    class Config:
        from_attributes = True


class LocationQuantity(BaseModel):
    location: LocationSummary
    quantity: float


class ProductStock(BaseModel):
    product: ProductSummary
    stock_by_location: List[LocationQuantity]
    total: float


class StockQuantity(BaseModel):
    product_id: str
    location_id: str
    quantity: float


class LocationStockSummary(BaseModel):
    location: LocationSummary
    total_products: int
    total_quantity: float
