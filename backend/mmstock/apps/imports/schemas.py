from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from mmstock.apps.inventory.models import MaterialOriginEnum
from mmstock.apps.locations.schemas import LocationSummary
from mmstock.apps.products.models import ProductFormEnum


class ImportRowData(BaseModel):
    idmm: str
    variety: str = ""
    commercial_name: Optional[str] = None
    form: ProductFormEnum = ProductFormEnum.BLOCK
    finish: Optional[str] = None
    length_cm: Optional[float] = None
    width_cm: Optional[float] = None
    height_cm: Optional[float] = None
    thickness_cm: Optional[float] = None
    weight_ton: Optional[float] = None
    parque: str = ""
    line: Optional[str] = None
    material_origin: MaterialOriginEnum = MaterialOriginEnum.OWN_PRODUCTION
    quantity: float = 1
    notes: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    movement_date: Optional[datetime] = None


class ImportRowPreview(BaseModel):
    row_number: int
    data: ImportRowData
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    action: Literal["new", "existing", "invalid"]
    location: Optional[LocationSummary] = None


class ImportSummary(BaseModel):
    total: int = 0
    valid: int = 0
    invalid: int = 0
    new_products: int = 0
    existing_products: int = 0


class ImportPreview(BaseModel):
    filename: Optional[str] = None
    column_map: dict
    rows: List[ImportRowPreview]
    summary: ImportSummary


class ImportRowError(BaseModel):
    row: int
    error: str


class ImportResult(BaseModel):
    success: bool
    total_rows: int
    processed_rows: int
    products_created: int
    movements_created: int
    skipped_rows: int
    errors: List[ImportRowError] = Field(default_factory=list)
    finished_at: datetime
