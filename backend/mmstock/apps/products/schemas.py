from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import MAX_PHOTO_SLOTS, ProductFormEnum


class PargaBase(BaseModel):
    slot: int = Field(..., ge=1, le=MAX_PHOTO_SLOTS)
    name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    length_cm: Optional[float] = Field(default=None, gt=0)
    height_cm: Optional[float] = Field(default=None, gt=0)
    thickness_cm: Optional[float] = Field(default=None, gt=0)
    photo1_url: Optional[str] = None
    photo2_url: Optional[str] = None


class PargaWrite(PargaBase):
    pass


class PargaRead(PargaBase):
    id: str

    class Config:
        from_attributes = True


def _unique_slots(pargas: Optional[List[PargaWrite]]) -> Optional[List[PargaWrite]]:
    if pargas is None:
        return pargas
    slots = [parga.slot for parga in pargas]
    if len(slots) != len(set(slots)):
        raise ValueError("Parga slots must be unique.")
    return pargas


class ProductBase(BaseModel):
    stone_type: str = Field(..., min_length=1, max_length=128)
    commercial_name: Optional[str] = None
    form: ProductFormEnum = ProductFormEnum.BLOCK
    finish: Optional[str] = None
    variety: Optional[str] = None
    line: Optional[str] = None
    block_origin: Optional[str] = None
    length_cm: Optional[float] = Field(default=None, gt=0)
    width_cm: Optional[float] = Field(default=None, gt=0)
    height_cm: Optional[float] = Field(default=None, gt=0)
    thickness_cm: Optional[float] = Field(default=None, gt=0)
    weight_ton: Optional[float] = Field(default=None, ge=0)
    total_slabs: Optional[int] = Field(default=None, ge=0)
    valuation: Optional[float] = Field(default=None, ge=0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    photo1_url: Optional[str] = None
    photo2_url: Optional[str] = None
    photo3_url: Optional[str] = None
    photo4_url: Optional[str] = None
    notes: Optional[str] = None


class ProductCreate(ProductBase):
    idmm: str = Field(..., min_length=1, max_length=64)
    pargas: List[PargaWrite] = Field(default_factory=list, max_length=MAX_PHOTO_SLOTS)

    @field_validator("pargas")
    @classmethod
    def check_parga_slots(cls, value):
        return _unique_slots(value)


class ProductUpdate(BaseModel):
    idmm: Optional[str] = Field(default=None, min_length=1, max_length=64)
    stone_type: Optional[str] = Field(default=None, min_length=1, max_length=128)
    commercial_name: Optional[str] = None
    form: Optional[ProductFormEnum] = None
    finish: Optional[str] = None
    variety: Optional[str] = None
    line: Optional[str] = None
    block_origin: Optional[str] = None
    length_cm: Optional[float] = Field(default=None, gt=0)
    width_cm: Optional[float] = Field(default=None, gt=0)
    height_cm: Optional[float] = Field(default=None, gt=0)
    thickness_cm: Optional[float] = Field(default=None, gt=0)
    weight_ton: Optional[float] = Field(default=None, ge=0)
    total_slabs: Optional[int] = Field(default=None, ge=0)
    valuation: Optional[float] = Field(default=None, ge=0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    photo1_url: Optional[str] = None
    photo2_url: Optional[str] = None
    photo3_url: Optional[str] = None
    photo4_url: Optional[str] = None
    notes: Optional[str] = None
    pargas: Optional[List[PargaWrite]] = Field(default=None, max_length=MAX_PHOTO_SLOTS)

    @field_validator("idmm", "stone_type", "form")
    @classmethod
    def reject_null(cls, value, info):
        # Omit the field to keep it; null would blank a required column.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null.")
        return value

    @field_validator("pargas")
    @classmethod
    def check_parga_slots(cls, value):
        return _unique_slots(value)


class ProductSummary(BaseModel):
    id: str
    idmm: str
    stone_type: str
    commercial_name: Optional[str] = None
    form: ProductFormEnum

    class Config:
        from_attributes = True


class ProductRead(ProductBase):
    id: str
    idmm: str
    area_m2: Optional[float] = None
    volume_m3: Optional[float] = None
    inventory_value: Optional[float] = None
    photo1_hd_url: Optional[str] = None
    photo2_hd_url: Optional[str] = None
    photo3_hd_url: Optional[str] = None
    photo4_hd_url: Optional[str] = None
    is_active: bool
    pargas: List[PargaRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductPublicLink(BaseModel):
    idmm: str
    url: str
