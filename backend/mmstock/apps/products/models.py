from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from mmstock.database import Base
from mmstock.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class ProductFormEnum(str, enum.Enum):
    BLOCK = "bloco"
    SLAB = "chapa"
    TILE = "ladrilho"


# HD photo slots available per form, with their labels.
HD_SLOT_LABELS = {
    ProductFormEnum.BLOCK: ("Lado A", "Lado B", "Lado C", "Lado D"),
    ProductFormEnum.SLAB: ("Frente", "Verso"),
    ProductFormEnum.TILE: ("Frente", "Verso"),
}

MAX_PHOTO_SLOTS = 4


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("company_id", "idmm", name="uq_products_company_idmm"),
        Index("ix_products_company_stone_type", "company_id", "stone_type"),
        Index("ix_products_company_active", "company_id", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    idmm = Column(String(64), nullable=False, index=True)

    stone_type = Column(String(128), nullable=False)
    commercial_name = Column(String(255), nullable=True)
    form = Column(
        SAEnum(ProductFormEnum, name="product_form_enum", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=ProductFormEnum.BLOCK,
        index=True,
    )
    finish = Column(String(128), nullable=True)
    variety = Column(String(128), nullable=True)
    line = Column(String(64), nullable=True)
    block_origin = Column(String(128), nullable=True)

    length_cm = Column(Float, nullable=True)
    width_cm = Column(Float, nullable=True)
    height_cm = Column(Float, nullable=True)
    thickness_cm = Column(Float, nullable=True)
    area_m2 = Column(Float, nullable=True)
    volume_m3 = Column(Float, nullable=True)
    weight_ton = Column(Float, nullable=True)
    total_slabs = Column(Integer, nullable=True)
    valuation = Column(Float, nullable=True, doc="EUR/ton for blocks, EUR/m2 otherwise")

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    photo1_url = Column(String(512), nullable=True)
    photo2_url = Column(String(512), nullable=True)
    photo3_url = Column(String(512), nullable=True)
    photo4_url = Column(String(512), nullable=True)
    photo1_hd_url = Column(String(512), nullable=True)
    photo2_hd_url = Column(String(512), nullable=True)
    photo3_hd_url = Column(String(512), nullable=True)
    photo4_hd_url = Column(String(512), nullable=True)

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    pargas = relationship(
        "ProductParga",
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductParga.slot",
    )

    @property
    def inventory_value(self):
        if self.valuation is None:
            return None
        if self.form == ProductFormEnum.BLOCK and self.weight_ton:
            return round(self.valuation * self.weight_ton, 2)
        if self.area_m2:
            return round(self.valuation * self.area_m2, 2)
        return None

    def __repr__(self) -> str:
        return f"<Product id={self.id} idmm={self.idmm}>"


class ProductParga(Base):
    """A sub-batch of slabs cut from the same block (up to four per product)."""

    __tablename__ = "product_pargas"
    __table_args__ = (
        UniqueConstraint("product_id", "slot", name="uq_product_pargas_slot"),
        CheckConstraint("slot BETWEEN 1 AND 4", name="ck_product_pargas_slot"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    slot = Column(Integer, nullable=False)
    name = Column(String(128), nullable=True)
    quantity = Column(Integer, nullable=True)
    length_cm = Column(Float, nullable=True)
    height_cm = Column(Float, nullable=True)
    thickness_cm = Column(Float, nullable=True)
    photo1_url = Column(String(512), nullable=True)
    photo2_url = Column(String(512), nullable=True)

    product = relationship("Product", back_populates="pargas", lazy="joined")
