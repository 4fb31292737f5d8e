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


class MovementTypeEnum(str, enum.Enum):
    ENTRY = "entrada"
    TRANSFER = "transferencia"
    EXIT = "saida"


class DocumentTypeEnum(str, enum.Enum):
    TRANSPORT_GUIDE = "guia_transporte"
    TRANSFER_GUIDE = "guia_transferencia"
    INVOICE = "factura"
    NONE = "sem_documento"


class MaterialOriginEnum(str, enum.Enum):
    PURCHASED = "adquirido"
    OWN_PRODUCTION = "producao_propria"


class Movement(Base):
    __tablename__ = "movements"
    __table_args__ = (
        Index("ix_movements_company_date", "company_id", "movement_date"),
        Index("ix_movements_product_date", "product_id", "movement_date"),
        CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    movement_type = Column(
        SAEnum(MovementTypeEnum, name="movement_type_enum", native_enum=False, values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    document_type = Column(
        SAEnum(DocumentTypeEnum, name="document_type_enum", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=DocumentTypeEnum.NONE,
    )
    document_number = Column(String(64), nullable=True)
    material_origin = Column(
        SAEnum(MaterialOriginEnum, name="material_origin_enum", native_enum=False, values_callable=_enum_values),
        nullable=True,
    )

    product_id = Column(String(36), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Float, nullable=False)
    origin_location_id = Column(String(36), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True)
    destination_location_id = Column(
        String(36), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    vehicle_plate = Column(String(32), nullable=True)
    operator_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    movement_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    is_cancelled = Column(Boolean, nullable=False, default=False, index=True)
    cancelled_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    product = relationship("Product", lazy="joined")
    origin_location = relationship("Location", foreign_keys=[origin_location_id], lazy="joined")
    destination_location = relationship("Location", foreign_keys=[destination_location_id], lazy="joined")
    client = relationship("Client", lazy="joined")
    operator = relationship("User", foreign_keys=[operator_id], lazy="joined")
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id], lazy="joined")


class StockLevel(Base):
    """Current quantity of a product in a parque, updated by every movement."""

    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_stock_levels_product_location"),
        Index("ix_stock_levels_company_location", "company_id", "location_id"),
        CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    product = relationship("Product", lazy="joined")
    location = relationship("Location", lazy="joined")
