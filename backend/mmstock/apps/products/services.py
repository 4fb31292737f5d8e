from __future__ import annotations

import io
import os
from typing import List, Optional
from urllib.parse import quote

import qrcode
from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from mmstock.apps.audit import services as audit_services
from mmstock.utils.identifiers import safe_token
from . import models, schemas

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5173").rstrip("/")


# ---------------------------------------------------------------------------
# Derived measures
# ---------------------------------------------------------------------------


def compute_measures(
    *,
    form: models.ProductFormEnum,
    length_cm: Optional[float],
    width_cm: Optional[float],
    height_cm: Optional[float],
    thickness_cm: Optional[float],
) -> tuple[Optional[float], Optional[float]]:
    """
    Return (area_m2, volume_m3) from centimetre dimensions.

    Blocks use height for the volume, slabs and tiles use thickness.
    """
    if not length_cm or not width_cm:
        return None, None
    area = round(length_cm * width_cm / 10_000, 4)
    depth = height_cm if form == models.ProductFormEnum.BLOCK else thickness_cm
    volume = round(length_cm * width_cm * depth / 1_000_000, 4) if depth else None
    return area, volume


def _apply_measures(product: models.Product) -> None:
    product.area_m2, product.volume_m3 = compute_measures(
        form=product.form or models.ProductFormEnum.BLOCK,
        length_cm=product.length_cm,
        width_cm=product.width_cm,
        height_cm=product.height_cm,
        thickness_cm=product.thickness_cm,
    )


def _snapshot(product: models.Product) -> dict:
    return {
        "idmm": product.idmm,
        "stone_type": product.stone_type,
        "form": product.form.value if hasattr(product.form, "value") else product.form,
        "length_cm": product.length_cm,
        "width_cm": product.width_cm,
        "height_cm": product.height_cm,
        "thickness_cm": product.thickness_cm,
        "weight_ton": product.weight_ton,
        "valuation": product.valuation,
        "is_active": bool(product.is_active),
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_products(
    db: Session,
    *,
    company_id: str,
    stone_type: Optional[str] = None,
    idmm: Optional[str] = None,
    form: Optional[models.ProductFormEnum] = None,
    active: bool = True,
) -> List[models.Product]:
    query = db.query(models.Product).filter(
        models.Product.company_id == company_id,
        models.Product.is_active.is_(active),
    )
    if stone_type:
        query = query.filter(models.Product.stone_type.ilike(f"%{stone_type.strip()}%"))
    if idmm:
        query = query.filter(models.Product.idmm.ilike(f"%{idmm.strip()}%"))
    if form:
        query = query.filter(models.Product.form == form)
    return query.order_by(models.Product.idmm.asc()).all()


def get_product(db: Session, *, company_id: str, product_id: str) -> models.Product:
    product = (
        db.query(models.Product)
        .filter(models.Product.id == product_id, models.Product.company_id == company_id)
        .first()
    )
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Produto não encontrado")
    return product


def get_product_by_idmm(db: Session, *, company_id: str, idmm: str) -> Optional[models.Product]:
    idmm_norm = (idmm or "").strip().lower()
    if not idmm_norm:
        return None
    return (
        db.query(models.Product)
        .filter(
            models.Product.company_id == company_id,
            func.lower(models.Product.idmm) == idmm_norm,
        )
        .first()
    )


def list_stone_types(db: Session, *, company_id: str) -> List[str]:
    rows = (
        db.query(models.Product.stone_type)
        .filter(
            models.Product.company_id == company_id,
            models.Product.is_active.is_(True),
        )
        .distinct()
        .all()
    )
    return sorted({stone_type for (stone_type,) in rows if stone_type})


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _ensure_idmm_free(
    db: Session,
    *,
    company_id: str,
    idmm: str,
    exclude_id: Optional[str] = None,
) -> None:
    existing = get_product_by_idmm(db, company_id=company_id, idmm=idmm)
    if existing and existing.id != exclude_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Já existe um produto com o IDMM {existing.idmm}",
        )


def _replace_pargas(product: models.Product, pargas: List[schemas.PargaWrite]) -> None:
    """Make the product's pargas match `pargas`; rows are reused by slot, missing slots are deleted."""
    by_slot = {parga.slot: parga for parga in product.pargas}
    rows: List[models.ProductParga] = []
    for parga in sorted(pargas, key=lambda p: p.slot):
        data = parga.model_dump()
        row = by_slot.get(parga.slot)
        if row is None:
            row = models.ProductParga(**data)
        else:
            for field, value in data.items():
                setattr(row, field, value)
        rows.append(row)
    product.pargas[:] = rows


def create_product(
    db: Session,
    *,
    company_id: str,
    payload: schemas.ProductCreate,
    actor=None,
    audit: bool = True,
) -> models.Product:
    idmm = payload.idmm.strip()
    _ensure_idmm_free(db, company_id=company_id, idmm=idmm)

    data = payload.model_dump(exclude={"pargas", "idmm"})
    product = models.Product(company_id=company_id, idmm=idmm, **data)
    product.stone_type = product.stone_type.strip()
    _apply_measures(product)
    _replace_pargas(product, payload.pargas)
    db.add(product)
    db.flush()

    if audit:
        audit_services.log_event(
            db,
            company_id=company_id,
            actor=actor,
            entity_type="produto",
            entity_id=product.id,
            action="criar",
            description=f"Produto {product.idmm} criado",
            after=_snapshot(product),
        )
    return product


def update_product(
    db: Session,
    *,
    company_id: str,
    product: models.Product,
    payload: schemas.ProductUpdate,
    actor=None,
) -> models.Product:
    before = _snapshot(product)
    data = payload.model_dump(exclude_unset=True, exclude={"pargas"})

    if data.get("idmm") is not None:
        data["idmm"] = data["idmm"].strip()
        _ensure_idmm_free(db, company_id=company_id, idmm=data["idmm"], exclude_id=product.id)
    for field, value in data.items():
        setattr(product, field, value)
    if payload.pargas is not None:
        _replace_pargas(product, payload.pargas)
    _apply_measures(product)
    db.add(product)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="produto",
        entity_id=product.id,
        action="editar",
        description=f"Produto {product.idmm} atualizado",
        before=before,
        after=_snapshot(product),
    )
    return product


def deactivate_product(
    db: Session,
    *,
    company_id: str,
    product: models.Product,
    actor=None,
) -> models.Product:
    product.is_active = False
    db.add(product)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="produto",
        entity_id=product.id,
        action="eliminar",
        description=f"Produto {product.idmm} desativado",
    )
    return product


def reactivate_product(
    db: Session,
    *,
    company_id: str,
    product: models.Product,
    actor=None,
) -> models.Product:
    _ensure_idmm_free(db, company_id=company_id, idmm=product.idmm, exclude_id=product.id)
    product.is_active = True
    db.add(product)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="produto",
        entity_id=product.id,
        action="editar",
        description=f"Produto {product.idmm} reativado",
        after={"is_active": True},
    )
    return product


# ---------------------------------------------------------------------------
# Public link / QR
# ---------------------------------------------------------------------------


def product_public_url(idmm: str) -> str:
    return f"{PUBLIC_BASE_URL}/p/{quote(idmm, safe='')}"


def product_qr_filename(idmm: str) -> str:
    return f"qrcode-{safe_token(idmm)}.png"


def product_qr_png(product: models.Product) -> bytes:
    img = qrcode.make(product_public_url(product.idmm))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
