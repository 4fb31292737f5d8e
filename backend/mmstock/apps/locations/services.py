from __future__ import annotations

from typing import Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from mmstock.apps.audit import services as audit_services
from . import models, schemas

DEFAULT_LOCATIONS = (
    ("MM001", "Sede — Bencatel"),
    ("MM002", "Plurirochas — Vila Viçosa"),
    ("MM003", "MTX — Borba"),
    ("MM004", "Mol"),
    ("MM005", "Estremoz"),
    ("MM006", "Olival do Pires"),
)


def _normalise_code(code: str) -> str:
    return (code or "").strip().upper()


def _snapshot(location: models.Location) -> dict:
    return {
        "code": location.code,
        "name": location.name,
        "address": location.address,
        "is_active": bool(location.is_active),
    }


def list_locations(
    db: Session,
    *,
    company_id: str,
    active_only: bool = True,
) -> List[models.Location]:
    query = db.query(models.Location).filter(models.Location.company_id == company_id)
    if active_only:
        query = query.filter(models.Location.is_active.is_(True))
    return query.order_by(models.Location.code.asc()).all()


def get_location(db: Session, *, company_id: str, location_id: str) -> models.Location:
    location = (
        db.query(models.Location)
        .filter(models.Location.id == location_id, models.Location.company_id == company_id)
        .first()
    )
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parque não encontrado")
    return location


def _ensure_code_free(
    db: Session,
    *,
    company_id: str,
    code: str,
    exclude_id: Optional[str] = None,
) -> None:
    query = db.query(models.Location.id).filter(
        models.Location.company_id == company_id,
        func.upper(models.Location.code) == code,
    )
    if exclude_id:
        query = query.filter(models.Location.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Já existe um parque com o código {code}",
        )


def create_location(
    db: Session,
    *,
    company_id: str,
    payload: schemas.LocationCreate,
    actor=None,
) -> models.Location:
    code = _normalise_code(payload.code)
    _ensure_code_free(db, company_id=company_id, code=code)
    location = models.Location(
        company_id=company_id,
        code=code,
        name=payload.name.strip(),
        address=payload.address,
    )
    db.add(location)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="local",
        entity_id=location.id,
        action="criar",
        description=f"Parque {location.code} criado",
        after=_snapshot(location),
    )
    return location


def update_location(
    db: Session,
    *,
    company_id: str,
    location: models.Location,
    payload: schemas.LocationUpdate,
    actor=None,
) -> models.Location:
    before = _snapshot(location)
    data = payload.model_dump(exclude_unset=True)
    if data.get("code") is not None:
        data["code"] = _normalise_code(data["code"])
        _ensure_code_free(db, company_id=company_id, code=data["code"], exclude_id=location.id)
    for field, value in data.items():
        setattr(location, field, value)
    db.add(location)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="local",
        entity_id=location.id,
        action="editar",
        description=f"Parque {location.code} atualizado",
        before=before,
        after=_snapshot(location),
    )
    return location


def deactivate_location(
    db: Session,
    *,
    company_id: str,
    location: models.Location,
    actor=None,
) -> models.Location:
    location.is_active = False
    db.add(location)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="local",
        entity_id=location.id,
        action="eliminar",
        description=f"Parque {location.code} desativado",
    )
    return location


def seed_default_locations(db: Session, *, company_id: str) -> List[models.Location]:
    """Insert the default parques that are missing for the company. Safe to re-run."""
    existing = {
        code.upper()
        for (code,) in db.query(models.Location.code)
        .filter(models.Location.company_id == company_id)
        .all()
    }
    created: List[models.Location] = []
    for code, name in DEFAULT_LOCATIONS:
        if code in existing:
            continue
        location = models.Location(company_id=company_id, code=code, name=name)
        db.add(location)
        created.append(location)
    db.flush()
    return created


def match_location(
    locations: Iterable[models.Location],
    text: Optional[str],
) -> Optional[models.Location]:
    """
    Resolve free text from a spreadsheet to a parque.

    Tried in order, case-insensitive, first hit wins:
    name equals, code equals, name contains the text, text contains the code.
    """
    search = (text or "").strip().lower()
    if not search:
        return None
    candidates = list(locations)
    checks = (
        lambda loc: loc.name.lower() == search,
        lambda loc: loc.code.lower() == search,
        lambda loc: search in loc.name.lower(),
        lambda loc: loc.code.lower() in search,
    )
    for check in checks:
        for location in candidates:
            if check(location):
                return location
    return None
