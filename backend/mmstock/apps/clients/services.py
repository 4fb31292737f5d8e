from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from mmstock.apps.audit import services as audit_services
from . import models, schemas


def list_clients(
    db: Session,
    *,
    company_id: str,
    search: Optional[str] = None,
    active_only: bool = True,
) -> List[models.Client]:
    query = db.query(models.Client).filter(models.Client.company_id == company_id)
    if active_only:
        query = query.filter(models.Client.is_active.is_(True))
    if search and search.strip():
        query = query.filter(models.Client.name.ilike(f"%{search.strip()}%"))
    return query.order_by(models.Client.name.asc()).all()


def get_client(db: Session, *, company_id: str, client_id: str) -> models.Client:
    client = (
        db.query(models.Client)
        .filter(models.Client.id == client_id, models.Client.company_id == company_id)
        .first()
    )
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")
    return client


def create_client(
    db: Session,
    *,
    company_id: str,
    payload: schemas.ClientCreate,
    actor=None,
) -> models.Client:
    client = models.Client(company_id=company_id, **payload.model_dump())
    client.name = client.name.strip()
    db.add(client)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="cliente",
        entity_id=client.id,
        action="criar",
        description=f"Cliente {client.name} criado",
        after=payload.model_dump(mode="json"),
    )
    return client


def update_client(
    db: Session,
    *,
    company_id: str,
    client: models.Client,
    payload: schemas.ClientUpdate,
    actor=None,
) -> models.Client:
    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        setattr(client, field, value)
    db.add(client)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="cliente",
        entity_id=client.id,
        action="editar",
        description=f"Cliente {client.name} atualizado",
        after=payload.model_dump(mode="json", exclude_unset=True),
    )
    return client


def deactivate_client(
    db: Session,
    *,
    company_id: str,
    client: models.Client,
    actor=None,
) -> models.Client:
    client.is_active = False
    db.add(client)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="cliente",
        entity_id=client.id,
        action="eliminar",
        description=f"Cliente {client.name} desativado",
    )
    return client


def reactivate_client(
    db: Session,
    *,
    company_id: str,
    client: models.Client,
    actor=None,
) -> models.Client:
    client.is_active = True
    db.add(client)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor=actor,
        entity_type="cliente",
        entity_id=client.id,
        action="editar",
        description=f"Cliente {client.name} reativado",
        after={"is_active": True},
    )
    return client
