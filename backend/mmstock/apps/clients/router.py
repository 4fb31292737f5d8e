from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.database import get_db
from mmstock.security import get_current_active_user, require_admin

from . import schemas, services

router = APIRouter(
    prefix="/clients",
    tags=["clients"],
    dependencies=[Depends(get_current_active_user)],
)


@router.get("/", response_model=List[schemas.ClientRead])
def list_clients(
    search: Optional[str] = None,
    active_only: bool = True,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_clients(
        db,
        company_id=current_user.company_id,
        search=search,
        active_only=active_only,
    )


@router.get("/{client_id}", response_model=schemas.ClientRead)
def get_client(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_client(db, company_id=current_user.company_id, client_id=client_id)


@router.post("/", response_model=schemas.ClientRead, status_code=status.HTTP_201_CREATED)
def create_client(
    payload: schemas.ClientCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    client = services.create_client(
        db,
        company_id=current_user.company_id,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(client)
    return client


@router.patch("/{client_id}", response_model=schemas.ClientRead)
def update_client(
    client_id: str,
    payload: schemas.ClientUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    client = services.get_client(db, company_id=current_user.company_id, client_id=client_id)
    client = services.update_client(
        db,
        company_id=current_user.company_id,
        client=client,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(client)
    return client


@router.delete("/{client_id}", response_model=schemas.ClientRead)
def deactivate_client(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    client = services.get_client(db, company_id=current_user.company_id, client_id=client_id)
    client = services.deactivate_client(
        db,
        company_id=current_user.company_id,
        client=client,
        actor=current_user,
    )
    db.commit()
    db.refresh(client)
    return client


@router.post("/{client_id}/reactivate", response_model=schemas.ClientRead)
def reactivate_client(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    client = services.get_client(db, company_id=current_user.company_id, client_id=client_id)
    client = services.reactivate_client(
        db,
        company_id=current_user.company_id,
        client=client,
        actor=current_user,
    )
    db.commit()
    db.refresh(client)
    return client
