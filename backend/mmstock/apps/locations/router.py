from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mmstock.apps.accounts import models as account_models
from mmstock.database import get_db
from mmstock.security import get_current_active_user, require_admin

from . import schemas, services

router = APIRouter(
    prefix="/locations",
    tags=["locations"],
    dependencies=[Depends(get_current_active_user)],
)


@router.get("/", response_model=List[schemas.LocationRead])
def list_locations(
    active_only: bool = True,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_locations(db, company_id=current_user.company_id, active_only=active_only)


@router.get("/{location_id}", response_model=schemas.LocationRead)
def get_location(
    location_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_location(db, company_id=current_user.company_id, location_id=location_id)


@router.post("/", response_model=schemas.LocationRead, status_code=status.HTTP_201_CREATED)
def create_location(
    payload: schemas.LocationCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    location = services.create_location(
        db,
        company_id=current_user.company_id,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(location)
    return location


@router.patch("/{location_id}", response_model=schemas.LocationRead)
def update_location(
    location_id: str,
    payload: schemas.LocationUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    location = services.get_location(db, company_id=current_user.company_id, location_id=location_id)
    location = services.update_location(
        db,
        company_id=current_user.company_id,
        location=location,
        payload=payload,
        actor=current_user,
    )
    db.commit()
    db.refresh(location)
    return location


@router.delete("/{location_id}", response_model=schemas.LocationRead)
def deactivate_location(
    location_id: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    location = services.get_location(db, company_id=current_user.company_id, location_id=location_id)
    location = services.deactivate_location(
        db,
        company_id=current_user.company_id,
        location=location,
        actor=current_user,
    )
    db.commit()
    db.refresh(location)
    return location


@router.post("/seed-defaults", response_model=List[schemas.LocationRead])
def seed_default_locations(
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    created = services.seed_default_locations(db, company_id=current_user.company_id)
    db.commit()
    for location in created:
        db.refresh(location)
    return created
