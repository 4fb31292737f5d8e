# backend/mmstock/apps/accounts/router_admin.py

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mmstock.database import get_db
from mmstock.security import require_admin
from . import models, schemas, services

router = APIRouter(
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(require_admin)],
)


@router.get("/", response_model=List[schemas.UserRead])
def list_users(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    return services.list_users(db, company_id=current_user.company_id)


@router.post("/", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.create_user(db, actor=current_user, payload=payload)
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=schemas.UserRead)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    return services.get_user(db, company_id=current_user.company_id, user_id=user_id)


@router.patch("/{user_id}", response_model=schemas.UserRead)
def update_user(
    user_id: str,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.get_user(db, company_id=current_user.company_id, user_id=user_id)
    user = services.update_user(db, actor=current_user, user=user, payload=payload)
    db.commit()
    db.refresh(user)
    return user


@router.put("/{user_id}/role", response_model=schemas.UserRead)
def set_user_role(
    user_id: str,
    payload: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.get_user(db, company_id=current_user.company_id, user_id=user_id)
    user = services.set_user_role(db, actor=current_user, user=user, role=payload.role)
    db.commit()
    db.refresh(user)
    return user


@router.post("/{user_id}/toggle-active", response_model=schemas.UserRead)
def toggle_user_active(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.get_user(db, company_id=current_user.company_id, user_id=user_id)
    user = services.toggle_user_active(db, actor=current_user, user=user)
    db.commit()
    db.refresh(user)
    return user
