# backend/mmstock/apps/accounts/router_public.py

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from mmstock.database import get_db
from mmstock.security import get_current_active_user
from . import models, schemas, services

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/companies", response_model=List[schemas.CompanyPublic])
def list_companies(db: Session = Depends(get_db)):
    """Companies offered on the login screen."""
    return services.list_companies(db)


@router.post("/login", response_model=schemas.Token)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Login with:

    - `company_slug` = company the user belongs to (e.g. `multimarmore`)
    - `email`        = user email
    - `password`     = user password
    """
    try:
        user = services.authenticate_user(db, login_req=payload)
    except services.AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "Invalid credentials.",
        )

    token, expires_in = services.issue_access_token_for_user(user)
    db.commit()
    db.refresh(user)

    return schemas.Token(
        access_token=token,
        expires_in=expires_in,
        user=user,
        company=user.company,
    )


@router.get("/me", response_model=schemas.CurrentUser)
def read_current_user(
    current_user: models.User = Depends(get_current_active_user),
):
    return schemas.CurrentUser(user=current_user, company=current_user.company)


@router.patch("/me", response_model=schemas.UserRead)
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    user = services.update_own_profile(db, user=current_user, payload=payload)
    db.commit()
    db.refresh(user)
    return user
