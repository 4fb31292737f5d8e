from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from mmstock.apps.audit import services as audit_services
from mmstock.apps.locations import models as location_models
from mmstock.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_password_hash,
    verify_password,
)
from . import models, schemas

logger = logging.getLogger(__name__)

# (slug, name, brand colour, id prefix)
DEFAULT_COMPANIES = (
    ("multimarmore", "Multimarmore", "#1a56db", "IDMM"),
    ("magratex", "Magratex", "#057a55", "IDMTX"),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthenticationError(Exception):
    """Raised when login credentials are invalid or the account is inactive."""


class IdempotencyError(Exception):
    """Raised when an idempotency key is reused with a conflicting payload."""


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _normalise_email(value: str) -> str:
    return value.strip().lower()


def _normalise_slug(value: Optional[str]) -> str:
    return (value or "").strip().lower()


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


def get_company_by_slug(db: Session, slug: str) -> Optional[models.Company]:
    slug_norm = _normalise_slug(slug)
    if not slug_norm:
        return None
    return (
        db.query(models.Company)
        .filter(
            func.lower(models.Company.slug) == slug_norm,
            models.Company.is_active.is_(True),
        )
        .first()
    )


def list_companies(db: Session) -> List[models.Company]:
    return (
        db.query(models.Company)
        .filter(models.Company.is_active.is_(True))
        .order_by(models.Company.name.asc())
        .all()
    )


def ensure_default_companies(db: Session) -> List[models.Company]:
    """Create the known companies that do not exist yet. Flushes, never commits."""
    companies: List[models.Company] = []
    for slug, name, color, prefix in DEFAULT_COMPANIES:
        company = db.query(models.Company).filter(models.Company.slug == slug).first()
        if company is None:
            company = models.Company(slug=slug, name=name, brand_color=color, id_prefix=prefix)
            db.add(company)
            db.flush()
        companies.append(company)
    return companies


# ---------------------------------------------------------------------------
# Authentication and access tokens
# ---------------------------------------------------------------------------


def authenticate_user(
    db: Session,
    *,
    login_req: schemas.LoginRequest,
) -> models.User:
    """
    Password login using company slug + email + password.

    Unknown company, unknown user, inactive user and wrong password all raise
    the same AuthenticationError so the response does not leak which part failed.
    """
    company = get_company_by_slug(db, login_req.company_slug)
    email = _normalise_email(login_req.email)

    user: Optional[models.User] = None
    if company is not None:
        user = (
            db.query(models.User)
            .filter(
                models.User.company_id == company.id,
                models.User.email == email,
            )
            .first()
        )

    if user is None or not user.is_active:
        logger.warning(
            "Rejected login for unknown or inactive account",
            extra={"company_slug": login_req.company_slug, "email": email},
        )
        raise AuthenticationError("Invalid credentials.")

    if not verify_password(login_req.password, user.hashed_password):
        logger.warning(
            "Rejected login with wrong password",
            extra={"company_id": user.company_id, "user_id": user.id},
        )
        raise AuthenticationError("Invalid credentials.")

    user.last_login_at = datetime.now(timezone.utc)
    db.add(user)
    db.flush()
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """
    Create a JWT access token for the user.

    Returns (token_string, expires_in_seconds).
    """
    payload = {
        "sub": str(user.id),
        "company_id": user.company_id,
        "role": user.role.value if hasattr(user.role, "value") else str(user.role),
    }
    access_token = create_access_token(
        data=payload,
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return access_token, int(ACCESS_TOKEN_EXPIRE_MINUTES * 60)


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


def _user_snapshot(user: models.User) -> dict:
    return {
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value if hasattr(user.role, "value") else str(user.role),
        "location_id": user.location_id,
        "is_active": bool(user.is_active),
    }


def _ensure_location(db: Session, *, company_id: str, location_id: Optional[str]) -> None:
    if not location_id:
        return
    exists = (
        db.query(location_models.Location.id)
        .filter(
            location_models.Location.id == location_id,
            location_models.Location.company_id == company_id,
        )
        .first()
    )
    if not exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parque não encontrado")


def list_users(db: Session, *, company_id: str) -> List[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.company_id == company_id)
        .order_by(models.User.full_name.asc())
        .all()
    )


def get_user(db: Session, *, company_id: str, user_id: str) -> models.User:
    user = (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.company_id == company_id)
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Utilizador não encontrado")
    return user


def create_user(
    db: Session,
    *,
    actor: models.User,
    payload: schemas.UserCreate,
) -> models.User:
    email = _normalise_email(payload.email)
    if payload.role == models.AppRole.SUPERADMIN and not actor.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a superadmin can create superadmin accounts.",
        )
    dup = (
        db.query(models.User.id)
        .filter(models.User.company_id == actor.company_id, models.User.email == email)
        .first()
    )
    if dup:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists in this company.",
        )
    _ensure_location(db, company_id=actor.company_id, location_id=payload.location_id)

    user = models.User(
        company_id=actor.company_id,
        email=email,
        full_name=payload.full_name.strip(),
        phone=payload.phone,
        location_id=payload.location_id,
        role=payload.role,
        hashed_password=get_password_hash(payload.password),
        is_active=True,
    )
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        company_id=actor.company_id,
        actor=actor,
        entity_type="user",
        entity_id=user.id,
        action="criar",
        description=f"Utilizador {user.email} criado",
        after=_user_snapshot(user),
    )
    return user


def update_user(
    db: Session,
    *,
    actor: models.User,
    user: models.User,
    payload: schemas.UserUpdate,
) -> models.User:
    before = _user_snapshot(user)
    data = payload.model_dump(exclude_unset=True)

    if "is_active" in data and data["is_active"] is False and user.id == actor.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account.",
        )
    if "location_id" in data:
        _ensure_location(db, company_id=actor.company_id, location_id=data["location_id"])
    if data.get("full_name") is not None:
        data["full_name"] = data["full_name"].strip()

    for field, value in data.items():
        setattr(user, field, value)
    db.add(user)
    db.flush()

    audit_services.log_event(
        db,
        company_id=actor.company_id,
        actor=actor,
        entity_type="user",
        entity_id=user.id,
        action="editar",
        description=f"Utilizador {user.email} atualizado",
        before=before,
        after=_user_snapshot(user),
    )
    return user


def set_user_role(
    db: Session,
    *,
    actor: models.User,
    user: models.User,
    role: models.AppRole,
) -> models.User:
    touches_superadmin = role == models.AppRole.SUPERADMIN or user.role == models.AppRole.SUPERADMIN
    if touches_superadmin and not actor.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a superadmin can grant or revoke the superadmin role.",
        )
    previous = user.role
    user.role = role
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        company_id=actor.company_id,
        actor=actor,
        entity_type="user",
        entity_id=user.id,
        action="alterar_role",
        description=f"Role de {user.email} alterada para {role.value}",
        before={"role": previous.value if hasattr(previous, "value") else previous},
        after={"role": role.value},
    )
    return user


def toggle_user_active(
    db: Session,
    *,
    actor: models.User,
    user: models.User,
) -> models.User:
    return update_user(
        db,
        actor=actor,
        user=user,
        payload=schemas.UserUpdate(is_active=not user.is_active),
    )


def update_own_profile(
    db: Session,
    *,
    user: models.User,
    payload: schemas.ProfileUpdate,
) -> models.User:
    data = payload.model_dump(exclude_unset=True)
    if data.get("full_name") is not None:
        data["full_name"] = data["full_name"].strip()
    for field, value in data.items():
        setattr(user, field, value)
    db.add(user)
    db.flush()
    return user


# ---------------------------------------------------------------------------
# IDEMPOTENCY
# ---------------------------------------------------------------------------


def _hash_payload(payload: dict) -> str:
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()


def register_idempotency_key(
    db: Session,
    *,
    scope: str,
    key: str,
    payload: dict,
) -> Tuple[models.IdempotencyKey, bool]:
    """
    Record `key` for `scope`.

    Returns (record, created). `created` is False when the key was already
    used with the same payload, so the caller can replay the stored resource.
    A different payload under the same key raises IdempotencyError.
    """
    if not key:
        raise ValueError("idempotency key is required")

    payload_hash = _hash_payload(payload)
    existing = (
        db.query(models.IdempotencyKey)
        .filter(
            models.IdempotencyKey.scope == scope,
            models.IdempotencyKey.key == key,
        )
        .first()
    )
    if existing:
        if existing.payload_hash != payload_hash:
            raise IdempotencyError("Idempotency key reuse with different payload.")
        return existing, False

    idem = models.IdempotencyKey(scope=scope, key=key, payload_hash=payload_hash)
    db.add(idem)
    db.flush()
    return idem, True
