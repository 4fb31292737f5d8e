"""
Seed the known companies, their default parques and an initial superadmin.

Env:
  SEED_SUPERADMIN_EMAIL     (optional; no user is created when unset)
  SEED_SUPERADMIN_PASSWORD
  SEED_COMPANY_SLUG         (default: multimarmore)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from mmstock.apps.accounts import services as account_services
from mmstock.apps.accounts.models import AppRole, Company, User
from mmstock.apps.locations import services as location_services
from mmstock.database import SessionLocal
from mmstock.security import get_password_hash

logger = logging.getLogger(__name__)

DEFAULT_SEED_COMPANY = "multimarmore"


def ensure_superadmin(
    db: Session,
    *,
    company: Company,
    email: str,
    password: str,
    full_name: str = "Administrador",
) -> User:
    email = email.lower().strip()
    user = (
        db.query(User)
        .filter(User.company_id == company.id, User.email == email)
        .first()
    )
    if user:
        user.role = AppRole.SUPERADMIN
        user.is_active = True
        db.add(user)
        db.flush()
        return user

    user = User(
        company_id=company.id,
        email=email,
        full_name=full_name,
        role=AppRole.SUPERADMIN,
        is_active=True,
        hashed_password=get_password_hash(password),
    )
    db.add(user)
    db.flush()
    return user


def seed(db: Session) -> Optional[User]:
    companies = account_services.ensure_default_companies(db)
    for company in companies:
        created = location_services.seed_default_locations(db, company_id=company.id)
        logger.info(
            "Seeded parques",
            extra={"company_slug": company.slug, "created": len(created)},
        )

    email = os.getenv("SEED_SUPERADMIN_EMAIL", "").strip()
    password = os.getenv("SEED_SUPERADMIN_PASSWORD", "")
    if not email:
        return None
    if not password:
        raise RuntimeError("SEED_SUPERADMIN_PASSWORD must be set together with SEED_SUPERADMIN_EMAIL.")

    slug = os.getenv("SEED_COMPANY_SLUG", DEFAULT_SEED_COMPANY)
    company = account_services.get_company_by_slug(db, slug)
    if company is None:
        raise RuntimeError(f"Unknown company slug: {slug}")
    return ensure_superadmin(db, company=company, email=email, password=password)


def main() -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    db = SessionLocal()
    try:
        user = seed(db)
        db.commit()
        if user:
            print("OK:", user.email, "role =", user.role.value, "company =", user.company_id)
        else:
            print("OK: companies and parques seeded (no superadmin requested)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
