# backend/mmstock/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from mmstock.database import Base
from mmstock.utils.identifiers import generate_short_id, generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AppRole(str, enum.Enum):
    """Roles used across the app.

    ADMIN covers user management, cancellations and the audit trail.
    SUPERADMIN additionally runs bulk imports and manages other superadmins.
    """

    OPERATOR = "operador"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = frozenset({AppRole.ADMIN, AppRole.SUPERADMIN})


# ---------------------------------------------------------------------------
# COMPANY (TENANT)
# ---------------------------------------------------------------------------


class Company(Base):
    """
    A company using the platform (e.g. Multimarmore, Magratex).

    Every business record (products, parques, movements, stock, audit)
    is scoped to exactly one company.
    """

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_short_id)
    slug = Column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        doc="Login slug, e.g. 'multimarmore'",
    )
    name = Column(String(255), nullable=False)
    brand_color = Column(String(16), nullable=False, default="#1a56db")
    id_prefix = Column(
        String(16),
        nullable=False,
        default="IDMM",
        doc="Prefix shown for product identifiers, e.g. IDMM or IDMTX",
    )

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    users = relationship("User", back_populates="company", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Company id={self.id} slug={self.slug}>"


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    """
    User account with its profile and role.

    One row per person per company; the role lives on the row itself.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        Index("idx_users_role_active", "role", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_short_id)

    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = Column(
        String(36),
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Home parque of the user",
    )

    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)
    avatar_url = Column(String(512), nullable=True)

    role = Column(
        Enum(AppRole, name="app_role_enum", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=AppRole.OPERATOR,
        index=True,
    )

    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    company = relationship("Company", back_populates="users", lazy="joined")
    location = relationship("Location", lazy="joined")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == AppRole.SUPERADMIN

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


# ---------------------------------------------------------------------------
# IDEMPOTENCY
# ---------------------------------------------------------------------------


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (
        UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    scope = Column(String(64), nullable=False, index=True)
    key = Column(String(128), nullable=False)
    payload_hash = Column(String(128), nullable=False)
    resource_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
