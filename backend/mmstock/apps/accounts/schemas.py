# backend/mmstock/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from mmstock.apps.locations.schemas import LocationSummary
from .models import AppRole

MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# COMPANY
# ---------------------------------------------------------------------------


class CompanyPublic(BaseModel):
    slug: str
    name: str
    brand_color: str

    class Config:
        from_attributes = True


class CompanyRead(CompanyPublic):
    id: str
    id_prefix: str
    is_active: bool

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class UserRead(BaseModel):
    id: str
    company_id: str
    email: EmailStr
    full_name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    role: AppRole
    is_active: bool
    location_id: Optional[str] = None
    location: Optional[LocationSummary] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    role: AppRole = AppRole.OPERATOR
    location_id: Optional[str] = None
    phone: Optional[str] = None


class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    location_id: Optional[str] = None
    is_active: Optional[bool] = None


class UserRoleUpdate(BaseModel):
    role: AppRole


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


# ---------------------------------------------------------------------------
# AUTH
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    company_slug: str = Field(..., description="Company login slug, e.g. 'multimarmore'")
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead
    company: CompanyRead


class CurrentUser(BaseModel):
    user: UserRead
    company: CompanyRead
