# backend/mmstock/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Companies (tenants) and their branding
- User accounts with profile, home parque and role
- Login / JWT issue and user administration
- Idempotency keys shared by write endpoints
"""

from . import models, schemas, services  # noqa: F401

__all__ = ["models", "schemas", "services"]
