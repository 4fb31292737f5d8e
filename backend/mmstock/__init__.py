# backend/mmstock/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- Relationship targets referenced by name are always registered.

The actual model classes are kept in mmstock/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # companies / users / auth
from .apps.locations import models as locations_models        # parques
from .apps.clients import models as clients_models            # customers for exits
from .apps.products import models as products_models          # products + pargas
from .apps.inventory import models as inventory_models        # movements + stock levels
from .apps.audit import models as audit_models                # audit trail

__all__ = [
    "accounts_models",
    "locations_models",
    "clients_models",
    "products_models",
    "inventory_models",
    "audit_models",
]
