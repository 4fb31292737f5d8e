"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-02-03 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op

from mmstock.database import Base
from mmstock.apps.accounts import models as accounts_models  # noqa: F401
from mmstock.apps.locations import models as locations_models  # noqa: F401
from mmstock.apps.clients import models as clients_models  # noqa: F401
from mmstock.apps.products import models as products_models  # noqa: F401
from mmstock.apps.inventory import models as inventory_models  # noqa: F401
from mmstock.apps.audit import models as audit_models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enums are stored as VARCHAR + CHECK (native_enum=False), so no CREATE TYPE is needed.
    Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind(), checkfirst=True)
