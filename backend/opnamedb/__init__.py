# backend/opnamedb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- String-named relationships ("OpnameTask", "Batch") resolve.

The model classes live in opnamedb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models    # users / roles
from .apps.audit import models as audit_models          # audit trail
from .apps.catalog import models as catalog_models      # categories + products
from .apps.inventory import models as inventory_models  # batches
from .apps.opname import models as opname_models        # stock counts
from .apps.sales import models as sales_models          # sales + lines

__all__ = [
    "accounts_models",
    "audit_models",
    "catalog_models",
    "inventory_models",
    "opname_models",
    "sales_models",
]
