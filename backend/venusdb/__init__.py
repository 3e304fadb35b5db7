# backend/venusdb/__init__.py
"""
Import ORM models from each app so that Alembic and
Base.metadata.create_all() see all tables.

The actual model classes are kept in venusdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models      # users / auth
from .apps.inventory import models as inventory_models    # items + stock ledger

__all__ = [
    "accounts_models",
    "inventory_models",
]
