"""
Inventory module.

Handles inventory items and the stock ledger (additions and subtractions)
that current stock is derived from.
"""

from . import models  # noqa: F401
