"""
Persistence collaborators.

- ProgressStore: SQLite review cards, attempts, sessions and unit progress
- ItemCatalog: JSON practice item metadata
"""

from .item_catalog import ItemCatalog
from .progress_store import ProgressStore

__all__ = [
    "ProgressStore",
    "ItemCatalog",
]
