"""Marketplace persistence package.

Provides SQLite-backed storage for listings, offers, and offer history, plus
row/model conversion helpers.
"""

from marketplace.store.schema import init_marketplace_tables, open_database
from marketplace.store.store import MarketplaceStore

__all__ = [
    "MarketplaceStore",
    "init_marketplace_tables",
    "open_database",
]
