"""SQLite schema for listings, offers, and offer negotiation history.

Offers cascade-delete with their sell post and history rows cascade-delete
with their offer, so foreign keys must be enabled on every connection.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open (and initialize) the marketplace database.

    The connection runs in autocommit mode; ``MarketplaceStore.transaction``
    issues ``BEGIN IMMEDIATE`` / ``COMMIT`` explicitly.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection with WAL mode and foreign keys enabled.
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    init_marketplace_tables(conn)
    return conn


def init_marketplace_tables(conn: sqlite3.Connection) -> None:
    """Create the sell_posts, offers, and offer_history tables if missing.

    A partial unique index allows at most one pending or countered offer per
    (sell post, buyer) pair.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sell_posts (
            id TEXT PRIMARY KEY,
            seller_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            price TEXT NOT NULL,
            negotiable INTEGER NOT NULL DEFAULT 1,
            condition TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'available',
            sold_at TEXT,
            expires_at TEXT,
            hidden_from TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK ((status = 'sold') = (sold_at IS NOT NULL))
        )
    """)
    _add_missing_column(conn, "sell_posts", "hidden_from", "TEXT")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sell_posts_seller ON sell_posts (seller_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sell_posts_status ON sell_posts (status)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS offers (
            id TEXT PRIMARY KEY,
            sell_post_id TEXT NOT NULL REFERENCES sell_posts (id) ON DELETE CASCADE,
            buyer_id TEXT NOT NULL,
            offered_price TEXT NOT NULL,
            message TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            response_message TEXT,
            responded_at TEXT,
            awaiting TEXT NOT NULL DEFAULT 'seller',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_offers_sell_post ON offers (sell_post_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_offers_buyer ON offers (buyer_id)")
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_offers_one_active
        ON offers (sell_post_id, buyer_id)
        WHERE status IN ('pending', 'countered')
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS offer_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            offer_id TEXT NOT NULL REFERENCES offers (id) ON DELETE CASCADE,
            from_status TEXT,
            to_status TEXT NOT NULL,
            actor_id TEXT,
            price TEXT NOT NULL,
            note TEXT,
            created_at TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_offer_history_offer ON offer_history (offer_id)")


def _add_missing_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    """Add *column* to a table created before the column existed."""
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
    if column not in existing:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
