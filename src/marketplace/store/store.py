"""SQLite-backed store for sell posts, offers, and offer history.

All writes that belong to one business operation run inside a single
``transaction()``.  ``BEGIN IMMEDIATE`` takes the database write lock before
the first read, so a listing read inside the transaction cannot change
underneath it: two concurrent accepts on the same listing serialize, and the
second one observes the first one's result.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from marketplace.domain.errors import ConflictError
from marketplace.domain.models import Offer, OfferHistoryEntry, OfferStats, SellPost
from marketplace.domain.types import OfferStatus, SellPostStatus
from marketplace.resilience.retry import retry_on_locked
from marketplace.state_machine.transitions import ACTIVE_OFFER_STATES
from marketplace.store.serializers import (
    format_timestamp,
    history_from_row,
    offer_from_row,
    offer_to_params,
    sell_post_from_row,
    sell_post_to_params,
)

_ACTIVE_VALUES = tuple(sorted(s.value for s in ACTIVE_OFFER_STATES))


class MarketplaceStore:
    """Persist and retrieve listings and offers in SQLite.

    One store wraps one connection.  Threads sharing the store are serialized
    by a re-entrant lock held for the full length of a transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection in autocommit mode
                  (``isolation_level=None``) whose database already has the
                  marketplace tables (see ``init_marketplace_tables``).
        """
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the underlying connection."""
        return self._conn

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @retry_on_locked("begin_immediate")
    def _begin(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    @contextmanager
    def transaction(self) -> Iterator[MarketplaceStore]:
        """Run the enclosed block as one atomic write transaction.

        Commits on normal exit and rolls back on any exception.  Nested use
        joins the outer transaction.

        Yields:
            This store.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._begin()
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def ping(self) -> None:
        """Run a trivial query; raises if the connection is unusable."""
        with self._lock:
            self._conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    # ------------------------------------------------------------------
    # Sell posts
    # ------------------------------------------------------------------

    def insert_sell_post(self, post: SellPost) -> None:
        """Insert a new listing row."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO sell_posts (
                    id, seller_id, title, description, price, negotiable, condition,
                    status, sold_at, expires_at, hidden_from, created_at, updated_at
                ) VALUES (
                    :id, :seller_id, :title, :description, :price, :negotiable, :condition,
                    :status, :sold_at, :expires_at, :hidden_from, :created_at, :updated_at
                )
                """,
                sell_post_to_params(post),
            )

    def get_sell_post(self, sell_post_id: str) -> SellPost | None:
        """Return the listing with *sell_post_id*, or ``None``."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sell_posts WHERE id = ?", (sell_post_id,)
            ).fetchone()
        return sell_post_from_row(row) if row else None

    def update_sell_post(self, post: SellPost) -> None:
        """Write back every mutable column of *post*."""
        with self._lock:
            self._conn.execute(
                """
                UPDATE sell_posts SET
                    title = :title, description = :description, price = :price,
                    negotiable = :negotiable, condition = :condition,
                    status = :status, sold_at = :sold_at, expires_at = :expires_at,
                    hidden_from = :hidden_from,
                    updated_at = :updated_at
                WHERE id = :id
                """,
                sell_post_to_params(post),
            )

    def delete_sell_post(self, sell_post_id: str) -> bool:
        """Delete a listing; its offers and their history cascade.

        Returns:
            True if a row was deleted.
        """
        with self._lock:
            cursor = self._conn.execute("DELETE FROM sell_posts WHERE id = ?", (sell_post_id,))
        return cursor.rowcount > 0

    def list_seller_sell_posts(
        self, seller_id: str, status: SellPostStatus | None = None
    ) -> list[SellPost]:
        """Return a seller's listings, newest first, optionally filtered by status."""
        query = "SELECT * FROM sell_posts WHERE seller_id = ?"
        params: list[str] = [seller_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, rowid DESC"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [sell_post_from_row(row) for row in rows]

    def list_due_for_expiry(self, now: datetime) -> list[SellPost]:
        """Return AVAILABLE or PENDING listings whose ``expires_at`` is at or before *now*."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM sell_posts
                WHERE status IN (?, ?) AND expires_at IS NOT NULL AND expires_at <= ?
                ORDER BY expires_at
                """,
                (
                    SellPostStatus.AVAILABLE.value,
                    SellPostStatus.PENDING.value,
                    format_timestamp(now),
                ),
            ).fetchall()
        return [sell_post_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def insert_offer(self, offer: Offer) -> None:
        """Insert a new offer row.

        Raises:
            ConflictError: If the buyer already has an active offer on the
                listing (partial unique index violation).
        """
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO offers (
                        id, sell_post_id, buyer_id, offered_price, message, status,
                        response_message, responded_at, awaiting, created_at, updated_at
                    ) VALUES (
                        :id, :sell_post_id, :buyer_id, :offered_price, :message, :status,
                        :response_message, :responded_at, :awaiting, :created_at, :updated_at
                    )
                    """,
                    offer_to_params(offer),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(
                    "You already have an active offer on this listing"
                ) from exc

    def get_offer(self, offer_id: str) -> Offer | None:
        """Return the offer with *offer_id*, or ``None``."""
        with self._lock:
            row = self._conn.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
        return offer_from_row(row) if row else None

    def update_offer(self, offer: Offer) -> None:
        """Write back every mutable column of *offer*."""
        with self._lock:
            self._conn.execute(
                """
                UPDATE offers SET
                    offered_price = :offered_price, status = :status,
                    response_message = :response_message, responded_at = :responded_at,
                    awaiting = :awaiting, updated_at = :updated_at
                WHERE id = :id
                """,
                offer_to_params(offer),
            )

    def find_active_offer(self, sell_post_id: str, buyer_id: str) -> Offer | None:
        """Return the buyer's PENDING or COUNTERED offer on a listing, if any."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT * FROM offers
                WHERE sell_post_id = ? AND buyer_id = ? AND status IN (?, ?)
                """,
                (sell_post_id, buyer_id, *_ACTIVE_VALUES),
            ).fetchone()
        return offer_from_row(row) if row else None

    def list_active_offers(
        self, sell_post_id: str, exclude_offer_id: str | None = None
    ) -> list[Offer]:
        """Return every PENDING or COUNTERED offer on a listing.

        Args:
            sell_post_id: The listing to scan.
            exclude_offer_id: Optional offer to leave out (the one being accepted).
        """
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM offers
                WHERE sell_post_id = ? AND status IN (?, ?) AND id != ?
                ORDER BY created_at
                """,
                (sell_post_id, *_ACTIVE_VALUES, exclude_offer_id or ""),
            ).fetchall()
        return [offer_from_row(row) for row in rows]

    def list_offers_for_sell_post(self, sell_post_id: str) -> list[Offer]:
        """Return all offers on a listing, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM offers WHERE sell_post_id = ? ORDER BY created_at DESC",
                (sell_post_id,),
            ).fetchall()
        return [offer_from_row(row) for row in rows]

    def list_buyer_offers(
        self, buyer_id: str, status: OfferStatus | None = None
    ) -> list[Offer]:
        """Return a buyer's offers, newest first, optionally filtered by status."""
        query = "SELECT * FROM offers WHERE buyer_id = ?"
        params: list[str] = [buyer_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [offer_from_row(row) for row in rows]

    def offer_stats(self, sell_post_id: str) -> OfferStats:
        """Count a listing's offers per status."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM offers WHERE sell_post_id = ? GROUP BY status",
                (sell_post_id,),
            ).fetchall()
        counts = {row["status"]: row["n"] for row in rows}
        return OfferStats(total=sum(counts.values()), **counts)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_history(self, entry: OfferHistoryEntry) -> None:
        """Append one negotiation step for an offer."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO offer_history (
                    offer_id, from_status, to_status, actor_id, price, note, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.offer_id,
                    entry.from_status.value if entry.from_status else None,
                    entry.to_status.value,
                    entry.actor_id,
                    str(entry.price),
                    entry.note,
                    format_timestamp(entry.created_at),
                ),
            )

    def list_history(self, offer_id: str) -> list[OfferHistoryEntry]:
        """Return an offer's negotiation history in chronological order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM offer_history WHERE offer_id = ? ORDER BY id",
                (offer_id,),
            ).fetchall()
        return [history_from_row(row) for row in rows]
