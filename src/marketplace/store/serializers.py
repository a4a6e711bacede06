"""Row <-> model conversion for the marketplace tables.

Decimal values are stored as strings so no precision is lost.  Timestamps
are stored as fixed-width UTC strings so lexical order matches time order,
which ``list_due_for_expiry`` relies on.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from decimal import Decimal

from marketplace.domain.models import Offer, OfferHistoryEntry, SellPost

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(value: datetime | None) -> str | None:
    """Render *value* as a fixed-width UTC string (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a string produced by ``format_timestamp`` back to an aware datetime."""
    if value is None:
        return None
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=UTC)


def sell_post_from_row(row: sqlite3.Row) -> SellPost:
    """Build a ``SellPost`` from a ``sell_posts`` row."""
    return SellPost(
        id=row["id"],
        seller_id=row["seller_id"],
        title=row["title"],
        description=row["description"],
        price=Decimal(row["price"]),
        negotiable=bool(row["negotiable"]),
        condition=row["condition"],
        status=row["status"],
        sold_at=parse_timestamp(row["sold_at"]),
        expires_at=parse_timestamp(row["expires_at"]),
        hidden_from=row["hidden_from"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def sell_post_to_params(post: SellPost) -> dict[str, object]:
    """Flatten a ``SellPost`` into named query parameters."""
    return {
        "id": post.id,
        "seller_id": post.seller_id,
        "title": post.title,
        "description": post.description,
        "price": str(post.price),
        "negotiable": int(post.negotiable),
        "condition": post.condition.value,
        "status": post.status.value,
        "sold_at": format_timestamp(post.sold_at),
        "expires_at": format_timestamp(post.expires_at),
        "hidden_from": post.hidden_from.value if post.hidden_from else None,
        "created_at": format_timestamp(post.created_at),
        "updated_at": format_timestamp(post.updated_at),
    }


def offer_from_row(row: sqlite3.Row) -> Offer:
    """Build an ``Offer`` from an ``offers`` row."""
    return Offer(
        id=row["id"],
        sell_post_id=row["sell_post_id"],
        buyer_id=row["buyer_id"],
        offered_price=Decimal(row["offered_price"]),
        message=row["message"],
        status=row["status"],
        response_message=row["response_message"],
        responded_at=parse_timestamp(row["responded_at"]),
        awaiting=row["awaiting"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def offer_to_params(offer: Offer) -> dict[str, object]:
    """Flatten an ``Offer`` into named query parameters."""
    return {
        "id": offer.id,
        "sell_post_id": offer.sell_post_id,
        "buyer_id": offer.buyer_id,
        "offered_price": str(offer.offered_price),
        "message": offer.message,
        "status": offer.status.value,
        "response_message": offer.response_message,
        "responded_at": format_timestamp(offer.responded_at),
        "awaiting": offer.awaiting.value,
        "created_at": format_timestamp(offer.created_at),
        "updated_at": format_timestamp(offer.updated_at),
    }


def history_from_row(row: sqlite3.Row) -> OfferHistoryEntry:
    """Build an ``OfferHistoryEntry`` from an ``offer_history`` row."""
    return OfferHistoryEntry(
        offer_id=row["offer_id"],
        from_status=row["from_status"],
        to_status=row["to_status"],
        actor_id=row["actor_id"],
        price=Decimal(row["price"]),
        note=row["note"],
        created_at=parse_timestamp(row["created_at"]),
    )
