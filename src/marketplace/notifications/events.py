"""Builders for the events pushed to buyers and sellers.

Each builder returns a ``NotificationEvent`` carrying a JSON-safe snapshot of
the offer (or message) so the client can update its state without a refetch,
plus the human-readable title and text shown in the notification bell.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from marketplace.domain.models import NotificationEvent, Offer, SellPost
from marketplace.domain.types import EventKind, OfferStatus


def format_price(price: Decimal) -> str:
    """Format *price* as a dollar amount with two decimals."""
    return f"${price:,.2f}"


def offer_tag(offer_id: str) -> str:
    return f"offer-{offer_id}"


def message_tag(message_id: str) -> str:
    return f"message-{message_id}"


def offer_snapshot(offer: Offer, sell_post: SellPost) -> dict[str, Any]:
    """Return a JSON-safe snapshot of *offer* and the listing fields clients show."""
    return {
        "offer_id": offer.id,
        "sell_post_id": sell_post.id,
        "seller_id": sell_post.seller_id,
        "status": offer.status.value,
        "offer": offer.model_dump(mode="json"),
        "sell_post": {
            "id": sell_post.id,
            "title": sell_post.title,
            "price": str(sell_post.price),
            "status": sell_post.status.value,
        },
    }


def new_offer_event(offer: Offer, sell_post: SellPost) -> NotificationEvent:
    """Event telling the seller a buyer made an offer."""
    return NotificationEvent(
        kind=EventKind.NEW_OFFER,
        target_user_id=sell_post.seller_id,
        payload=offer_snapshot(offer, sell_post),
        idempotency_tag=offer_tag(offer.id),
        title="New Offer Received",
        message=f'You received an offer of {format_price(offer.offered_price)} for "{sell_post.title}"',
    )


def offer_updated_event(
    offer: Offer, sell_post: SellPost, target_user_id: str
) -> NotificationEvent:
    """Event telling *target_user_id* an offer changed status.

    The text is written from the recipient's side: "your offer" for the
    buyer, "the offer" for the seller.
    """
    title = f"Offer {offer.status.value.capitalize()}"
    subject = "Your offer" if target_user_id == offer.buyer_id else "The offer"
    messages = {
        OfferStatus.ACCEPTED: f'{subject} for "{sell_post.title}" was accepted!',
        OfferStatus.REJECTED: f'{subject} for "{sell_post.title}" was rejected',
        OfferStatus.COUNTERED: (
            f"You received a counter-offer of {format_price(offer.offered_price)} "
            f'for "{sell_post.title}"'
        ),
    }
    return NotificationEvent(
        kind=EventKind.OFFER_UPDATED,
        target_user_id=target_user_id,
        payload=offer_snapshot(offer, sell_post),
        idempotency_tag=offer_tag(offer.id),
        title=title,
        message=messages.get(
            offer.status, f'Offer for "{sell_post.title}" is now {offer.status.value}'
        ),
    )


def new_message_event(
    recipient_id: str,
    message_id: str,
    conversation_id: str,
    sender_name: str,
    body: str,
    post_title: str | None = None,
) -> NotificationEvent:
    """Event telling *recipient_id* a chat message arrived."""
    text = (
        f'{sender_name} sent you a message about "{post_title}"'
        if post_title
        else f"{sender_name} sent you a message"
    )
    return NotificationEvent(
        kind=EventKind.NEW_MESSAGE,
        target_user_id=recipient_id,
        payload={
            "message_id": message_id,
            "conversation_id": conversation_id,
            "sender_name": sender_name,
            "body": body,
        },
        idempotency_tag=message_tag(message_id),
        title="New Message",
        message=text,
    )
