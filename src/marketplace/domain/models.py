"""Pydantic v2 models for marketplace listings, offers, and live events."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketplace.domain.types import (
    EventKind,
    ItemCondition,
    OfferStatus,
    Party,
    SellPostStatus,
)


def _reject_float(v: object) -> object:
    if isinstance(v, float):
        raise ValueError("Use Decimal or string, not float, for monetary values")
    return v


class SellPost(BaseModel):
    """A marketplace listing owned by a single seller.

    ``sold_at`` is set if and only if the listing is SOLD.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    seller_id: str
    title: str
    description: str | None = None
    price: Decimal
    negotiable: bool = True
    condition: ItemCondition
    status: SellPostStatus = SellPostStatus.AVAILABLE
    sold_at: datetime | None = None
    expires_at: datetime | None = None
    # Status restored by unhide; set only while HIDDEN.
    hidden_from: SellPostStatus | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("price", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)

    @field_validator("price")
    @classmethod
    def price_must_be_positive(cls, v: Decimal) -> Decimal:
        """Ensure the listing price is positive."""
        if v <= 0:
            raise ValueError("price must be positive")
        return v

    @field_validator("title")
    @classmethod
    def title_must_not_be_empty(cls, v: str) -> str:
        """Ensure title is not empty or whitespace-only."""
        if not v.strip():
            raise ValueError("title must not be empty")
        return v

    @model_validator(mode="after")
    def sold_at_matches_status(self) -> SellPost:
        """Ensure ``sold_at`` is present exactly when the listing is SOLD."""
        if (self.status == SellPostStatus.SOLD) != (self.sold_at is not None):
            raise ValueError("sold_at must be set if and only if status is sold")
        return self


class Offer(BaseModel):
    """A buyer's proposed price against a sell post.

    ``awaiting`` records which side must act next: the seller after a new
    offer or a buyer counter, the buyer after a seller counter.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    sell_post_id: str
    buyer_id: str
    offered_price: Decimal
    message: str | None = None
    status: OfferStatus = OfferStatus.PENDING
    response_message: str | None = None
    responded_at: datetime | None = None
    awaiting: Party = Party.SELLER
    created_at: datetime
    updated_at: datetime

    @field_validator("offered_price", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)

    @field_validator("offered_price")
    @classmethod
    def price_must_be_positive(cls, v: Decimal) -> Decimal:
        """Ensure the offered price is positive."""
        if v <= 0:
            raise ValueError("offered_price must be positive")
        return v


class OfferHistoryEntry(BaseModel):
    """One step in an offer's negotiation history.

    ``from_status`` is ``None`` for the entry recording the offer's creation.
    """

    model_config = ConfigDict(frozen=True)

    offer_id: str
    from_status: OfferStatus | None
    to_status: OfferStatus
    actor_id: str | None
    price: Decimal
    note: str | None = None
    created_at: datetime


class OfferStats(BaseModel):
    """Offer counts per status for one sell post."""

    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    countered: int = 0
    withdrawn: int = 0
    expired: int = 0


class NotificationEvent(BaseModel):
    """A transient message pushed over a user's live channel.

    Never persisted.  ``idempotency_tag`` (``offer-<id>`` or ``message-<id>``)
    lets a client de-duplicate a push against a later refetch.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    target_user_id: str
    payload: dict[str, Any]
    idempotency_tag: str
    title: str = ""
    message: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
