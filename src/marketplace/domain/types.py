"""Domain enumerations for marketplace listings, offers, and live events."""

from enum import StrEnum


class SellPostStatus(StrEnum):
    """Lifecycle states of a marketplace listing."""

    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"
    EXPIRED = "expired"
    HIDDEN = "hidden"


class OfferStatus(StrEnum):
    """Lifecycle states of a buyer's offer."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class ItemCondition(StrEnum):
    """Physical condition of the listed item."""

    NEW = "new"
    LIKE_NEW = "like_new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class OfferAction(StrEnum):
    """Responses either party can give to the other side's price."""

    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"


class Party(StrEnum):
    """The side of a negotiation whose move it is."""

    BUYER = "buyer"
    SELLER = "seller"


class EventKind(StrEnum):
    """Kinds of events pushed over a user's live channel."""

    NEW_OFFER = "new_offer"
    OFFER_UPDATED = "offer_updated"
    NEW_MESSAGE = "new_message"


# Target offer status for each response action
ACTION_TO_STATUS: dict[OfferAction, OfferStatus] = {
    OfferAction.ACCEPT: OfferStatus.ACCEPTED,
    OfferAction.REJECT: OfferStatus.REJECTED,
    OfferAction.COUNTER: OfferStatus.COUNTERED,
}
