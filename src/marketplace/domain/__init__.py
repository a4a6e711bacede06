"""Domain types, models, and errors for the marketplace offer service."""

from marketplace.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOfferError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from marketplace.domain.models import (
    NotificationEvent,
    Offer,
    OfferHistoryEntry,
    OfferStats,
    SellPost,
)
from marketplace.domain.types import (
    ACTION_TO_STATUS,
    EventKind,
    ItemCondition,
    OfferAction,
    OfferStatus,
    Party,
    SellPostStatus,
)

__all__ = [
    "ACTION_TO_STATUS",
    "ConflictError",
    "EventKind",
    "ForbiddenError",
    "InvalidOfferError",
    "InvalidTransitionError",
    "ItemCondition",
    "MarketplaceError",
    "NotFoundError",
    "NotificationEvent",
    "Offer",
    "OfferAction",
    "OfferHistoryEntry",
    "OfferStats",
    "OfferStatus",
    "Party",
    "SellPost",
    "SellPostStatus",
    "ValidationError",
]
