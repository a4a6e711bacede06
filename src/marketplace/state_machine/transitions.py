"""Transition tables and predicates for sell-post and offer statuses.

Pure functions only: no I/O, so the legality of every status change can be
checked in isolation before a store transaction touches any row.
"""

from __future__ import annotations

from marketplace.domain.errors import InvalidTransitionError
from marketplace.domain.types import OfferStatus, SellPostStatus

# All valid from -> {to} status changes for a listing.
# Any pair not in this table is an invalid transition.
SELL_POST_TRANSITIONS: dict[SellPostStatus, frozenset[SellPostStatus]] = {
    SellPostStatus.AVAILABLE: frozenset(
        {
            SellPostStatus.PENDING,
            SellPostStatus.SOLD,
            SellPostStatus.HIDDEN,
            SellPostStatus.EXPIRED,
        }
    ),
    SellPostStatus.PENDING: frozenset(
        {
            SellPostStatus.SOLD,
            SellPostStatus.AVAILABLE,  # offer fell through
            SellPostStatus.HIDDEN,
            SellPostStatus.EXPIRED,
        }
    ),
    SellPostStatus.EXPIRED: frozenset({SellPostStatus.HIDDEN}),
    # Unhide restores whichever status the listing was hidden from.
    SellPostStatus.HIDDEN: frozenset(
        {SellPostStatus.AVAILABLE, SellPostStatus.PENDING, SellPostStatus.EXPIRED}
    ),
    SellPostStatus.SOLD: frozenset(),
}

OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: frozenset(
        {
            OfferStatus.ACCEPTED,
            OfferStatus.REJECTED,
            OfferStatus.COUNTERED,
            OfferStatus.WITHDRAWN,
            OfferStatus.EXPIRED,
        }
    ),
    OfferStatus.COUNTERED: frozenset(
        {
            OfferStatus.ACCEPTED,
            OfferStatus.REJECTED,
            OfferStatus.COUNTERED,  # re-counter
            OfferStatus.WITHDRAWN,
        }
    ),
    OfferStatus.ACCEPTED: frozenset(),
    OfferStatus.REJECTED: frozenset(),
    OfferStatus.WITHDRAWN: frozenset(),
    OfferStatus.EXPIRED: frozenset(),
}

TERMINAL_SELL_POST_STATES: frozenset[SellPostStatus] = frozenset(
    status for status, targets in SELL_POST_TRANSITIONS.items() if not targets
)

TERMINAL_OFFER_STATES: frozenset[OfferStatus] = frozenset(
    status for status, targets in OFFER_TRANSITIONS.items() if not targets
)

# Statuses in which an offer is still under negotiation.
ACTIVE_OFFER_STATES: frozenset[OfferStatus] = frozenset(
    {OfferStatus.PENDING, OfferStatus.COUNTERED}
)


def can_transition(current: SellPostStatus, requested: SellPostStatus) -> bool:
    """Return True if a listing may move from *current* to *requested*."""
    return requested in SELL_POST_TRANSITIONS.get(current, frozenset())


def can_transition_offer(current: OfferStatus, requested: OfferStatus) -> bool:
    """Return True if an offer may move from *current* to *requested*."""
    return requested in OFFER_TRANSITIONS.get(current, frozenset())


def can_respond(status: OfferStatus) -> bool:
    """Return True if an offer in *status* can still be accepted, rejected, or countered."""
    return status in ACTIVE_OFFER_STATES


def ensure_transition(current: SellPostStatus, requested: SellPostStatus) -> None:
    """Validate a listing status change against the transition table.

    Args:
        current: The listing's current status.
        requested: The status the caller wants to move to.

    Raises:
        InvalidTransitionError: If the pair is not in ``SELL_POST_TRANSITIONS``.
    """
    if not can_transition(current, requested):
        raise InvalidTransitionError(current, requested)


def ensure_offer_transition(current: OfferStatus, requested: OfferStatus) -> None:
    """Validate an offer status change against the transition table.

    Raises:
        InvalidTransitionError: If the pair is not in ``OFFER_TRANSITIONS``.
    """
    if not can_transition_offer(current, requested):
        raise InvalidTransitionError(current, requested)
