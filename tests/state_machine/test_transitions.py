"""Tests for the listing and offer transition tables."""

import pytest

from marketplace.domain.errors import InvalidTransitionError
from marketplace.domain.types import OfferStatus, SellPostStatus
from marketplace.state_machine.transitions import (
    ACTIVE_OFFER_STATES,
    OFFER_TRANSITIONS,
    SELL_POST_TRANSITIONS,
    TERMINAL_OFFER_STATES,
    TERMINAL_SELL_POST_STATES,
    can_respond,
    can_transition,
    can_transition_offer,
    ensure_offer_transition,
    ensure_transition,
)

ALLOWED_SELL_POST = [
    (SellPostStatus.AVAILABLE, SellPostStatus.PENDING),
    (SellPostStatus.AVAILABLE, SellPostStatus.SOLD),
    (SellPostStatus.AVAILABLE, SellPostStatus.HIDDEN),
    (SellPostStatus.AVAILABLE, SellPostStatus.EXPIRED),
    (SellPostStatus.PENDING, SellPostStatus.SOLD),
    (SellPostStatus.PENDING, SellPostStatus.AVAILABLE),
    (SellPostStatus.PENDING, SellPostStatus.HIDDEN),
    (SellPostStatus.PENDING, SellPostStatus.EXPIRED),
    (SellPostStatus.EXPIRED, SellPostStatus.HIDDEN),
    (SellPostStatus.HIDDEN, SellPostStatus.AVAILABLE),
    (SellPostStatus.HIDDEN, SellPostStatus.PENDING),
    (SellPostStatus.HIDDEN, SellPostStatus.EXPIRED),
]

ALLOWED_OFFER = [
    (OfferStatus.PENDING, OfferStatus.ACCEPTED),
    (OfferStatus.PENDING, OfferStatus.REJECTED),
    (OfferStatus.PENDING, OfferStatus.COUNTERED),
    (OfferStatus.PENDING, OfferStatus.WITHDRAWN),
    (OfferStatus.PENDING, OfferStatus.EXPIRED),
    (OfferStatus.COUNTERED, OfferStatus.ACCEPTED),
    (OfferStatus.COUNTERED, OfferStatus.REJECTED),
    (OfferStatus.COUNTERED, OfferStatus.COUNTERED),
    (OfferStatus.COUNTERED, OfferStatus.WITHDRAWN),
]


class TestSellPostTransitions:
    """Every pair in the listing table, allowed or not."""

    def test_every_status_is_a_source(self) -> None:
        assert set(SELL_POST_TRANSITIONS) == set(SellPostStatus)

    @pytest.mark.parametrize(
        ("current", "requested"),
        [(c, r) for c in SellPostStatus for r in SellPostStatus],
        ids=lambda s: s.value,
    )
    def test_table(self, current: SellPostStatus, requested: SellPostStatus) -> None:
        assert can_transition(current, requested) == ((current, requested) in ALLOWED_SELL_POST)

    def test_sold_is_the_only_terminal_state(self) -> None:
        assert TERMINAL_SELL_POST_STATES == frozenset({SellPostStatus.SOLD})

    def test_ensure_raises_for_sold_to_available(self) -> None:
        with pytest.raises(InvalidTransitionError, match="from 'sold' to 'available'"):
            ensure_transition(SellPostStatus.SOLD, SellPostStatus.AVAILABLE)

    def test_ensure_passes_for_allowed(self) -> None:
        ensure_transition(SellPostStatus.HIDDEN, SellPostStatus.AVAILABLE)


class TestOfferTransitions:
    """Every pair in the offer table, allowed or not."""

    def test_every_status_is_a_source(self) -> None:
        assert set(OFFER_TRANSITIONS) == set(OfferStatus)

    @pytest.mark.parametrize(
        ("current", "requested"),
        [(c, r) for c in OfferStatus for r in OfferStatus],
        ids=lambda s: s.value,
    )
    def test_table(self, current: OfferStatus, requested: OfferStatus) -> None:
        assert can_transition_offer(current, requested) == ((current, requested) in ALLOWED_OFFER)

    def test_terminal_states(self) -> None:
        assert TERMINAL_OFFER_STATES == frozenset(
            {
                OfferStatus.ACCEPTED,
                OfferStatus.REJECTED,
                OfferStatus.WITHDRAWN,
                OfferStatus.EXPIRED,
            }
        )

    @pytest.mark.parametrize("status", list(OfferStatus), ids=lambda s: s.value)
    def test_can_respond_only_when_active(self, status: OfferStatus) -> None:
        assert can_respond(status) == (status in ACTIVE_OFFER_STATES)

    def test_ensure_raises_for_terminal_source(self) -> None:
        with pytest.raises(InvalidTransitionError):
            ensure_offer_transition(OfferStatus.REJECTED, OfferStatus.ACCEPTED)
