"""Tests for OfferEngine: submission, responses, counters, withdrawal, expiry.

Every test runs against an in-memory store with recording channels standing
in for the buyers' and sellers' WebSocket connections.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from pathlib import Path

import pytest

from marketplace.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOfferError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from marketplace.domain.models import NotificationEvent, SellPost
from marketplace.domain.types import EventKind, OfferAction, OfferStatus, Party, SellPostStatus
from marketplace.listings import DEFAULT_AUTO_REJECT_MESSAGE, ListingLifecycle
from marketplace.offers import OfferEngine
from marketplace.store import MarketplaceStore, open_database

SELLER = "seller-1"
BUYER = "buyer-1"
OTHER_BUYER = "buyer-2"


class TestSubmitOffer:
    """Creating offers against a listing."""

    def test_creates_pending_offer_awaiting_seller(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, Decimal("900"), "Can pick up today")
        assert offer.status == OfferStatus.PENDING
        assert offer.awaiting == Party.SELLER
        assert offer.offered_price == Decimal("900")
        assert offer.message == "Can pick up today"

    def test_notifies_seller(self, engine: OfferEngine, listing: SellPost, connect) -> None:
        seller_channel = connect(SELLER)
        offer = engine.submit_offer(listing.id, BUYER, "900")

        [event] = seller_channel.events
        assert event.kind == EventKind.NEW_OFFER
        assert event.idempotency_tag == f"offer-{offer.id}"
        assert event.title == "New Offer Received"
        assert event.message == 'You received an offer of $900.00 for "Road bike"'
        assert event.payload["offer_id"] == offer.id

    def test_offline_seller_does_not_fail_submission(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        assert offer.status == OfferStatus.PENDING

    @pytest.mark.parametrize("price", [0, "-10", None, "abc"])
    def test_rejects_invalid_price(
        self, engine: OfferEngine, store: MarketplaceStore, listing: SellPost, price
    ) -> None:
        with pytest.raises(ValidationError):
            engine.submit_offer(listing.id, BUYER, price)
        assert store.list_offers_for_sell_post(listing.id) == []

    def test_unknown_listing(self, engine: OfferEngine) -> None:
        with pytest.raises(NotFoundError):
            engine.submit_offer("missing", BUYER, "10")

    def test_cannot_offer_on_own_listing(self, engine: OfferEngine, listing: SellPost) -> None:
        with pytest.raises(ForbiddenError):
            engine.submit_offer(listing.id, SELLER, "900")

    def test_sold_listing_is_a_conflict(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        store: MarketplaceStore,
        listing: SellPost,
    ) -> None:
        lifecycle.mark_sold(listing.id, SELLER)
        with pytest.raises(ConflictError, match="already been sold"):
            engine.submit_offer(listing.id, BUYER, "900")
        assert store.list_offers_for_sell_post(listing.id) == []

    @pytest.mark.parametrize("transition", ["mark_pending", "hide"])
    def test_unavailable_listing_is_a_conflict(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        listing: SellPost,
        transition: str,
    ) -> None:
        getattr(lifecycle, transition)(listing.id, SELLER)
        with pytest.raises(ConflictError, match="no longer available"):
            engine.submit_offer(listing.id, BUYER, "900")

    def test_non_negotiable_requires_asking_price(
        self, engine: OfferEngine, lifecycle: ListingLifecycle
    ) -> None:
        post = lifecycle.create_sell_post(SELLER, "Textbook", "50", "like_new", negotiable=False)
        with pytest.raises(InvalidOfferError, match="not negotiable"):
            engine.submit_offer(post.id, BUYER, "45")
        offer = engine.submit_offer(post.id, BUYER, "50.00")
        assert offer.offered_price == Decimal("50")

    def test_second_active_offer_is_a_conflict(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        engine.submit_offer(listing.id, BUYER, "900")
        with pytest.raises(ConflictError, match="already have an active offer"):
            engine.submit_offer(listing.id, BUYER, "950")

    def test_new_offer_allowed_after_withdrawal(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        first = engine.submit_offer(listing.id, BUYER, "900")
        engine.withdraw_offer(first.id, BUYER)
        second = engine.submit_offer(listing.id, BUYER, "950")
        assert second.id != first.id


class TestAccept:
    """Seller accepts: the listing sells and every other live offer closes."""

    def test_accept_sells_listing(
        self, engine: OfferEngine, lifecycle: ListingLifecycle, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        accepted = engine.respond_to_offer(offer.id, SELLER, OfferAction.ACCEPT, None, "Deal!")

        assert accepted.status == OfferStatus.ACCEPTED
        assert accepted.response_message == "Deal!"
        assert accepted.responded_at is not None
        post = lifecycle.get_sell_post(listing.id)
        assert post.status == SellPostStatus.SOLD
        assert post.sold_at is not None

    def test_accept_rejects_all_siblings(
        self,
        engine: OfferEngine,
        store: MarketplaceStore,
        listing: SellPost,
        connect,
    ) -> None:
        buyers = [f"buyer-{n}" for n in range(1, 5)]
        offers = [engine.submit_offer(listing.id, b, f"{800 + n}") for n, b in enumerate(buyers)]
        channels = {b: connect(b) for b in buyers}
        engine.respond_to_offer(offers[0].id, SELLER, "counter", "950")
        engine.respond_to_offer(offers[2].id, SELLER, "accept")

        for offer in offers:
            stored = store.get_offer(offer.id)
            if offer.id == offers[2].id:
                assert stored.status == OfferStatus.ACCEPTED
            else:
                assert stored.status == OfferStatus.REJECTED
                assert stored.response_message == DEFAULT_AUTO_REJECT_MESSAGE
        assert store.list_active_offers(listing.id) == []

        rejected_event = channels["buyer-2"].events[-1]
        assert rejected_event.title == "Offer Rejected"
        assert rejected_event.message == 'Your offer for "Road bike" was rejected'
        accepted_event = channels["buyer-3"].events[-1]
        assert accepted_event.title == "Offer Accepted"
        assert accepted_event.message == 'Your offer for "Road bike" was accepted!'

    def test_auto_rejected_offers_record_system_history(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        loser = engine.submit_offer(listing.id, OTHER_BUYER, "800")
        winner = engine.submit_offer(listing.id, BUYER, "900")
        engine.respond_to_offer(winner.id, SELLER, "accept")

        last = engine.offer_history(loser.id, OTHER_BUYER)[-1]
        assert last.from_status == OfferStatus.PENDING
        assert last.to_status == OfferStatus.REJECTED
        assert last.actor_id is None
        assert last.note == DEFAULT_AUTO_REJECT_MESSAGE

    def test_accept_on_hidden_listing_changes_nothing(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        store: MarketplaceStore,
        listing: SellPost,
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        other = engine.submit_offer(listing.id, OTHER_BUYER, "850")
        lifecycle.hide(listing.id, SELLER)

        with pytest.raises(InvalidTransitionError):
            engine.respond_to_offer(offer.id, SELLER, "accept")

        assert store.get_offer(offer.id).status == OfferStatus.PENDING
        assert store.get_offer(other.id).status == OfferStatus.PENDING
        assert lifecycle.get_sell_post(listing.id).status == SellPostStatus.HIDDEN

    def test_finalized_offer_cannot_be_answered(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        engine.respond_to_offer(offer.id, SELLER, "reject")
        with pytest.raises(ConflictError, match="already been finalized"):
            engine.respond_to_offer(offer.id, SELLER, "accept")

    def test_only_seller_may_respond(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        with pytest.raises(ForbiddenError):
            engine.respond_to_offer(offer.id, BUYER, "accept")

    def test_unknown_offer(self, engine: OfferEngine) -> None:
        with pytest.raises(NotFoundError):
            engine.respond_to_offer("missing", SELLER, "accept")

    def test_unknown_action(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        with pytest.raises(ValidationError, match="Unknown action"):
            engine.respond_to_offer(offer.id, SELLER, "maybe")

    def test_reject_leaves_listing_available(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        listing: SellPost,
        connect,
    ) -> None:
        buyer_channel = connect(BUYER)
        offer = engine.submit_offer(listing.id, BUYER, "500")
        rejected = engine.respond_to_offer(offer.id, SELLER, "REJECT", None, "Too low")
        assert rejected.status == OfferStatus.REJECTED
        assert lifecycle.get_sell_post(listing.id).status == SellPostStatus.AVAILABLE
        assert buyer_channel.events[-1].title == "Offer Rejected"


class TestCounter:
    """Counter-offers alternate between seller and buyer."""

    def test_seller_counter_awaits_buyer(
        self, engine: OfferEngine, listing: SellPost, connect
    ) -> None:
        buyer_channel = connect(BUYER)
        offer = engine.submit_offer(listing.id, BUYER, "800")
        countered = engine.respond_to_offer(offer.id, SELLER, "counter", "950", "Firm-ish")

        assert countered.status == OfferStatus.COUNTERED
        assert countered.awaiting == Party.BUYER
        assert countered.offered_price == Decimal("950")
        event = buyer_channel.events[-1]
        assert event.kind == EventKind.OFFER_UPDATED
        assert event.title == "Offer Countered"
        assert event.message == 'You received a counter-offer of $950.00 for "Road bike"'

    def test_counter_requires_price(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        with pytest.raises(ValidationError, match="counter_price is required"):
            engine.respond_to_offer(offer.id, SELLER, "counter")

    def test_seller_cannot_answer_own_counter(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        with pytest.raises(ConflictError, match="Waiting for the buyer"):
            engine.respond_to_offer(offer.id, SELLER, "accept")

    def test_buyer_accepts_counter(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        listing: SellPost,
        connect,
    ) -> None:
        seller_channel = connect(SELLER)
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        accepted = engine.respond_to_counter(offer.id, BUYER, "accept")

        assert accepted.status == OfferStatus.ACCEPTED
        assert accepted.offered_price == Decimal("950")
        assert lifecycle.get_sell_post(listing.id).status == SellPostStatus.SOLD
        event = seller_channel.events[-1]
        assert event.title == "Offer Accepted"
        assert event.message == 'The offer for "Road bike" was accepted!'

    def test_buyer_recounter_goes_back_to_seller(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        recounter = engine.respond_to_counter(offer.id, BUYER, "counter", "900", "Meet halfway?")

        assert recounter.status == OfferStatus.COUNTERED
        assert recounter.awaiting == Party.SELLER
        assert recounter.offered_price == Decimal("900")

        final = engine.respond_to_offer(offer.id, SELLER, "accept")
        assert final.status == OfferStatus.ACCEPTED
        assert final.offered_price == Decimal("900")

    def test_buyer_rejects_counter(
        self, engine: OfferEngine, lifecycle: ListingLifecycle, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        rejected = engine.respond_to_counter(offer.id, BUYER, "reject")
        assert rejected.status == OfferStatus.REJECTED
        assert lifecycle.get_sell_post(listing.id).status == SellPostStatus.AVAILABLE

    def test_counter_response_requires_a_counter(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        with pytest.raises(ConflictError, match="no counter-offer awaiting"):
            engine.respond_to_counter(offer.id, BUYER, "accept")

    def test_only_buyer_may_answer_counter(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        with pytest.raises(ForbiddenError):
            engine.respond_to_counter(offer.id, OTHER_BUYER, "accept")

    def test_buyer_counter_requires_price(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        with pytest.raises(ValidationError, match="new_price"):
            engine.respond_to_counter(offer.id, BUYER, "counter", "0")


class TestWithdrawAndExpire:
    def test_buyer_withdraws_pending_offer_silently(
        self, engine: OfferEngine, listing: SellPost, connect
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        seller_channel = connect(SELLER)
        withdrawn = engine.withdraw_offer(offer.id, BUYER)
        assert withdrawn.status == OfferStatus.WITHDRAWN
        assert seller_channel.events == []

    def test_only_buyer_may_withdraw(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        with pytest.raises(ForbiddenError):
            engine.withdraw_offer(offer.id, SELLER)

    def test_countered_offer_cannot_be_withdrawn(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        with pytest.raises(ConflictError, match="countered"):
            engine.withdraw_offer(offer.id, BUYER)

    def test_expire_pending_offer_notifies_buyer(
        self, engine: OfferEngine, listing: SellPost, connect
    ) -> None:
        buyer_channel = connect(BUYER)
        offer = engine.submit_offer(listing.id, BUYER, "800")
        expired = engine.expire_offer(offer.id)
        assert expired.status == OfferStatus.EXPIRED
        event = buyer_channel.events[-1]
        assert event.title == "Offer Expired"
        assert event.message == 'Offer for "Road bike" is now expired'

    def test_only_pending_offers_expire(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        with pytest.raises(ConflictError):
            engine.expire_offer(offer.id)


def _finalize_to(engine: OfferEngine, offer_id: str, status: OfferStatus) -> None:
    if status == OfferStatus.ACCEPTED:
        engine.respond_to_offer(offer_id, SELLER, "accept")
    elif status == OfferStatus.REJECTED:
        engine.respond_to_offer(offer_id, SELLER, "reject")
    elif status == OfferStatus.WITHDRAWN:
        engine.withdraw_offer(offer_id, BUYER)
    else:
        engine.expire_offer(offer_id)


_FOLLOW_UPS = {
    "respond_to_offer": lambda engine, offer_id: engine.respond_to_offer(
        offer_id, SELLER, "counter", counter_price="950"
    ),
    "respond_to_counter": lambda engine, offer_id: engine.respond_to_counter(
        offer_id, BUYER, "accept"
    ),
    "withdraw_offer": lambda engine, offer_id: engine.withdraw_offer(offer_id, BUYER),
    "expire_offer": lambda engine, offer_id: engine.expire_offer(offer_id),
}


class TestTerminalOffers:
    """A finalized offer refuses every further status change."""

    @pytest.mark.parametrize(
        "terminal",
        [OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.WITHDRAWN, OfferStatus.EXPIRED],
        ids=lambda s: s.value,
    )
    @pytest.mark.parametrize("operation", sorted(_FOLLOW_UPS))
    def test_no_further_transition(
        self,
        engine: OfferEngine,
        store: MarketplaceStore,
        listing: SellPost,
        terminal: OfferStatus,
        operation: str,
    ) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "900")
        _finalize_to(engine, offer.id, terminal)
        before = store.get_offer(offer.id)
        history = store.list_history(offer.id)

        with pytest.raises(ConflictError):
            _FOLLOW_UPS[operation](engine, offer.id)

        assert store.get_offer(offer.id) == before
        assert before.status == terminal
        assert store.list_history(offer.id) == history


class TestQueries:
    def test_history_records_each_step(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800", "Hi")
        engine.respond_to_offer(offer.id, SELLER, "counter", "950")
        engine.respond_to_counter(offer.id, BUYER, "accept")

        history = engine.offer_history(offer.id, SELLER)
        assert [(h.from_status, h.to_status) for h in history] == [
            (None, OfferStatus.PENDING),
            (OfferStatus.PENDING, OfferStatus.COUNTERED),
            (OfferStatus.COUNTERED, OfferStatus.ACCEPTED),
        ]
        assert [h.actor_id for h in history] == [BUYER, SELLER, BUYER]
        assert [h.price for h in history] == [Decimal("800"), Decimal("950"), Decimal("950")]

    def test_strangers_cannot_view_offer(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, BUYER, "800")
        assert engine.get_offer(offer.id, BUYER) == offer
        assert engine.get_offer(offer.id, SELLER) == offer
        with pytest.raises(ForbiddenError):
            engine.get_offer(offer.id, OTHER_BUYER)
        with pytest.raises(ForbiddenError):
            engine.offer_history(offer.id, OTHER_BUYER)

    def test_seller_lists_offers_newest_first(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        first = engine.submit_offer(listing.id, BUYER, "800")
        second = engine.submit_offer(listing.id, OTHER_BUYER, "850")
        offers = engine.list_offers_for_sell_post(listing.id, SELLER)
        assert [o.id for o in offers] == [second.id, first.id]
        with pytest.raises(ForbiddenError):
            engine.list_offers_for_sell_post(listing.id, BUYER)

    def test_buyer_lists_sent_offers(
        self, engine: OfferEngine, lifecycle: ListingLifecycle, listing: SellPost
    ) -> None:
        other = lifecycle.create_sell_post(SELLER, "Helmet", "40", "new")
        a = engine.submit_offer(listing.id, BUYER, "800")
        engine.submit_offer(other.id, BUYER, "35")
        engine.respond_to_offer(a.id, SELLER, "reject")

        assert len(engine.list_buyer_offers(BUYER)) == 2
        assert [o.id for o in engine.list_buyer_offers(BUYER, "rejected")] == [a.id]
        with pytest.raises(ValidationError, match="Unknown offer status"):
            engine.list_buyer_offers(BUYER, "bogus")

    def test_offer_stats(self, engine: OfferEngine, listing: SellPost) -> None:
        a = engine.submit_offer(listing.id, BUYER, "800")
        engine.submit_offer(listing.id, OTHER_BUYER, "850")
        engine.respond_to_offer(a.id, SELLER, "counter", "950")

        stats = engine.offer_stats(listing.id, SELLER)
        assert stats.total == 2
        assert stats.pending == 1
        assert stats.countered == 1
        with pytest.raises(ForbiddenError):
            engine.offer_stats(listing.id, BUYER)


class TestNotificationFailures:
    def test_failing_channel_does_not_undo_accept(
        self,
        engine: OfferEngine,
        lifecycle: ListingLifecycle,
        registry,
        listing: SellPost,
    ) -> None:
        class BrokenChannel:
            def send(self, event: NotificationEvent) -> None:
                raise ConnectionError("socket closed")

        registry.register(BUYER, BrokenChannel())
        offer = engine.submit_offer(listing.id, BUYER, "900")
        accepted = engine.respond_to_offer(offer.id, SELLER, "accept")

        assert accepted.status == OfferStatus.ACCEPTED
        assert lifecycle.get_sell_post(listing.id).status == SellPostStatus.SOLD
        assert not registry.is_connected(BUYER)


class TestConcurrentAccepts:
    """Two sellers' requests racing to accept sibling offers."""

    def test_exactly_one_accept_wins(
        self, engine: OfferEngine, store: MarketplaceStore, listing: SellPost
    ) -> None:
        first = engine.submit_offer(listing.id, BUYER, "900")
        second = engine.submit_offer(listing.id, OTHER_BUYER, "950")
        barrier = threading.Barrier(2)
        outcomes: dict[str, object] = {}

        def accept(offer_id: str) -> None:
            barrier.wait()
            try:
                outcomes[offer_id] = engine.respond_to_offer(offer_id, SELLER, "accept")
            except ConflictError as exc:
                outcomes[offer_id] = exc

        threads = [threading.Thread(target=accept, args=(o.id,)) for o in (first, second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        winners = [k for k, v in outcomes.items() if not isinstance(v, ConflictError)]
        losers = [k for k, v in outcomes.items() if isinstance(v, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert store.get_offer(winners[0]).status == OfferStatus.ACCEPTED
        assert store.get_offer(losers[0]).status == OfferStatus.REJECTED
        assert store.get_sell_post(listing.id).status == SellPostStatus.SOLD

    def test_racing_duplicate_submissions_create_one_offer(
        self, engine: OfferEngine, store: MarketplaceStore, listing: SellPost
    ) -> None:
        barrier = threading.Barrier(4)
        errors: list[ConflictError] = []

        def submit() -> None:
            barrier.wait()
            try:
                engine.submit_offer(listing.id, BUYER, "900")
            except ConflictError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=submit) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(errors) == 3
        assert len(store.list_offers_for_sell_post(listing.id)) == 1


class TestConcurrentAcceptsAcrossConnections:
    """Two processes' worth of stores sharing one database file."""

    def test_exactly_one_accept_wins(self, tmp_path: Path) -> None:
        db_path = tmp_path / "marketplace.db"
        stores = [MarketplaceStore(open_database(db_path)) for _ in range(2)]
        lifecycles = [ListingLifecycle(s) for s in stores]
        engines = [OfferEngine(s, lc) for s, lc in zip(stores, lifecycles, strict=True)]
        try:
            post = lifecycles[0].create_sell_post(SELLER, "Road bike", "1000", "good")
            first = engines[0].submit_offer(post.id, BUYER, "900")
            second = engines[1].submit_offer(post.id, OTHER_BUYER, "950")
            barrier = threading.Barrier(2)
            outcomes: dict[str, object] = {}

            def accept(engine: OfferEngine, offer_id: str) -> None:
                barrier.wait()
                try:
                    outcomes[offer_id] = engine.respond_to_offer(offer_id, SELLER, "accept")
                except ConflictError as exc:
                    outcomes[offer_id] = exc

            threads = [
                threading.Thread(target=accept, args=(engine, offer.id))
                for engine, offer in zip(engines, (first, second), strict=True)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=10)

            winners = [k for k, v in outcomes.items() if not isinstance(v, ConflictError)]
            assert len(winners) == 1
            assert len(outcomes) == 2
            reader = stores[1]
            assert reader.get_offer(winners[0]).status == OfferStatus.ACCEPTED
            statuses = {o.status for o in reader.list_offers_for_sell_post(post.id)}
            assert statuses == {OfferStatus.ACCEPTED, OfferStatus.REJECTED}
            assert reader.get_sell_post(post.id).status == SellPostStatus.SOLD
        finally:
            for s in stores:
                s.close()
