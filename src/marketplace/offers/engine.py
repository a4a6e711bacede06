"""Offer engine: buyer/seller negotiation on top of a listing.

Every mutating operation follows the same shape:

1. Validate input that needs no database access (prices, actions).
2. Inside one store transaction: load the offer and listing, check the
   acting user and current status, apply the change, and append history.
   Accepting an offer also closes the listing via ``ListingLifecycle`` in
   the same transaction.
3. After commit: update metrics and publish live events.  Publishing never
   raises into the caller.

Whose move it is lives on ``Offer.awaiting``: a new offer or a buyer counter
waits on the seller (``respond_to_offer``), a seller counter waits on the
buyer (``respond_to_counter``).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

import structlog

from marketplace.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOfferError,
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
from marketplace.domain.money import parse_price
from marketplace.domain.types import (
    ACTION_TO_STATUS,
    OfferAction,
    OfferStatus,
    Party,
    SellPostStatus,
)
from marketplace.listings.lifecycle import ListingLifecycle, utc_now
from marketplace.notifications.dispatcher import NotificationDispatcher
from marketplace.notifications.events import new_offer_event, offer_updated_event
from marketplace.observability.metrics import LISTINGS_SOLD, OFFERS_FINALIZED, OFFERS_SUBMITTED
from marketplace.state_machine.transitions import can_respond, ensure_offer_transition
from marketplace.store.store import MarketplaceStore

logger = structlog.get_logger()


class OfferEngine:
    """Validate and apply offer creation, responses, counters, and withdrawals."""

    def __init__(
        self,
        store: MarketplaceStore,
        lifecycle: ListingLifecycle,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Persistence for listings and offers.
            lifecycle: Listing controller used to close a listing on accept.
            dispatcher: Live-event fan-out; ``None`` disables notifications.
            clock: Source of "now" (injectable for tests).
        """
        self._store = store
        self._lifecycle = lifecycle
        self._dispatcher = dispatcher
        self._clock = clock

    # ------------------------------------------------------------------
    # Buyer: make an offer
    # ------------------------------------------------------------------

    def submit_offer(
        self,
        sell_post_id: str,
        buyer_id: str,
        offered_price: object,
        message: str | None = None,
    ) -> Offer:
        """Create a PENDING offer on an AVAILABLE listing and notify the seller.

        Raises:
            ValidationError: If ``offered_price`` is missing or not positive.
            NotFoundError: If the listing does not exist.
            ConflictError: If the listing is SOLD or otherwise not AVAILABLE,
                or the buyer already has an active offer on it.
            ForbiddenError: If the buyer owns the listing.
            InvalidOfferError: If the listing is not negotiable and the price
                differs from the asking price.
        """
        price = parse_price(offered_price, "offered_price")

        with self._store.transaction():
            post = self._lifecycle.get_sell_post(sell_post_id)
            if post.status == SellPostStatus.SOLD:
                raise ConflictError("This listing has already been sold")
            if post.status != SellPostStatus.AVAILABLE:
                raise ConflictError("This listing is no longer available")
            if post.seller_id == buyer_id:
                raise ForbiddenError("You cannot make an offer on your own listing")
            if not post.negotiable and price != post.price:
                raise InvalidOfferError(
                    f"This listing is not negotiable; offers must match the asking price of {post.price}"
                )
            if self._store.find_active_offer(sell_post_id, buyer_id) is not None:
                raise ConflictError("You already have an active offer on this listing")

            now = self._clock()
            offer = Offer(
                id=uuid.uuid4().hex,
                sell_post_id=sell_post_id,
                buyer_id=buyer_id,
                offered_price=price,
                message=message,
                status=OfferStatus.PENDING,
                awaiting=Party.SELLER,
                created_at=now,
                updated_at=now,
            )
            self._store.insert_offer(offer)
            self._record(offer, None, buyer_id, message, now)

        OFFERS_SUBMITTED.inc()
        logger.info(
            "offer_submitted",
            offer_id=offer.id,
            sell_post_id=sell_post_id,
            buyer_id=buyer_id,
            offered_price=str(price),
        )
        self._notify([new_offer_event(offer, post)])
        return offer

    # ------------------------------------------------------------------
    # Seller: respond to an offer or to the buyer's counter
    # ------------------------------------------------------------------

    def respond_to_offer(
        self,
        offer_id: str,
        acting_user_id: str,
        action: OfferAction | str,
        counter_price: object = None,
        response_message: str | None = None,
    ) -> Offer:
        """Seller accepts, rejects, or counters an offer awaiting their reply.

        Accepting sells the listing and rejects every other live offer on it.

        Raises:
            ValidationError: Unknown action, or counter without a positive price.
            NotFoundError: If the offer does not exist.
            ForbiddenError: If the acting user is not the listing's seller.
            ConflictError: If the offer is finalized or awaiting the buyer,
                or the listing can no longer be sold.
        """
        response = _parse_action(action)
        price = parse_price(counter_price, "counter_price") if response == OfferAction.COUNTER else None

        with self._store.transaction():
            offer, post = self._load(offer_id)
            if acting_user_id != post.seller_id:
                raise ForbiddenError("Only the seller can respond to this offer")
            self._require_open(offer)
            if offer.awaiting != Party.SELLER:
                raise ConflictError("Waiting for the buyer to respond to your counter-offer")
            updated, sold, rejected = self._apply(
                offer, post, response, acting_user_id, price, response_message, Party.BUYER
            )

        return self._after_response(updated, sold or post, rejected, acting_user_id, offer.buyer_id)

    # ------------------------------------------------------------------
    # Buyer: respond to the seller's counter
    # ------------------------------------------------------------------

    def respond_to_counter(
        self,
        offer_id: str,
        buyer_id: str,
        action: OfferAction | str,
        new_price: object = None,
        message: str | None = None,
    ) -> Offer:
        """Buyer accepts, rejects, or re-counters the seller's counter-offer.

        Raises:
            ValidationError: Unknown action, or counter without a positive price.
            NotFoundError: If the offer does not exist.
            ForbiddenError: If the acting user is not the offer's buyer.
            ConflictError: If no counter-offer is awaiting the buyer, or the
                listing can no longer be sold.
        """
        response = _parse_action(action)
        price = parse_price(new_price, "new_price") if response == OfferAction.COUNTER else None

        with self._store.transaction():
            offer, post = self._load(offer_id)
            if buyer_id != offer.buyer_id:
                raise ForbiddenError("Only the buyer can respond to this counter-offer")
            self._require_open(offer)
            if offer.status != OfferStatus.COUNTERED or offer.awaiting != Party.BUYER:
                raise ConflictError("There is no counter-offer awaiting your response")
            updated, sold, rejected = self._apply(
                offer, post, response, buyer_id, price, message, Party.SELLER
            )

        return self._after_response(updated, sold or post, rejected, buyer_id, post.seller_id)

    # ------------------------------------------------------------------
    # Buyer withdraws / timer expires
    # ------------------------------------------------------------------

    def withdraw_offer(self, offer_id: str, acting_user_id: str) -> Offer:
        """Buyer withdraws a PENDING offer.  No notification is sent.

        Raises:
            NotFoundError: If the offer does not exist.
            ForbiddenError: If the acting user is not the offer's buyer.
            ConflictError: If the offer is not PENDING (countered offers
                cannot be withdrawn; reject the counter instead).
        """
        with self._store.transaction():
            offer, _post = self._load(offer_id)
            if acting_user_id != offer.buyer_id:
                raise ForbiddenError("You do not have permission to withdraw this offer")
            if offer.status != OfferStatus.PENDING:
                raise ConflictError(f"Cannot withdraw an offer that is {offer.status.value}")
            updated = self._finalize(offer, OfferStatus.WITHDRAWN, acting_user_id)

        OFFERS_FINALIZED.labels(status=OfferStatus.WITHDRAWN.value).inc()
        logger.info("offer_withdrawn", offer_id=offer_id, buyer_id=acting_user_id)
        return updated

    def expire_offer(self, offer_id: str) -> Offer:
        """Expire a PENDING offer (external timer) and tell the buyer.

        Raises:
            NotFoundError: If the offer does not exist.
            ConflictError: If the offer is not PENDING.
        """
        with self._store.transaction():
            offer, post = self._load(offer_id)
            if offer.status != OfferStatus.PENDING:
                raise ConflictError(f"Cannot expire an offer that is {offer.status.value}")
            updated = self._finalize(offer, OfferStatus.EXPIRED, None)

        OFFERS_FINALIZED.labels(status=OfferStatus.EXPIRED.value).inc()
        logger.info("offer_expired", offer_id=offer_id)
        self._notify([offer_updated_event(updated, post, updated.buyer_id)])
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_offer(self, offer_id: str, acting_user_id: str) -> Offer:
        """Return an offer visible to its buyer or the listing's seller."""
        offer, post = self._load(offer_id)
        if acting_user_id not in (offer.buyer_id, post.seller_id):
            raise ForbiddenError("You do not have permission to view this offer")
        return offer

    def offer_history(self, offer_id: str, acting_user_id: str) -> list[OfferHistoryEntry]:
        """Return an offer's negotiation history for one of its two parties."""
        offer = self.get_offer(offer_id, acting_user_id)
        return self._store.list_history(offer.id)

    def list_offers_for_sell_post(self, sell_post_id: str, acting_user_id: str) -> list[Offer]:
        """Return every offer on a listing, newest first (seller only)."""
        post = self._lifecycle.get_sell_post(sell_post_id)
        if post.seller_id != acting_user_id:
            raise ForbiddenError("Only the seller can view offers on this listing")
        return self._store.list_offers_for_sell_post(sell_post_id)

    def list_buyer_offers(
        self, buyer_id: str, status: OfferStatus | str | None = None
    ) -> list[Offer]:
        """Return a buyer's offers, newest first, optionally filtered by status."""
        wanted = None
        if status is not None:
            try:
                wanted = OfferStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown offer status: {status!r}") from None
        return self._store.list_buyer_offers(buyer_id, wanted)

    def offer_stats(self, sell_post_id: str, acting_user_id: str) -> OfferStats:
        """Return offer counts per status for a listing (seller only)."""
        post = self._lifecycle.get_sell_post(sell_post_id)
        if post.seller_id != acting_user_id:
            raise ForbiddenError("Only the seller can view offers on this listing")
        return self._store.offer_stats(sell_post_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, offer_id: str) -> tuple[Offer, SellPost]:
        offer = self._store.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("offer", offer_id)
        return offer, self._lifecycle.get_sell_post(offer.sell_post_id)

    @staticmethod
    def _require_open(offer: Offer) -> None:
        if not can_respond(offer.status):
            raise ConflictError("This offer has already been finalized")

    def _apply(
        self,
        offer: Offer,
        post: SellPost,
        action: OfferAction,
        actor_id: str,
        price: Decimal | None,
        message: str | None,
        counterparty: Party,
    ) -> tuple[Offer, SellPost | None, list[Offer]]:
        """Apply a response inside the caller's transaction.

        Returns:
            The updated offer, the SOLD listing (accept only, else ``None``),
            and any sibling offers auto-rejected by the accept.
        """
        target = ACTION_TO_STATUS[action]
        ensure_offer_transition(offer.status, target)
        now = self._clock()

        sold: SellPost | None = None
        rejected: list[Offer] = []
        if action == OfferAction.ACCEPT:
            sold, rejected = self._lifecycle.close_listing(
                post, actor_id=actor_id, accepted_offer_id=offer.id
            )

        update: dict[str, object] = {
            "status": target,
            "response_message": message,
            "responded_at": now,
            "updated_at": now,
        }
        if action == OfferAction.COUNTER:
            update["offered_price"] = price
            update["awaiting"] = counterparty

        updated = offer.model_copy(update=update)
        self._store.update_offer(updated)
        self._record(updated, offer.status, actor_id, message, now)
        return updated, sold, rejected

    def _finalize(self, offer: Offer, target: OfferStatus, actor_id: str | None) -> Offer:
        ensure_offer_transition(offer.status, target)
        now = self._clock()
        updated = offer.model_copy(update={"status": target, "updated_at": now})
        self._store.update_offer(updated)
        self._record(updated, offer.status, actor_id, None, now)
        return updated

    def _record(
        self,
        offer: Offer,
        from_status: OfferStatus | None,
        actor_id: str | None,
        note: str | None,
        now: datetime,
    ) -> None:
        self._store.append_history(
            OfferHistoryEntry(
                offer_id=offer.id,
                from_status=from_status,
                to_status=offer.status,
                actor_id=actor_id,
                price=offer.offered_price,
                note=note,
                created_at=now,
            )
        )

    def _after_response(
        self,
        offer: Offer,
        post: SellPost,
        rejected: list[Offer],
        actor_id: str,
        recipient_id: str,
    ) -> Offer:
        if offer.status == OfferStatus.ACCEPTED:
            LISTINGS_SOLD.inc()
        if offer.status != OfferStatus.COUNTERED:
            OFFERS_FINALIZED.labels(status=offer.status.value).inc()
        logger.info(
            "offer_responded",
            offer_id=offer.id,
            sell_post_id=post.id,
            actor_id=actor_id,
            status=offer.status.value,
            offered_price=str(offer.offered_price),
            auto_rejected=len(rejected),
        )
        self._notify([offer_updated_event(offer, post, recipient_id)])
        self._lifecycle.notify_rejected(rejected, post)
        return offer

    def _notify(self, events: list[NotificationEvent]) -> None:
        if self._dispatcher is None:
            return
        try:
            self._dispatcher.publish_all(events)
        except Exception:
            logger.exception("notification_failed", tags=[e.idempotency_tag for e in events])


def _parse_action(action: OfferAction | str) -> OfferAction:
    try:
        return OfferAction(str(action).lower())
    except ValueError:
        raise ValidationError(f"Unknown action: {action!r}") from None
