"""Listing lifecycle controller: drives a sell post through its statuses.

Every operation loads the listing inside a store transaction and re-checks
the transition table before writing, so a stale request fails with
``InvalidTransitionError`` instead of overwriting a newer status.

``close_listing`` is shared with the offer engine: accepting an offer and
marking a listing sold both flip the listing to SOLD and reject every other
live offer in the same transaction.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Collection
from datetime import UTC, datetime

import structlog

from marketplace.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from marketplace.domain.models import Offer, OfferHistoryEntry, SellPost
from marketplace.domain.money import parse_price
from marketplace.domain.types import ItemCondition, OfferStatus, SellPostStatus
from marketplace.notifications.dispatcher import NotificationDispatcher
from marketplace.notifications.events import offer_updated_event
from marketplace.observability.metrics import LISTINGS_SOLD, OFFERS_FINALIZED
from marketplace.state_machine.transitions import ensure_offer_transition, ensure_transition
from marketplace.store.store import MarketplaceStore

logger = structlog.get_logger()

DEFAULT_AUTO_REJECT_MESSAGE = "This item is no longer available."

_EXPIRABLE = frozenset({SellPostStatus.AVAILABLE, SellPostStatus.PENDING})


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _parse_condition(condition: ItemCondition | str) -> ItemCondition:
    try:
        return ItemCondition(condition)
    except ValueError:
        raise ValidationError(f"Unknown condition: {condition!r}") from None


class ListingLifecycle:
    """Create listings and move them between statuses on behalf of their seller."""

    def __init__(
        self,
        store: MarketplaceStore,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
        auto_reject_message: str = DEFAULT_AUTO_REJECT_MESSAGE,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Persistence for listings and offers.
            dispatcher: Live-event fan-out; ``None`` disables notifications.
            clock: Source of "now" (injectable for tests).
            auto_reject_message: Response message set on offers closed
                because the listing was sold.
        """
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock
        self._auto_reject_message = auto_reject_message

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_sell_post(self, sell_post_id: str) -> SellPost:
        """Return the listing or raise ``NotFoundError``."""
        post = self._store.get_sell_post(sell_post_id)
        if post is None:
            raise NotFoundError("sell_post", sell_post_id)
        return post

    def list_seller_sell_posts(
        self, seller_id: str, status: SellPostStatus | str | None = None
    ) -> list[SellPost]:
        """Return the seller's own listings, newest first.

        Raises:
            ValidationError: If *status* is not a listing status.
        """
        if status is not None:
            try:
                status = SellPostStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status: {status!r}") from None
        return self._store.list_seller_sell_posts(seller_id, status)

    # ------------------------------------------------------------------
    # Creation and deletion
    # ------------------------------------------------------------------

    def create_sell_post(
        self,
        seller_id: str,
        title: str,
        price: object,
        condition: ItemCondition | str,
        negotiable: bool = True,
        description: str | None = None,
        expires_at: datetime | None = None,
    ) -> SellPost:
        """Create a new AVAILABLE listing.

        Raises:
            ValidationError: If the title is blank, the price is not
                positive, or the condition is unknown.
        """
        listing_price = parse_price(price, "price")
        if not title or not title.strip():
            raise ValidationError("title is required")
        item_condition = _parse_condition(condition)

        now = self._clock()
        post = SellPost(
            id=uuid.uuid4().hex,
            seller_id=seller_id,
            title=title.strip(),
            description=description,
            price=listing_price,
            negotiable=negotiable,
            condition=item_condition,
            status=SellPostStatus.AVAILABLE,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        with self._store.transaction():
            self._store.insert_sell_post(post)

        logger.info("sell_post_created", sell_post_id=post.id, seller_id=seller_id)
        return post

    def update_sell_post(
        self,
        sell_post_id: str,
        seller_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        price: object = None,
        negotiable: bool | None = None,
        condition: ItemCondition | str | None = None,
    ) -> SellPost:
        """Edit a listing's details on behalf of its seller.

        Only the fields passed are changed; status is never touched here.
        Live offers keep the price they were made at.

        Raises:
            ValidationError: If nothing is passed or a value is invalid.
            ForbiddenError: If *seller_id* does not own the listing.
            ConflictError: If the listing is SOLD.
        """
        changes: dict[str, object] = {}
        if title is not None:
            if not title.strip():
                raise ValidationError("title is required")
            changes["title"] = title.strip()
        if description is not None:
            changes["description"] = description
        if price is not None:
            changes["price"] = parse_price(price, "price")
        if negotiable is not None:
            changes["negotiable"] = negotiable
        if condition is not None:
            changes["condition"] = _parse_condition(condition)
        if not changes:
            raise ValidationError("No changes provided")

        with self._store.transaction():
            post = self._require_owned(sell_post_id, seller_id)
            if post.status == SellPostStatus.SOLD:
                raise ConflictError("Sold listings cannot be edited")
            changes["updated_at"] = self._clock()
            updated = post.model_copy(update=changes)
            self._store.update_sell_post(updated)

        logger.info(
            "sell_post_updated",
            sell_post_id=sell_post_id,
            fields=sorted(k for k in changes if k != "updated_at"),
        )
        return updated

    def delete_sell_post(self, sell_post_id: str) -> None:
        """Permanently delete a listing together with its offers and their history.

        Administrative operation; sellers hide listings instead.

        Raises:
            NotFoundError: If the listing does not exist.
        """
        with self._store.transaction():
            if not self._store.delete_sell_post(sell_post_id):
                raise NotFoundError("sell_post", sell_post_id)
        logger.info("sell_post_deleted", sell_post_id=sell_post_id)

    # ------------------------------------------------------------------
    # Seller-driven transitions
    # ------------------------------------------------------------------

    def mark_sold(self, sell_post_id: str, seller_id: str) -> SellPost:
        """Mark a listing sold outside the offer flow (AVAILABLE or PENDING only).

        Any live offers on the listing are rejected and their buyers notified.
        """
        with self._store.transaction():
            post = self._require_owned(sell_post_id, seller_id)
            sold, rejected = self.close_listing(post, actor_id=seller_id)

        LISTINGS_SOLD.inc()
        logger.info(
            "sell_post_marked_sold",
            sell_post_id=sell_post_id,
            auto_rejected=len(rejected),
        )
        self.notify_rejected(rejected, sold)
        return sold

    def mark_pending(self, sell_post_id: str, seller_id: str) -> SellPost:
        """Put an AVAILABLE listing on hold while a sale completes."""
        return self._seller_transition(
            sell_post_id, seller_id, SellPostStatus.PENDING, {SellPostStatus.AVAILABLE}
        )

    def mark_available(self, sell_post_id: str, seller_id: str) -> SellPost:
        """Return a PENDING listing to AVAILABLE (the buyer backed out)."""
        return self._seller_transition(
            sell_post_id, seller_id, SellPostStatus.AVAILABLE, {SellPostStatus.PENDING}
        )

    def hide(self, sell_post_id: str, seller_id: str) -> SellPost:
        """Hide a listing from any non-SOLD status."""
        return self._seller_transition(sell_post_id, seller_id, SellPostStatus.HIDDEN)

    def unhide(self, sell_post_id: str, seller_id: str) -> SellPost:
        """Restore a HIDDEN listing to the status it was hidden from.

        A PENDING hold survives hiding, and an EXPIRED listing stays EXPIRED.
        Rows hidden before the restore status was recorded come back AVAILABLE.
        """
        with self._store.transaction():
            post = self._require_owned(sell_post_id, seller_id)
            restored = post.hidden_from or SellPostStatus.AVAILABLE
            if post.status != SellPostStatus.HIDDEN:
                raise InvalidTransitionError(post.status, restored)
            updated = self._apply(post, restored)
        self._log_status_change(post, restored)
        return updated

    # ------------------------------------------------------------------
    # System-driven transitions
    # ------------------------------------------------------------------

    def expire(self, sell_post_id: str) -> SellPost:
        """Expire an AVAILABLE or PENDING listing (scheduled, no owner check)."""
        with self._store.transaction():
            post = self.get_sell_post(sell_post_id)
            _require_status(post, SellPostStatus.EXPIRED, _EXPIRABLE)
            expired = self._apply(post, SellPostStatus.EXPIRED)
        logger.info("sell_post_expired", sell_post_id=sell_post_id)
        return expired

    def expire_due(self, now: datetime | None = None) -> list[SellPost]:
        """Expire every AVAILABLE or PENDING listing whose ``expires_at`` has passed.

        Args:
            now: Cut-off time; defaults to the controller's clock.

        Returns:
            The listings that were expired.
        """
        cutoff = now or self._clock()
        with self._store.transaction():
            expired = [
                self._apply(post, SellPostStatus.EXPIRED)
                for post in self._store.list_due_for_expiry(cutoff)
            ]
        logger.info("sell_posts_expired", count=len(expired))
        return expired

    # ------------------------------------------------------------------
    # Shared with the offer engine
    # ------------------------------------------------------------------

    def close_listing(
        self,
        post: SellPost,
        actor_id: str | None,
        accepted_offer_id: str | None = None,
    ) -> tuple[SellPost, list[Offer]]:
        """Flip *post* to SOLD and reject every other live offer on it.

        Must be called inside a store transaction.

        Args:
            post: The listing as read inside the current transaction.
            actor_id: User closing the listing (recorded in offer history).
            accepted_offer_id: Offer being accepted, left untouched.

        Returns:
            The SOLD listing and the offers that were auto-rejected.

        Raises:
            InvalidTransitionError: If the listing cannot move to SOLD.
        """
        sold = self._apply(post, SellPostStatus.SOLD)
        now = sold.sold_at or self._clock()

        rejected: list[Offer] = []
        for sibling in self._store.list_active_offers(post.id, exclude_offer_id=accepted_offer_id):
            ensure_offer_transition(sibling.status, OfferStatus.REJECTED)
            closed = sibling.model_copy(
                update={
                    "status": OfferStatus.REJECTED,
                    "response_message": self._auto_reject_message,
                    "responded_at": now,
                    "updated_at": now,
                }
            )
            self._store.update_offer(closed)
            self._store.append_history(
                OfferHistoryEntry(
                    offer_id=closed.id,
                    from_status=sibling.status,
                    to_status=OfferStatus.REJECTED,
                    actor_id=None,
                    price=closed.offered_price,
                    note=self._auto_reject_message,
                    created_at=now,
                )
            )
            rejected.append(closed)
        return sold, rejected

    def notify_rejected(self, rejected: list[Offer], post: SellPost) -> None:
        """Tell each auto-rejected buyer their offer closed.  Call after commit."""
        for offer in rejected:
            OFFERS_FINALIZED.labels(status=OfferStatus.REJECTED.value).inc()
            if self._dispatcher is None:
                continue
            try:
                self._dispatcher.publish_event(offer_updated_event(offer, post, offer.buyer_id))
            except Exception:
                logger.exception("notification_failed", offer_id=offer.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_owned(self, sell_post_id: str, seller_id: str) -> SellPost:
        post = self.get_sell_post(sell_post_id)
        if post.seller_id != seller_id:
            raise ForbiddenError("You do not have permission to change this listing")
        return post

    def _seller_transition(
        self,
        sell_post_id: str,
        seller_id: str,
        requested: SellPostStatus,
        allowed_from: Collection[SellPostStatus] | None = None,
    ) -> SellPost:
        with self._store.transaction():
            post = self._require_owned(sell_post_id, seller_id)
            if allowed_from is not None:
                _require_status(post, requested, allowed_from)
            updated = self._apply(post, requested)
        self._log_status_change(post, requested)
        return updated

    def _log_status_change(self, post: SellPost, requested: SellPostStatus) -> None:
        logger.info(
            "sell_post_status_changed",
            sell_post_id=post.id,
            from_status=post.status.value,
            to_status=requested.value,
        )

    def _apply(self, post: SellPost, requested: SellPostStatus) -> SellPost:
        ensure_transition(post.status, requested)
        now = self._clock()
        updated = post.model_copy(
            update={
                "status": requested,
                "sold_at": now if requested == SellPostStatus.SOLD else None,
                "hidden_from": post.status if requested == SellPostStatus.HIDDEN else None,
                "updated_at": now,
            }
        )
        self._store.update_sell_post(updated)
        return updated


def _require_status(
    post: SellPost, requested: SellPostStatus, allowed_from: Collection[SellPostStatus]
) -> None:
    # The table alone also admits the edges out of HIDDEN used by unhide.
    if post.status not in allowed_from:
        raise InvalidTransitionError(post.status, requested)
