"""REST routes for listings and offers.

Each handler only translates: read the trusted ``X-User-Id`` header, call one
engine or lifecycle operation in a worker thread (SQLite calls block), and
wrap the result in the response envelope.  Domain errors are turned into
HTTP responses by the handlers in ``marketplace.api.errors``.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request

from marketplace.api.schemas import (
    CounterResponseRequest,
    OfferCreate,
    OfferResponseRequest,
    SellPostCreate,
    SellPostUpdate,
    envelope,
)
from marketplace.domain.types import OfferStatus, SellPostStatus
from marketplace.listings.lifecycle import ListingLifecycle
from marketplace.offers.engine import OfferEngine

router = APIRouter()


class ListingTransition(StrEnum):
    """Seller-initiated listing status changes exposed over HTTP."""

    MARK_SOLD = "mark-sold"
    MARK_PENDING = "mark-pending"
    MARK_AVAILABLE = "mark-available"
    HIDE = "hide"
    UNHIDE = "unhide"


_TRANSITION_METHODS: dict[ListingTransition, str] = {
    ListingTransition.MARK_SOLD: "mark_sold",
    ListingTransition.MARK_PENDING: "mark_pending",
    ListingTransition.MARK_AVAILABLE: "mark_available",
    ListingTransition.HIDE: "hide",
    ListingTransition.UNHIDE: "unhide",
}


def acting_user(x_user_id: str | None = Header(default=None)) -> str:
    """Return the pre-authenticated user id, or fail with 401."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def _engine(request: Request) -> OfferEngine:
    return request.app.state.services["engine"]


def _lifecycle(request: Request) -> ListingLifecycle:
    return request.app.state.services["lifecycle"]


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.post("/sell-posts", status_code=201)
async def create_sell_post(
    request: Request, body: SellPostCreate, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    seller_id = acting_user(x_user_id)
    post = await asyncio.to_thread(
        _lifecycle(request).create_sell_post,
        seller_id=seller_id,
        title=body.title,
        price=body.price,
        condition=body.condition,
        negotiable=body.negotiable,
        description=body.description,
        expires_at=body.expires_at,
    )
    return envelope(post, "Sell post created successfully")


@router.get("/sell-posts")
async def list_my_sell_posts(
    request: Request,
    status: SellPostStatus | None = None,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    posts = await asyncio.to_thread(
        _lifecycle(request).list_seller_sell_posts, acting_user(x_user_id), status
    )
    return envelope(posts, "Your sell posts retrieved successfully")


@router.get("/sell-posts/{sell_post_id}")
async def get_sell_post(request: Request, sell_post_id: str) -> dict[str, Any]:
    post = await asyncio.to_thread(_lifecycle(request).get_sell_post, sell_post_id)
    return envelope(post, "Sell post retrieved successfully")


@router.patch("/sell-posts/{sell_post_id}")
async def update_sell_post(
    request: Request,
    sell_post_id: str,
    body: SellPostUpdate,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    post = await asyncio.to_thread(
        _lifecycle(request).update_sell_post,
        sell_post_id,
        acting_user(x_user_id),
        **body.model_dump(exclude_none=True),
    )
    return envelope(post, "Sell post updated successfully")


@router.get("/sell-posts/{sell_post_id}/offers")
async def list_sell_post_offers(
    request: Request, sell_post_id: str, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    offers = await asyncio.to_thread(
        _engine(request).list_offers_for_sell_post, sell_post_id, acting_user(x_user_id)
    )
    return envelope(offers, "Offers retrieved successfully")


@router.get("/sell-posts/{sell_post_id}/offers/stats")
async def sell_post_offer_stats(
    request: Request, sell_post_id: str, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    stats = await asyncio.to_thread(
        _engine(request).offer_stats, sell_post_id, acting_user(x_user_id)
    )
    return envelope(stats, "Offer stats retrieved successfully")


@router.post("/sell-posts/{sell_post_id}/offers", status_code=201)
async def submit_offer(
    request: Request,
    sell_post_id: str,
    body: OfferCreate,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    offer = await asyncio.to_thread(
        _engine(request).submit_offer,
        sell_post_id,
        acting_user(x_user_id),
        body.offered_price,
        body.message,
    )
    return envelope(offer, "Offer submitted successfully")


@router.post("/sell-posts/{sell_post_id}/{transition}")
async def change_listing_status(
    request: Request,
    sell_post_id: str,
    transition: ListingTransition,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    operation = getattr(_lifecycle(request), _TRANSITION_METHODS[transition])
    post = await asyncio.to_thread(operation, sell_post_id, acting_user(x_user_id))
    return envelope(post, f"Sell post is now {post.status.value}")


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------


@router.get("/offers/sent")
async def list_sent_offers(
    request: Request,
    status: OfferStatus | None = None,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    offers = await asyncio.to_thread(
        _engine(request).list_buyer_offers, acting_user(x_user_id), status
    )
    return envelope(offers, "Offers retrieved successfully")


@router.get("/offers/{offer_id}")
async def get_offer(
    request: Request, offer_id: str, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    offer = await asyncio.to_thread(_engine(request).get_offer, offer_id, acting_user(x_user_id))
    return envelope(offer, "Offer retrieved successfully")


@router.get("/offers/{offer_id}/history")
async def get_offer_history(
    request: Request, offer_id: str, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    history = await asyncio.to_thread(
        _engine(request).offer_history, offer_id, acting_user(x_user_id)
    )
    return envelope(history, "Offer history retrieved successfully")


@router.post("/offers/{offer_id}/respond")
async def respond_to_offer(
    request: Request,
    offer_id: str,
    body: OfferResponseRequest,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    offer = await asyncio.to_thread(
        _engine(request).respond_to_offer,
        offer_id,
        acting_user(x_user_id),
        body.action,
        body.counter_price,
        body.response_message,
    )
    return envelope(offer, f"Offer {offer.status.value} successfully")


@router.post("/offers/{offer_id}/counter-response")
async def respond_to_counter(
    request: Request,
    offer_id: str,
    body: CounterResponseRequest,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    offer = await asyncio.to_thread(
        _engine(request).respond_to_counter,
        offer_id,
        acting_user(x_user_id),
        body.action,
        body.new_price,
        body.message,
    )
    return envelope(offer, f"Offer {offer.status.value} successfully")


@router.delete("/offers/{offer_id}")
async def withdraw_offer(
    request: Request, offer_id: str, x_user_id: str | None = Header(default=None)
) -> dict[str, Any]:
    offer = await asyncio.to_thread(
        _engine(request).withdraw_offer, offer_id, acting_user(x_user_id)
    )
    return envelope(offer, "Offer withdrawn successfully")
