"""Shared pytest fixtures for the marketplace offer service test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from marketplace.domain.models import NotificationEvent, SellPost
from marketplace.listings import ListingLifecycle
from marketplace.notifications import ConnectionRegistry, NotificationDispatcher
from marketplace.offers import OfferEngine
from marketplace.store import MarketplaceStore, open_database

SELLER = "seller-1"
BUYER = "buyer-1"
OTHER_BUYER = "buyer-2"


class RecordingChannel:
    """Channel double that keeps every event it is sent."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store() -> Iterator[MarketplaceStore]:
    """MarketplaceStore backed by an in-memory SQLite database."""
    marketplace_store = MarketplaceStore(open_database(":memory:"))
    yield marketplace_store
    marketplace_store.close()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(registry: ConnectionRegistry) -> NotificationDispatcher:
    return NotificationDispatcher(registry)


@pytest.fixture
def lifecycle(
    store: MarketplaceStore, dispatcher: NotificationDispatcher, clock: TickingClock
) -> ListingLifecycle:
    return ListingLifecycle(store, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def engine(
    store: MarketplaceStore,
    lifecycle: ListingLifecycle,
    dispatcher: NotificationDispatcher,
    clock: TickingClock,
) -> OfferEngine:
    return OfferEngine(store, lifecycle, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def connect(registry: ConnectionRegistry) -> Callable[[str], RecordingChannel]:
    """Return a helper that opens a recording channel for a user."""

    def _connect(user_id: str) -> RecordingChannel:
        channel = RecordingChannel()
        registry.register(user_id, channel)
        return channel

    return _connect


@pytest.fixture
def listing(lifecycle: ListingLifecycle) -> SellPost:
    """An AVAILABLE, negotiable listing at $1,000 owned by ``SELLER``."""
    return lifecycle.create_sell_post(
        seller_id=SELLER,
        title="Road bike",
        price=Decimal("1000"),
        condition="good",
    )
