"""Prometheus metrics instrumentation for the marketplace offer service.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the business
  counters below.
- ``OFFERS_SUBMITTED``: Counter of offers created.
- ``OFFERS_FINALIZED``: Counter of offers reaching a terminal status, by status.
- ``LISTINGS_SOLD``: Counter of listings reaching SOLD.
- ``NOTIFICATIONS_DELIVERED`` / ``NOTIFICATIONS_DROPPED``: live-channel fan-out outcomes.
- ``LIVE_CONNECTIONS``: Gauge of open live channels.

Business metrics are updated at state transitions (not by polling the database).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

OFFERS_SUBMITTED: Counter = Counter(
    "marketplace_offers_submitted_total",
    "Total number of offers submitted by buyers",
)

OFFERS_FINALIZED: Counter = Counter(
    "marketplace_offers_finalized_total",
    "Total number of offers reaching a terminal status",
    ["status"],
)

LISTINGS_SOLD: Counter = Counter(
    "marketplace_listings_sold_total",
    "Total number of listings reaching SOLD",
)

NOTIFICATIONS_DELIVERED: Counter = Counter(
    "marketplace_notifications_delivered_total",
    "Live-channel events handed to at least one connection",
    ["kind"],
)

NOTIFICATIONS_DROPPED: Counter = Counter(
    "marketplace_notifications_dropped_total",
    "Live-channel events dropped (recipient offline or channel failure)",
    ["kind"],
)

LIVE_CONNECTIONS: Gauge = Gauge(
    "marketplace_live_connections",
    "Number of currently open live channels",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
