"""Tests for Prometheus metrics endpoint and custom business metrics."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from marketplace.domain.models import SellPost
from marketplace.observability.metrics import (
    LIVE_CONNECTIONS,
    OFFERS_FINALIZED,
    setup_metrics,
)
from marketplace.offers import OfferEngine


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Reset the gauge between tests.

    Prometheus collectors are registered globally, so counters are compared
    by relative increments rather than absolute values.
    """
    LIVE_CONNECTIONS.set(0)
    yield


@pytest.fixture()
def metrics_app() -> FastAPI:
    """Create a minimal FastAPI app with Prometheus instrumentation."""
    app = FastAPI()

    @app.get("/hello")
    async def hello():
        return {"msg": "hello"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready():
        return {"status": "ready"}

    setup_metrics(app)
    return app


@pytest.fixture()
def metrics_client(metrics_app: FastAPI) -> TestClient:
    """TestClient for the metrics-enabled app."""
    return TestClient(metrics_app)


def test_metrics_endpoint_returns_prometheus_format(metrics_client: TestClient) -> None:
    """GET /metrics returns 200 with HTTP and business metrics."""
    metrics_client.get("/hello")
    resp = metrics_client.get("/metrics")
    assert resp.status_code == 200
    body = resp.text
    assert "http_request" in body
    assert "marketplace_offers_submitted_total" in body
    assert "marketplace_live_connections" in body


def test_excluded_handlers_not_in_metrics(metrics_client: TestClient) -> None:
    """/health and /ready do NOT appear as handler labels."""
    metrics_client.get("/health")
    metrics_client.get("/ready")
    body = metrics_client.get("/metrics").text
    lines = [
        line
        for line in body.splitlines()
        if "http_request_duration" in line and 'handler="' in line
    ]
    for line in lines:
        assert '/health"' not in line, f"/health found in metrics: {line}"
        assert '/ready"' not in line, f"/ready found in metrics: {line}"


def test_live_connections_gauge(metrics_client: TestClient) -> None:
    LIVE_CONNECTIONS.inc()
    LIVE_CONNECTIONS.inc()
    assert "marketplace_live_connections 2.0" in metrics_client.get("/metrics").text


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels or None) or 0.0


class TestBusinessCounters:
    """Counters move with the offer flow, not with HTTP traffic."""

    def test_submit_counts_one_offer(self, engine: OfferEngine, listing: SellPost) -> None:
        before = _sample("marketplace_offers_submitted_total")
        engine.submit_offer(listing.id, "buyer-1", "900")
        assert _sample("marketplace_offers_submitted_total") == before + 1

    def test_accept_counts_sale_and_auto_rejections(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        sold = _sample("marketplace_listings_sold_total")
        accepted = _sample("marketplace_offers_finalized_total", status="accepted")
        rejected = _sample("marketplace_offers_finalized_total", status="rejected")
        winner = engine.submit_offer(listing.id, "buyer-1", "950")
        engine.submit_offer(listing.id, "buyer-2", "900")
        engine.submit_offer(listing.id, "buyer-3", "850")

        engine.respond_to_offer(winner.id, "seller-1", "accept")

        assert _sample("marketplace_listings_sold_total") == sold + 1
        assert _sample("marketplace_offers_finalized_total", status="accepted") == accepted + 1
        assert _sample("marketplace_offers_finalized_total", status="rejected") == rejected + 2

    def test_counter_is_not_terminal(self, engine: OfferEngine, listing: SellPost) -> None:
        offer = engine.submit_offer(listing.id, "buyer-1", "800")
        countered = _sample("marketplace_offers_finalized_total", status="countered")
        engine.respond_to_offer(offer.id, "seller-1", "counter", counter_price="950")
        assert _sample("marketplace_offers_finalized_total", status="countered") == countered

    def test_offline_recipient_counts_as_dropped(
        self, engine: OfferEngine, listing: SellPost
    ) -> None:
        before = _sample("marketplace_notifications_dropped_total", kind="new_offer")
        engine.submit_offer(listing.id, "buyer-1", "900")
        assert _sample("marketplace_notifications_dropped_total", kind="new_offer") == before + 1


def test_offers_finalized_is_labelled_by_status(metrics_client: TestClient) -> None:
    series = 'marketplace_offers_finalized_total{status="withdrawn"}'
    OFFERS_FINALIZED.labels(status="withdrawn").inc()
    initial = _extract_value(metrics_client.get("/metrics").text, series)
    OFFERS_FINALIZED.labels(status="withdrawn").inc()
    assert _extract_value(metrics_client.get("/metrics").text, series) == initial + 1.0


def _extract_value(text: str, series: str) -> float:
    """Extract the numeric value of a series from Prometheus text output."""
    for line in text.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[0] == series:
            return float(parts[1])
    raise ValueError(f"Metric {series} not found in output")
