"""Sentry error reporting for the marketplace offer service.

Only unexpected failures are reported.  Domain errors (``MarketplaceError``:
a stale accept, a forbidden action, a bad price) are ordinary 4xx outcomes
and are filtered out before sending.  ERROR-level structlog events, such as
exhausted database lock retries or a failed notification fan-out, reach
Sentry through ``get_sentry_processor``.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

from marketplace.domain.errors import MarketplaceError


def drop_domain_errors(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """``before_send`` hook discarding events raised by ``MarketplaceError``."""
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], MarketplaceError):
        return None
    return event


def init_sentry(
    dsn: str,
    traces_sample_rate: float = 0.1,
    environment: str = "development",
) -> bool:
    """Initialize the Sentry SDK.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        traces_sample_rate: Fraction of requests traced.
        environment: Environment tag attached to every event.

    Returns:
        True if the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=drop_domain_errors,
        # structlog-sentry already reports ERROR events.
        integrations=[LoggingIntegration(event_level=None, level=None)],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor forwarding ERROR events to Sentry."""
    return SentryProcessor(event_level=logging.ERROR)
