"""Best-effort fan-out of live events to buyers and sellers.

The dispatcher is stateless apart from the connection registry it reads.
Delivery is at-most-once: an event for a user with no open channel is
dropped, and a channel that fails is logged and skipped.  The REST endpoints
stay the source of truth; clients reconcile by refetching.

Callers publish only after the triggering transaction has committed, and a
publish never raises, so a delivery problem cannot undo or retry a mutation.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from marketplace.domain.models import NotificationEvent
from marketplace.domain.types import EventKind
from marketplace.notifications.registry import ConnectionRegistry
from marketplace.observability.metrics import NOTIFICATIONS_DELIVERED, NOTIFICATIONS_DROPPED

logger = structlog.get_logger()


class NotificationDispatcher:
    """Deliver ``NotificationEvent``s over each target user's live channels."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Registry of live channels keyed by user id.
        """
        self._registry = registry

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def publish(
        self,
        target_user_id: str,
        kind: EventKind,
        payload: dict[str, Any],
        idempotency_tag: str,
    ) -> int:
        """Build and deliver an event to *target_user_id*.

        Returns:
            Number of channels the event was handed to (0 when dropped).
        """
        event = NotificationEvent(
            kind=kind,
            target_user_id=target_user_id,
            payload=payload,
            idempotency_tag=idempotency_tag,
        )
        return self.publish_event(event)

    def publish_event(self, event: NotificationEvent) -> int:
        """Deliver a pre-built event to every channel of its target user.

        Returns:
            Number of channels the event was handed to (0 when dropped).
        """
        channels = self._registry.channels_for(event.target_user_id)
        if not channels:
            NOTIFICATIONS_DROPPED.labels(kind=event.kind.value).inc()
            logger.debug(
                "notification_dropped",
                reason="not_connected",
                kind=event.kind.value,
                target_user_id=event.target_user_id,
                tag=event.idempotency_tag,
            )
            return 0

        delivered = 0
        for channel in channels:
            try:
                channel.send(event)
            except Exception:
                logger.warning(
                    "notification_channel_failed",
                    kind=event.kind.value,
                    target_user_id=event.target_user_id,
                    tag=event.idempotency_tag,
                    exc_info=True,
                )
                self._registry.unregister(event.target_user_id, channel)
                continue
            delivered += 1

        if delivered:
            NOTIFICATIONS_DELIVERED.labels(kind=event.kind.value).inc()
        else:
            NOTIFICATIONS_DROPPED.labels(kind=event.kind.value).inc()
        logger.info(
            "notification_published",
            kind=event.kind.value,
            target_user_id=event.target_user_id,
            tag=event.idempotency_tag,
            channels=delivered,
        )
        return delivered

    def publish_all(self, events: Iterable[NotificationEvent]) -> int:
        """Deliver several events; returns the total number of channel hand-offs."""
        return sum(self.publish_event(event) for event in events)
