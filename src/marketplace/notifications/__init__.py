"""Live notification fan-out: channel registry, dispatcher, and event builders."""

from marketplace.notifications.dispatcher import NotificationDispatcher
from marketplace.notifications.events import (
    new_message_event,
    new_offer_event,
    offer_updated_event,
)
from marketplace.notifications.registry import Channel, ConnectionRegistry, QueueChannel

__all__ = [
    "Channel",
    "ConnectionRegistry",
    "NotificationDispatcher",
    "QueueChannel",
    "new_message_event",
    "new_offer_event",
    "offer_updated_event",
]
