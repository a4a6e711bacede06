"""Registry of live per-user channels.

A user may hold several connections at once (multiple tabs or devices); every
one of them receives each event addressed to that user.
"""

from __future__ import annotations

import asyncio
import threading
from collections import defaultdict
from typing import Protocol

from marketplace.domain.models import NotificationEvent


class Channel(Protocol):
    """A live connection that accepts events without blocking."""

    def send(self, event: NotificationEvent) -> None:
        """Hand *event* to the connection; may raise if the connection is gone."""
        ...


class QueueChannel:
    """Channel backed by an asyncio queue drained by a WebSocket writer task.

    ``send`` may be called from any thread: the put is scheduled on the
    owning event loop.  Once closed, further sends raise ``ConnectionError``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 100) -> None:
        self._loop = loop
        self.queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def send(self, event: NotificationEvent) -> None:
        if self._closed or self._loop.is_closed():
            raise ConnectionError("channel is closed")
        self._loop.call_soon_threadsafe(self._put, event)

    def _put(self, event: NotificationEvent) -> None:
        # Slow consumers lose the newest events; REST refetch reconciles.
        if not self.queue.full():
            self.queue.put_nowait(event)


class ConnectionRegistry:
    """Thread-safe mapping of user id to that user's live channels."""

    def __init__(self) -> None:
        self._channels: dict[str, set[Channel]] = defaultdict(set)
        self._lock = threading.Lock()

    def register(self, user_id: str, channel: Channel) -> None:
        """Attach *channel* to *user_id*."""
        with self._lock:
            self._channels[user_id].add(channel)

    def unregister(self, user_id: str, channel: Channel) -> None:
        """Detach *channel* from *user_id*; unknown channels are ignored."""
        with self._lock:
            channels = self._channels.get(user_id)
            if channels is None:
                return
            channels.discard(channel)
            if not channels:
                del self._channels[user_id]

    def channels_for(self, user_id: str) -> list[Channel]:
        """Return a snapshot of *user_id*'s channels."""
        with self._lock:
            return list(self._channels.get(user_id, ()))

    def is_connected(self, user_id: str) -> bool:
        """Return True if *user_id* has at least one live channel."""
        with self._lock:
            return bool(self._channels.get(user_id))

    def connected_users(self) -> int:
        """Return the number of users with at least one live channel."""
        with self._lock:
            return len(self._channels)
