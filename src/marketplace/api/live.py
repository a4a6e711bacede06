"""WebSocket endpoint for live offer notifications.

The channel is registered before the handshake completes so that events
published right after a client connects are not lost.  A writer task drains
the channel's queue; the receive loop only watches for disconnects.
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from marketplace.config import Settings
from marketplace.notifications.registry import ConnectionRegistry, QueueChannel
from marketplace.observability.metrics import LIVE_CONNECTIONS

logger = structlog.get_logger()

router = APIRouter()


async def _pump(websocket: WebSocket, channel: QueueChannel) -> None:
    while True:
        event = await channel.queue.get()
        await websocket.send_json(event.model_dump(mode="json"))


@router.websocket("/ws")
async def live_channel(websocket: WebSocket, user_id: str | None = None) -> None:
    if not user_id:
        await websocket.close(code=1008)
        return

    registry: ConnectionRegistry = websocket.app.state.services["registry"]
    settings: Settings = websocket.app.state.settings

    channel = QueueChannel(
        asyncio.get_running_loop(), maxsize=settings.live_channel_queue_size
    )
    registry.register(user_id, channel)
    LIVE_CONNECTIONS.inc()
    writer: asyncio.Task[None] | None = None
    try:
        await websocket.accept()
        logger.info("live_channel_opened", user_id=user_id)
        writer = asyncio.create_task(_pump(websocket, channel))
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("live_channel_closed", user_id=user_id)
    finally:
        channel.close()
        registry.unregister(user_id, channel)
        LIVE_CONNECTIONS.dec()
        if writer is not None:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await writer
