"""HTTP and WebSocket adapter over the offer engine and listing lifecycle."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.live import router as live_router
from marketplace.api.routes import router

__all__ = ["live_router", "register_error_handlers", "router"]
