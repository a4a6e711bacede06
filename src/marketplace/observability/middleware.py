"""Per-request log context for the marketplace API.

Every response carries ``X-Request-ID``.  A client-supplied id is echoed
when it is a short printable token; anything else is replaced with a fresh
UUID4.  The id, the service name and the acting user (``X-User-Id``) are
bound into structlog contextvars for the duration of the request.
"""

from __future__ import annotations

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SERVICE_NAME = "marketplace-offers"

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(candidate: str | None) -> str:
    if candidate and _SAFE_REQUEST_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


def request_log_context(request: Request, request_id: str) -> dict[str, str]:
    """Fields bound to every log line emitted while serving *request*."""
    context = {"request_id": request_id, "service": SERVICE_NAME}
    user_id = request.headers.get("X-User-Id")
    if user_id:
        context["user_id"] = user_id
    return context


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request context for logging and echo ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**request_log_context(request, request_id))

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
