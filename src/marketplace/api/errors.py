"""Exception handlers translating domain errors into enveloped JSON responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.api.schemas import envelope
from marketplace.domain.errors import MarketplaceError

logger = structlog.get_logger()


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(None, exc.message, success=False),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {location}: {first.get('msg', 'invalid value')}" if location else (
        "Invalid request"
    )
    return JSONResponse(status_code=400, content=envelope(None, message, success=False))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(None, str(exc.detail), success=False),
        headers=getattr(exc, "headers", None),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the envelope-producing exception handlers on *app*."""
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
