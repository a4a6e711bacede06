"""Liveness and readiness probes.

``/health`` answers as long as the process runs.  ``/ready`` answers 200
only when the marketplace database responds, and reports how many users
currently hold a live channel.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


async def check_database(store: Any) -> str:
    """Return ``"ok"`` if *store* answers a trivial query, else ``"fail"``."""
    if store is None:
        return "fail"
    try:
        await asyncio.to_thread(store.ping)
    except Exception as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        return "fail"
    return "ok"


async def readiness_report(services: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Build the ``/ready`` body from the running services."""
    checks = {"database": await check_database(services.get("store"))}
    ready = all(result == "ok" for result in checks.values())

    report: dict[str, Any] = {"status": "ready" if ready else "not_ready", "checks": checks}
    registry = services.get("registry")
    if registry is not None:
        report["connected_users"] = registry.connected_users()
    return report, ready


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` on *app*."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        report, ok = await readiness_report(request.app.state.services)
        return JSONResponse(content=report, status_code=200 if ok else 503)
