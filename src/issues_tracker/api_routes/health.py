"""Health, readiness and liveness endpoints. None require authentication."""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from issues_tracker.types.api import HealthResponse

logger = logging.getLogger(__name__)


def _database_ok() -> bool:
    from issues_tracker import api

    if api._db is None:
        return False
    try:
        return api._db.ping()
    except sqlite3.Error:
        logger.error("Database health check failed", exc_info=True)
        return False


def create_router() -> APIRouter:
    """Build the APIRouter for root-level health endpoints."""
    from fastapi import APIRouter

    from issues_tracker import __version__

    router = APIRouter()

    @router.get("/health")
    async def health(request: Request) -> JSONResponse:
        ok = _database_ok()
        payload: HealthResponse = {
            "status": "healthy" if ok else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "version": __version__,
            "checks": {"database": "ok" if ok else "error"},
        }
        return JSONResponse(payload, status_code=200 if ok else 503)

    @router.get("/health/ready")
    async def health_ready() -> JSONResponse:
        if _database_ok():
            return JSONResponse({"status": "ready"})
        return JSONResponse({"status": "not_ready"}, status_code=503)

    @router.get("/health/live")
    async def health_live() -> JSONResponse:
        return JSONResponse({"status": "alive"})

    @router.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "timestamp": datetime.now(UTC).isoformat()})

    return router
