"""Database schema endpoint, read by the MCP ``schema://database`` resource."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import APIRouter

from issues_tracker.core import TrackerDB
from issues_tracker.types.api import SchemaResponse


def create_router() -> APIRouter:
    """Build the APIRouter for ``/schema``. Mounted without the auth dependency."""
    from fastapi import APIRouter, Depends

    from issues_tracker.api import _get_db

    router = APIRouter()

    @router.get("/schema")
    async def api_schema(db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        payload: SchemaResponse = {"schema": db.get_schema_sql()}
        return JSONResponse(payload)

    return router
