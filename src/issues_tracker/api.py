"""REST API for the issue tracker.

FastAPI application serving users, tags and issues under ``/api``, the
authentication endpoints under ``/api/auth``, the schema dump used by the MCP
adapter, and root-level health probes.

A module-level ``_db`` is set at startup (``main()``) or by test fixtures and
injected into handlers via ``Depends(_get_db)``.

Usage:
    issues-tracker serve                  # 0.0.0.0:3000 (HOST / PORT)
    issues-tracker serve --port 8080      # Custom port
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from pathlib import Path

    from fastapi import FastAPI

    from issues_tracker.config import Settings
    from issues_tracker.core import AuthUser

from issues_tracker.api_routes.common import _error_response
from issues_tracker.auth import AuthService
from issues_tracker.core import TrackerDB

logger = logging.getLogger(__name__)

_CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
_CORS_HEADERS = ["Content-Type", "Authorization", "X-Requested-With", "X-API-Key"]
_HTTP_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    503: "SERVICE_UNAVAILABLE",
}

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: TrackerDB | None = None


def _get_db() -> TrackerDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


async def _get_auth(request: Request) -> AuthService:
    settings: Settings = request.app.state.settings
    return AuthService(_get_db(), session_ttl=timedelta(days=settings.session_ttl_days))


async def _require_auth(request: Request) -> AuthUser:
    """Dependency guarding the CRUD routers. Stores the caller on ``request.state.user``.

    Async so the credential lookup shares the event loop thread with the handlers.
    """
    from fastapi import HTTPException

    from issues_tracker.api_routes.auth import authenticate_request

    user = authenticate_request(request, await _get_auth(request))
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    request.state.user = user
    return user


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, *, skip_auth: bool = False) -> FastAPI:
    """Create the FastAPI application.

    When *skip_auth* is ``True`` the ``/api/users``, ``/api/tags`` and
    ``/api/issues`` routes accept unauthenticated requests (tests, local
    tooling). The auth endpoints themselves are always mounted.
    """
    from fastapi import Depends, FastAPI
    from fastapi.encoders import jsonable_encoder
    from fastapi.exceptions import RequestValidationError
    from fastapi.middleware.cors import CORSMiddleware
    from starlette.exceptions import HTTPException as StarletteHTTPException
    from starlette.middleware.base import BaseHTTPMiddleware

    from issues_tracker import __version__
    from issues_tracker.api_routes import auth as auth_routes
    from issues_tracker.api_routes import health as health_routes
    from issues_tracker.api_routes import issues as issues_routes
    from issues_tracker.api_routes import schema as schema_routes
    from issues_tracker.api_routes import tags as tags_routes
    from issues_tracker.api_routes import users as users_routes
    from issues_tracker.config import load_settings

    settings = settings or load_settings()

    app = FastAPI(title="Issues Tracker API", version=__version__, docs_url=None, redoc_url=None)
    app.state.settings = settings
    app.state.started_at = time.monotonic()

    # --- Routers ---
    crud_dependencies = [] if skip_auth else [Depends(_require_auth)]
    app.include_router(health_routes.create_router())
    app.include_router(schema_routes.create_router(), prefix="/api")
    app.include_router(auth_routes.create_router(), prefix="/api")
    for module in (users_routes, tags_routes, issues_routes):
        app.include_router(module.create_router(), prefix="/api", dependencies=crud_dependencies)

    @app.get("/")
    async def index() -> JSONResponse:
        return JSONResponse({"hello": "world"})

    # --- Error handlers ---

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = _HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
        return _error_response(str(exc.detail), code, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response("Invalid request", "VALIDATION_ERROR", 400, {"errors": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error_response("Internal server error", "INTERNAL_ERROR", 500)

    # --- Middleware (last added runs first) ---

    class RequestLogMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Any) -> Any:
            start = time.perf_counter()
            response = await call_next(request)
            if not settings.is_test:
                logger.info(
                    "%s %s %s",
                    request.method,
                    request.url.path,
                    response.status_code,
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "status": response.status_code,
                        "duration_ms": round((time.perf_counter() - start) * 1000, 1),
                    },
                )
            return response

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=_CORS_METHODS,
        allow_headers=_CORS_HEADERS,
    )

    return app


def main(host: str | None = None, port: int | None = None, *, migrate: bool = True, db_path: Path | None = None) -> None:
    """Open the database, optionally migrate it, and serve the API with uvicorn.

    *db_path* overrides ``DATABASE_PATH``.
    """
    import uvicorn

    from issues_tracker.config import load_settings
    from issues_tracker.logging import setup_logging

    global _db

    settings = load_settings()
    setup_logging(settings.log_dir)

    database_path = db_path or settings.database_path
    _db = TrackerDB(database_path, check_same_thread=False)
    if migrate:
        applied = _db.initialize()
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))
    logger.info("Using database %s", database_path)

    app = create_app(settings)
    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Issues tracker API listening on http://%s:%d", bind_host, bind_port)
    try:
        uvicorn.run(app, host=bind_host, port=bind_port, log_level="warning")
    finally:
        _db.close()
        _db = None
