"""User route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse, Response
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from issues_tracker.api_routes.common import _not_found, _parse_json_body, _validation_error, _value_error
from issues_tracker.core import TrackerDB
from issues_tracker.validation import sanitize_email, sanitize_name


def create_router() -> APIRouter:
    """Build the APIRouter for ``/users`` endpoints.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    serializes DB access on the event loop thread, avoiding concurrent
    multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter, Depends

    from issues_tracker.api import _get_db

    router = APIRouter()

    @router.get("/users")
    async def api_list_users(db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([u.to_dict() for u in db.list_users()])

    @router.get("/users/{user_id}")
    async def api_get_user(user_id: int, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        try:
            user = db.get_user(user_id)
        except KeyError as e:
            return _not_found(e, "USER_NOT_FOUND")
        return JSONResponse(user.to_dict())

    @router.post("/users")
    async def api_create_user(request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name, err = sanitize_name(body.get("name"))
        if err:
            return _validation_error(err, {"field": "name"})
        email, err = sanitize_email(body.get("email"))
        if err:
            return _validation_error(err, {"field": "email"})
        try:
            user = db.create_user(name, email)
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(user.to_dict(), status_code=201)

    @router.put("/users/{user_id}")
    async def api_update_user(user_id: int, request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name: str | None = None
        email: str | None = None
        if "name" in body:
            name, err = sanitize_name(body["name"])
            if err:
                return _validation_error(err, {"field": "name"})
        if "email" in body:
            email, err = sanitize_email(body["email"])
            if err:
                return _validation_error(err, {"field": "email"})
        try:
            user = db.update_user(user_id, name=name, email=email)
        except KeyError as e:
            return _not_found(e, "USER_NOT_FOUND")
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(user.to_dict())

    @router.delete("/users/{user_id}", status_code=204)
    async def api_delete_user(user_id: int, db: TrackerDB = Depends(_get_db)) -> Response:
        try:
            db.delete_user(user_id)
        except KeyError as e:
            return _not_found(e, "USER_NOT_FOUND")
        return Response(status_code=204)

    return router
