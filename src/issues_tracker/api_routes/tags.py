"""Tag route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse, Response
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from issues_tracker.api_routes.common import _not_found, _parse_json_body, _validation_error, _value_error
from issues_tracker.core import TrackerDB
from issues_tracker.validation import sanitize_name, validate_color

_MAX_TAG_NAME_LENGTH = 64


def create_router() -> APIRouter:
    """Build the APIRouter for ``/tags`` endpoints."""
    from fastapi import APIRouter, Depends

    from issues_tracker.api import _get_db

    router = APIRouter()

    def _read_color(body: dict) -> tuple[str | None, JSONResponse | None]:
        if body.get("color") is None:
            return None, None
        color, err = validate_color(body["color"])
        if err:
            return None, _validation_error(err, {"field": "color"})
        return color, None

    @router.get("/tags")
    async def api_list_tags(db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([t.to_dict() for t in db.list_tags()])

    @router.get("/tags/{tag_id}")
    async def api_get_tag(tag_id: int, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        try:
            tag = db.get_tag(tag_id)
        except KeyError as e:
            return _not_found(e, "TAG_NOT_FOUND")
        return JSONResponse(tag.to_dict())

    @router.post("/tags")
    async def api_create_tag(request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name, err = sanitize_name(body.get("name"), max_length=_MAX_TAG_NAME_LENGTH)
        if err:
            return _validation_error(err, {"field": "name"})
        color, color_err = _read_color(body)
        if color_err:
            return color_err
        try:
            tag = db.create_tag(name, color)
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(tag.to_dict(), status_code=201)

    @router.put("/tags/{tag_id}")
    async def api_update_tag(tag_id: int, request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        name: str | None = None
        if "name" in body:
            name, err = sanitize_name(body["name"], max_length=_MAX_TAG_NAME_LENGTH)
            if err:
                return _validation_error(err, {"field": "name"})
        color, color_err = _read_color(body)
        if color_err:
            return color_err
        try:
            tag = db.update_tag(tag_id, name=name, color=color)
        except KeyError as e:
            return _not_found(e, "TAG_NOT_FOUND")
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(tag.to_dict())

    @router.delete("/tags/{tag_id}", status_code=204)
    async def api_delete_tag(tag_id: int, db: TrackerDB = Depends(_get_db)) -> Response:
        try:
            db.delete_tag(tag_id)
        except KeyError as e:
            return _not_found(e, "TAG_NOT_FOUND")
        return Response(status_code=204)

    return router
