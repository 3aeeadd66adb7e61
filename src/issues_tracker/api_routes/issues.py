"""Issue and issue-tag route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse, Response
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from issues_tracker.api_routes.common import (
    _error_response,
    _id_list,
    _not_found,
    _optional_id,
    _parse_json_body,
    _parse_pagination,
    _safe_int,
    _validation_error,
    _value_error,
)
from issues_tracker.core import TrackerDB
from issues_tracker.validation import (
    sanitize_description,
    sanitize_title,
    validate_id,
    validate_priority,
    validate_status,
)


def _issue_fields(body: dict[str, Any], *, partial: bool) -> dict[str, Any] | JSONResponse:
    """Validate the writable issue fields present in *body*.

    With ``partial=False`` (create) ``title`` is required; with ``partial=True``
    (update) only keys present in the body are returned, so an explicit
    ``"assigned_user_id": null`` unassigns.
    """
    fields: dict[str, Any] = {}
    if not partial or "title" in body:
        title, err = sanitize_title(body.get("title"))
        if err:
            return _validation_error(err, {"field": "title"})
        fields["title"] = title
    if "description" in body:
        description, err = sanitize_description(body["description"])
        if err:
            return _validation_error(err, {"field": "description"})
        fields["description"] = description
    if body.get("status") is not None:
        status, err = validate_status(body["status"])
        if err:
            return _validation_error(err, {"field": "status"})
        fields["status"] = status
    if body.get("priority") is not None:
        priority, err = validate_priority(body["priority"])
        if err:
            return _validation_error(err, {"field": "priority"})
        fields["priority"] = priority
    id_fields = ("assigned_user_id",) if partial else ("assigned_user_id", "created_by_user_id")
    for key in id_fields:
        if key in body:
            value, id_err = _optional_id(body, key)
            if id_err:
                return id_err
            fields[key] = value
    if "tag_ids" in body:
        tag_ids, tags_err = _id_list(body, "tag_ids")
        if tags_err:
            return tags_err
        fields["tag_ids"] = tag_ids
    return fields


def create_router() -> APIRouter:
    """Build the APIRouter for ``/issues`` endpoints.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    serializes DB access on the event loop thread.
    """
    from fastapi import APIRouter, Depends

    from issues_tracker.api import _get_db

    router = APIRouter()

    @router.get("/issues")
    async def api_list_issues(request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        params = request.query_params
        pagination = _parse_pagination(params)
        if isinstance(pagination, JSONResponse):
            return pagination
        limit, offset = pagination

        filters: dict[str, Any] = {}
        if params.get("status"):
            status, err = validate_status(params["status"])
            if err:
                return _validation_error(err, {"param": "status"})
            filters["status"] = status
        if params.get("priority"):
            priority, err = validate_priority(params["priority"])
            if err:
                return _validation_error(err, {"param": "priority"})
            filters["priority"] = priority
        for name in ("assigned_user_id", "tag_id"):
            if params.get(name):
                value = _safe_int(params[name], name, min_value=1)
                if isinstance(value, JSONResponse):
                    return value
                filters[name] = value
        if params.get("search", "").strip():
            filters["search"] = params["search"]

        return JSONResponse(db.list_issues(limit=limit, offset=offset, **filters))

    @router.get("/issues/{issue_id}")
    async def api_get_issue(issue_id: int, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        try:
            issue = db.get_issue(issue_id)
        except KeyError as e:
            return _not_found(e, "ISSUE_NOT_FOUND")
        return JSONResponse(issue.to_dict())

    @router.post("/issues")
    async def api_create_issue(request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        fields = _issue_fields(body, partial=False)
        if isinstance(fields, JSONResponse):
            return fields
        title = fields.pop("title")
        try:
            issue = db.create_issue(title, **fields)
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(issue.to_dict(), status_code=201)

    @router.put("/issues/{issue_id}")
    async def api_update_issue(issue_id: int, request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        fields = _issue_fields(body, partial=True)
        if isinstance(fields, JSONResponse):
            return fields
        try:
            issue = db.update_issue(issue_id, **fields)
        except KeyError as e:
            return _not_found(e, "ISSUE_NOT_FOUND")
        except ValueError as e:
            return _value_error(e)
        return JSONResponse(issue.to_dict())

    @router.delete("/issues/{issue_id}", status_code=204)
    async def api_delete_issue(issue_id: int, db: TrackerDB = Depends(_get_db)) -> Response:
        try:
            db.delete_issue(issue_id)
        except KeyError as e:
            return _not_found(e, "ISSUE_NOT_FOUND")
        return Response(status_code=204)

    @router.post("/issues/{issue_id}/tags")
    async def api_add_issue_tag(issue_id: int, request: Request, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        tag_id, err = validate_id(body.get("tag_id"), "tag_id")
        if err:
            return _validation_error(err, {"field": "tag_id"})
        try:
            issue = db.add_issue_tag(issue_id, tag_id)
        except KeyError as e:
            return _not_found(e, "ISSUE_NOT_FOUND")
        except ValueError as e:
            return _error_response(str(e), "TAG_NOT_FOUND", 404)
        return JSONResponse(issue.to_dict())

    @router.delete("/issues/{issue_id}/tags/{tag_id}")
    async def api_remove_issue_tag(issue_id: int, tag_id: int, db: TrackerDB = Depends(_get_db)) -> JSONResponse:
        try:
            db.get_issue(issue_id)
        except KeyError as e:
            return _not_found(e, "ISSUE_NOT_FOUND")
        try:
            issue = db.remove_issue_tag(issue_id, tag_id)
        except KeyError as e:
            return _not_found(e, "TAG_NOT_FOUND")
        return JSONResponse(issue.to_dict())

    return router
