"""Shared helpers for REST route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi.responses import JSONResponse
    from starlette.requests import Request

    from issues_tracker.types.api import ErrorEnvelope

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    envelope: ErrorEnvelope = {"error": {"message": message, "code": code, "details": details or {}}}
    return JSONResponse(envelope, status_code=status_code)


def _not_found(exc: KeyError, code: str) -> JSONResponse:
    # KeyError wraps its message in quotes; unwrap for the envelope.
    message = exc.args[0] if exc.args else "Not found"
    return _error_response(str(message), code, 404)


def _validation_error(message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    return _error_response(message, "VALIDATION_ERROR", 400, details)


def _value_error(exc: ValueError) -> JSONResponse:
    """Map a core ``ValueError``: uniqueness clashes are 409, everything else 400."""
    message = str(exc)
    if "already exists" in message:
        return _error_response(message, "CONFLICT", 409)
    return _validation_error(message)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _validation_error("Invalid JSON body")
    if not isinstance(body, dict):
        return _validation_error("Request body must be a JSON object")
    return body


def _safe_int(value: str, name: str, *, min_value: int | None = None, max_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure."""
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _validation_error(f'Invalid value for {name}: "{value}". Must be an integer.', {"param": name})
    if min_value is not None and result < min_value:
        return _validation_error(f"Invalid value for {name}: {result}. Must be >= {min_value}.", {"param": name})
    if max_value is not None and result > max_value:
        return _validation_error(f"Invalid value for {name}: {result}. Must be <= {max_value}.", {"param": name})
    return result


def _parse_pagination(params: Mapping[str, str], default_limit: int = DEFAULT_PAGE_SIZE) -> tuple[int, int] | JSONResponse:
    """Extract ``limit`` and ``offset`` from query params with validation."""
    limit = _safe_int(params.get("limit", str(default_limit)), "limit", min_value=1, max_value=MAX_PAGE_SIZE)
    if not isinstance(limit, int):
        return limit
    offset = _safe_int(params.get("offset", "0"), "offset", min_value=0)
    if not isinstance(offset, int):
        return offset
    return limit, offset


def _optional_id(body: Mapping[str, Any], key: str) -> tuple[int | None, JSONResponse | None]:
    """Read a nullable row-ID field from a JSON body."""
    from issues_tracker.validation import validate_id

    value = body.get(key)
    if value is None:
        return None, None
    clean, err = validate_id(value, key)
    if err:
        return None, _validation_error(err, {"field": key})
    return clean, None


def _id_list(body: Mapping[str, Any], key: str) -> tuple[list[int] | None, JSONResponse | None]:
    """Read an optional list of row IDs from a JSON body."""
    from issues_tracker.validation import validate_id

    value = body.get(key)
    if value is None:
        return None, None
    if not isinstance(value, list):
        return None, _validation_error(f"{key} must be a list of integers", {"field": key})
    ids: list[int] = []
    for item in value:
        clean, err = validate_id(item, key)
        if err:
            return None, _validation_error(f"{key} must be a list of positive integers", {"field": key})
        ids.append(clean)
    return ids, None
