"""Pure helpers shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent

from issues_tracker.api_client import ApiError

if TYPE_CHECKING:
    from issues_tracker.api_client import ApiClient
    from issues_tracker.types.api import ToolError

logger = logging.getLogger(__name__)

ToolHandler = Callable[["ApiClient", dict[str, Any]], Awaitable[list[TextContent]]]

# Hard cap on list_issues page size to keep MCP responses within token limits.
_MAX_LIST_RESULTS = 100


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(message: str, code: str = "validation_error") -> list[TextContent]:
    data: ToolError = {"error": message, "code": code}
    return _text(data)


async def _call(request: Awaitable[Any]) -> list[TextContent]:
    """Await a client call and render its result, or the backend error, as text."""
    try:
        result = await request
    except ApiError as e:
        logger.info("Backend error: %s", e)
        return _text(e.to_dict())
    if result is None:
        return _text({"success": True})
    return _text(result)


def _validate_id(arguments: dict[str, Any], name: str) -> tuple[int, list[TextContent] | None]:
    """Require a positive integer ID argument."""
    value = arguments.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0, _error(f"{name} must be an integer")
    if value < 1:
        return 0, _error(f"{name} must be >= 1")
    return value, None


def _validate_int_range(
    value: Any,
    name: str,
    min_val: int | None = None,
    max_val: int | None = None,
) -> list[TextContent] | None:
    """Return a validation error if *value* is not ``None`` and outside range."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return _error(f"{name} must be an integer")
    if min_val is not None and value < min_val:
        return _error(f"{name} must be >= {min_val}")
    if max_val is not None and value > max_val:
        return _error(f"{name} must be <= {max_val}")
    return None


def _pick(arguments: dict[str, Any], *keys: str) -> dict[str, Any]:
    """Copy the given keys out of *arguments* when present (``None`` kept)."""
    return {k: arguments[k] for k in keys if k in arguments}
