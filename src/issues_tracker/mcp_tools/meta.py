"""MCP tools for backend health and the database schema."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from issues_tracker.api_client import ApiError
from issues_tracker.mcp_tools.common import ToolHandler, _call, _text

if TYPE_CHECKING:
    from issues_tracker.api_client import ApiClient


def register() -> tuple[list[Tool], dict[str, ToolHandler]]:
    """Return (tool_definitions, handler_map) for meta tools."""
    tools = [
        Tool(
            name="health_check",
            description="Check that the issues-tracker REST API is reachable",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_schema",
            description="Return the SQLite schema (CREATE TABLE statements) of the issues database",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]

    handlers: dict[str, ToolHandler] = {
        "health_check": _handle_health_check,
        "get_schema": _handle_get_schema,
    }
    return tools, handlers


async def _handle_health_check(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    return await _call(client.health())


async def _handle_get_schema(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    try:
        schema = await client.get_schema()
    except ApiError as e:
        return _text(e.to_dict())
    return _text(schema)
