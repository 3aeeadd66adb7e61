"""MCP tools for tags."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from issues_tracker.mcp_tools.common import ToolHandler, _call, _error, _pick, _validate_id

if TYPE_CHECKING:
    from issues_tracker.api_client import ApiClient


def register() -> tuple[list[Tool], dict[str, ToolHandler]]:
    """Return (tool_definitions, handler_map) for tag tools."""
    tools = [
        Tool(
            name="list_tags",
            description="List all tags, alphabetically",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="create_tag",
            description="Create a tag. Names are unique.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Tag name"},
                    "color": {"type": "string", "description": "Hex color, e.g. #3b82f6 (default #6b7280)"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="update_tag",
            description="Rename or recolor a tag",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "description": "Tag ID"},
                    "name": {"type": "string"},
                    "color": {"type": "string"},
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="delete_tag",
            description="Delete a tag and detach it from every issue",
            inputSchema={
                "type": "object",
                "properties": {"id": {"type": "integer", "description": "Tag ID"}},
                "required": ["id"],
            },
        ),
    ]

    handlers: dict[str, ToolHandler] = {
        "list_tags": _handle_list_tags,
        "create_tag": _handle_create_tag,
        "update_tag": _handle_update_tag,
        "delete_tag": _handle_delete_tag,
    }
    return tools, handlers


async def _handle_list_tags(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    return await _call(client.list_tags())


async def _handle_create_tag(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    if not isinstance(arguments.get("name"), str):
        return _error("name is required")
    return await _call(client.create_tag(_pick(arguments, "name", "color")))


async def _handle_update_tag(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    tag_id, err = _validate_id(arguments, "id")
    if err:
        return err
    body = _pick(arguments, "name", "color")
    if not body:
        return _error("Nothing to update: pass name and/or color")
    return await _call(client.update_tag(tag_id, body))


async def _handle_delete_tag(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    tag_id, err = _validate_id(arguments, "id")
    if err:
        return err
    return await _call(client.delete_tag(tag_id))
