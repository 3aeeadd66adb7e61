"""MCP tools for users (the people issues are assigned to)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from issues_tracker.mcp_tools.common import ToolHandler, _call, _error, _pick, _validate_id

if TYPE_CHECKING:
    from issues_tracker.api_client import ApiClient

_ID_ONLY = {
    "type": "object",
    "properties": {"id": {"type": "integer", "description": "User ID"}},
    "required": ["id"],
}


def register() -> tuple[list[Tool], dict[str, ToolHandler]]:
    """Return (tool_definitions, handler_map) for user tools."""
    tools = [
        Tool(
            name="list_users",
            description="List all users",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(name="get_user", description="Get one user", inputSchema=_ID_ONLY),
        Tool(
            name="create_user",
            description="Create a user. Emails are unique.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "email": {"type": "string"},
                },
                "required": ["name", "email"],
            },
        ),
        Tool(
            name="update_user",
            description="Change a user's name and/or email",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "integer", "description": "User ID"},
                    "name": {"type": "string"},
                    "email": {"type": "string"},
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="delete_user",
            description="Delete a user. Their issues become unassigned.",
            inputSchema=_ID_ONLY,
        ),
    ]

    handlers: dict[str, ToolHandler] = {
        "list_users": _handle_list_users,
        "get_user": _handle_get_user,
        "create_user": _handle_create_user,
        "update_user": _handle_update_user,
        "delete_user": _handle_delete_user,
    }
    return tools, handlers


async def _handle_list_users(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    return await _call(client.list_users())


async def _handle_get_user(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    user_id, err = _validate_id(arguments, "id")
    if err:
        return err
    return await _call(client.get_user(user_id))


async def _handle_create_user(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    for field in ("name", "email"):
        if not isinstance(arguments.get(field), str):
            return _error(f"{field} is required")
    return await _call(client.create_user(_pick(arguments, "name", "email")))


async def _handle_update_user(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    user_id, err = _validate_id(arguments, "id")
    if err:
        return err
    body = _pick(arguments, "name", "email")
    if not body:
        return _error("Nothing to update: pass name and/or email")
    return await _call(client.update_user(user_id, body))


async def _handle_delete_user(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    user_id, err = _validate_id(arguments, "id")
    if err:
        return err
    return await _call(client.delete_user(user_id))
