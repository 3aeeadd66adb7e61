"""MCP tools for issue CRUD and issue-tag attachment."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp.types import TextContent, Tool

from issues_tracker.db_base import VALID_PRIORITIES, VALID_STATUSES
from issues_tracker.mcp_tools.common import (
    _MAX_LIST_RESULTS,
    ToolHandler,
    _call,
    _error,
    _pick,
    _validate_id,
    _validate_int_range,
)

if TYPE_CHECKING:
    from issues_tracker.api_client import ApiClient

_ISSUE_FIELDS: dict[str, Any] = {
    "title": {"type": "string", "description": "Short summary"},
    "description": {"type": "string", "description": "Longer description (markdown)"},
    "status": {"type": "string", "enum": list(VALID_STATUSES)},
    "priority": {"type": "string", "enum": list(VALID_PRIORITIES)},
    "assigned_user_id": {"type": ["integer", "null"], "description": "User ID to assign (null to unassign)"},
    "tag_ids": {"type": "array", "items": {"type": "integer"}, "description": "Tag IDs (replaces the tag set)"},
}


def register() -> tuple[list[Tool], dict[str, ToolHandler]]:
    """Return (tool_definitions, handler_map) for issue tools."""
    tools = [
        Tool(
            name="list_issues",
            description="List issues, newest first, with optional filters. Returns a paginated envelope.",
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {"type": "string", "enum": list(VALID_STATUSES)},
                    "priority": {"type": "string", "enum": list(VALID_PRIORITIES)},
                    "assigned_user_id": {"type": "integer", "description": "Only issues assigned to this user"},
                    "tag_id": {"type": "integer", "description": "Only issues carrying this tag"},
                    "search": {"type": "string", "description": "Substring match on title or description"},
                    "limit": {"type": "integer", "default": 50, "minimum": 1, "maximum": _MAX_LIST_RESULTS},
                    "offset": {"type": "integer", "default": 0, "minimum": 0},
                },
            },
        ),
        Tool(
            name="get_issue",
            description="Get one issue with its assignee, creator and tags",
            inputSchema={
                "type": "object",
                "properties": {"id": {"type": "integer", "description": "Issue ID"}},
                "required": ["id"],
            },
        ),
        Tool(
            name="create_issue",
            description="Create an issue",
            inputSchema={
                "type": "object",
                "properties": {
                    **_ISSUE_FIELDS,
                    "created_by_user_id": {"type": "integer", "description": "User ID of the reporter"},
                },
                "required": ["title"],
            },
        ),
        Tool(
            name="update_issue",
            description="Update an issue. Only the given fields change; tag_ids replaces the whole tag set.",
            inputSchema={
                "type": "object",
                "properties": {"id": {"type": "integer", "description": "Issue ID"}, **_ISSUE_FIELDS},
                "required": ["id"],
            },
        ),
        Tool(
            name="delete_issue",
            description="Delete an issue",
            inputSchema={
                "type": "object",
                "properties": {"id": {"type": "integer", "description": "Issue ID"}},
                "required": ["id"],
            },
        ),
        Tool(
            name="add_issue_tag",
            description="Attach a tag to an issue",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "integer", "description": "Issue ID"},
                    "tag_id": {"type": "integer", "description": "Tag ID"},
                },
                "required": ["issue_id", "tag_id"],
            },
        ),
        Tool(
            name="remove_issue_tag",
            description="Detach a tag from an issue",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": {"type": "integer", "description": "Issue ID"},
                    "tag_id": {"type": "integer", "description": "Tag ID"},
                },
                "required": ["issue_id", "tag_id"],
            },
        ),
    ]

    handlers: dict[str, ToolHandler] = {
        "list_issues": _handle_list_issues,
        "get_issue": _handle_get_issue,
        "create_issue": _handle_create_issue,
        "update_issue": _handle_update_issue,
        "delete_issue": _handle_delete_issue,
        "add_issue_tag": _handle_add_issue_tag,
        "remove_issue_tag": _handle_remove_issue_tag,
    }
    return tools, handlers


async def _handle_list_issues(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    limit = arguments.get("limit", 50)
    offset = arguments.get("offset", 0)
    for value, name, lo, hi in ((limit, "limit", 1, _MAX_LIST_RESULTS), (offset, "offset", 0, None)):
        err = _validate_int_range(value, name, min_val=lo, max_val=hi)
        if err:
            return err
    filters = _pick(arguments, "status", "priority", "assigned_user_id", "tag_id", "search")
    return await _call(client.list_issues(limit=limit, offset=offset, **filters))


async def _handle_get_issue(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = _validate_id(arguments, "id")
    if err:
        return err
    return await _call(client.get_issue(issue_id))


async def _handle_create_issue(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    if not isinstance(arguments.get("title"), str):
        return _error("title is required")
    body = _pick(arguments, "title", "description", "status", "priority", "assigned_user_id", "created_by_user_id", "tag_ids")
    return await _call(client.create_issue(body))


async def _handle_update_issue(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = _validate_id(arguments, "id")
    if err:
        return err
    body = _pick(arguments, "title", "description", "status", "priority", "assigned_user_id", "tag_ids")
    if not body:
        return _error("Nothing to update: pass at least one field")
    return await _call(client.update_issue(issue_id, body))


async def _handle_delete_issue(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = _validate_id(arguments, "id")
    if err:
        return err
    return await _call(client.delete_issue(issue_id))


async def _handle_add_issue_tag(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = _validate_id(arguments, "issue_id")
    if err:
        return err
    tag_id, err = _validate_id(arguments, "tag_id")
    if err:
        return err
    return await _call(client.add_issue_tag(issue_id, tag_id))


async def _handle_remove_issue_tag(client: ApiClient, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = _validate_id(arguments, "issue_id")
    if err:
        return err
    tag_id, err = _validate_id(arguments, "tag_id")
    if err:
        return err
    return await _call(client.remove_issue_tag(issue_id, tag_id))
