"""MCP tool handler tests: argument validation and REST round-trips."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from issues_tracker.api_client import ApiClient, ApiError
from issues_tracker.mcp_server import _HANDLERS, _TOOLS
from tests.conftest import PopulatedDB
from tests.mcp._helpers import _parse

EXPECTED_TOOLS = {
    "list_issues",
    "get_issue",
    "create_issue",
    "update_issue",
    "delete_issue",
    "add_issue_tag",
    "remove_issue_tag",
    "list_tags",
    "create_tag",
    "update_tag",
    "delete_tag",
    "list_users",
    "get_user",
    "create_user",
    "update_user",
    "delete_user",
    "health_check",
    "get_schema",
}


async def call(client: ApiClient, name: str, arguments: dict[str, Any] | None = None) -> Any:
    return _parse(await _HANDLERS[name](client, arguments or {}))


class TestRegistry:
    def test_every_tool_has_a_handler(self) -> None:
        assert {t.name for t in _TOOLS} == EXPECTED_TOOLS
        assert set(_HANDLERS) == EXPECTED_TOOLS

    def test_schemas_are_objects(self) -> None:
        for tool in _TOOLS:
            assert tool.inputSchema["type"] == "object", tool.name


class TestIssueTools:
    async def test_list_issues(self, api_client: ApiClient) -> None:
        data = await call(api_client, "list_issues")
        assert data["total"] == 3
        assert data["limit"] == 50

    async def test_list_issues_filters(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        data = await call(api_client, "list_issues", {"status": "done"})
        assert [i["id"] for i in data["results"]] == [populated_db.ids["c"]]

    async def test_list_issues_limit_capped(self, api_client: ApiClient) -> None:
        data = await call(api_client, "list_issues", {"limit": 500})
        assert data["code"] == "validation_error"
        assert "100" in data["error"]

    async def test_get_issue(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        data = await call(api_client, "get_issue", {"id": populated_db.ids["a"]})
        assert data["title"] == "Login button broken"

    async def test_get_issue_requires_integer(self, api_client: ApiClient) -> None:
        data = await call(api_client, "get_issue", {"id": "1"})
        assert data == {"error": "id must be an integer", "code": "validation_error"}

    async def test_get_missing_issue_reports_backend_error(self, api_client: ApiClient) -> None:
        data = await call(api_client, "get_issue", {"id": 999})
        assert data == {"error": "Issue not found: 999", "code": "ISSUE_NOT_FOUND", "status": 404}

    async def test_create_issue(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        data = await call(
            api_client,
            "create_issue",
            {"title": "From an agent", "priority": "high", "tag_ids": [populated_db.ids["bug"]]},
        )
        assert data["id"] > 0
        assert data["priority"] == "high"
        assert data["tags"][0]["name"] == "bug"

    async def test_create_issue_requires_title(self, api_client: ApiClient) -> None:
        data = await call(api_client, "create_issue", {"description": "x"})
        assert data["error"] == "title is required"

    async def test_update_issue_unassign(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        data = await call(api_client, "update_issue", {"id": populated_db.ids["a"], "assigned_user_id": None})
        assert data["assigned_user_id"] is None

    async def test_update_issue_needs_fields(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        data = await call(api_client, "update_issue", {"id": populated_db.ids["a"]})
        assert data["code"] == "validation_error"

    async def test_delete_issue(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        assert await call(api_client, "delete_issue", {"id": populated_db.ids["c"]}) == {"success": True}
        assert (await call(api_client, "get_issue", {"id": populated_db.ids["c"]}))["status"] == 404

    async def test_add_and_remove_tag(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        added = await call(api_client, "add_issue_tag", {"issue_id": ids["c"], "tag_id": ids["frontend"]})
        assert [t["id"] for t in added["tags"]] == [ids["frontend"]]
        removed = await call(api_client, "remove_issue_tag", {"issue_id": ids["c"], "tag_id": ids["frontend"]})
        assert removed["tags"] == []

    async def test_remove_unattached_tag(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        ids = populated_db.ids
        data = await call(api_client, "remove_issue_tag", {"issue_id": ids["c"], "tag_id": ids["bug"]})
        assert data["code"] == "TAG_NOT_FOUND"


class TestTagAndUserTools:
    async def test_list_tags(self, api_client: ApiClient) -> None:
        assert [t["name"] for t in await call(api_client, "list_tags")] == ["bug", "frontend"]

    async def test_create_duplicate_tag(self, api_client: ApiClient) -> None:
        data = await call(api_client, "create_tag", {"name": "bug"})
        assert data["code"] == "CONFLICT"
        assert data["status"] == 409

    async def test_update_and_delete_tag(self, api_client: ApiClient, populated_db: PopulatedDB) -> None:
        tag_id = populated_db.ids["frontend"]
        assert (await call(api_client, "update_tag", {"id": tag_id, "color": "#123456"}))["color"] == "#123456"
        assert await call(api_client, "delete_tag", {"id": tag_id}) == {"success": True}

    async def test_user_lifecycle(self, api_client: ApiClient) -> None:
        created = await call(api_client, "create_user", {"name": "Carol", "email": "carol@example.com"})
        user_id = created["id"]
        assert (await call(api_client, "get_user", {"id": user_id}))["name"] == "Carol"
        assert (await call(api_client, "update_user", {"id": user_id, "name": "Caroline"}))["name"] == "Caroline"
        assert await call(api_client, "delete_user", {"id": user_id}) == {"success": True}
        assert len(await call(api_client, "list_users")) == 2

    async def test_create_user_requires_email(self, api_client: ApiClient) -> None:
        assert (await call(api_client, "create_user", {"name": "Carol"}))["error"] == "email is required"


class TestMetaTools:
    async def test_health_check(self, api_client: ApiClient) -> None:
        assert (await call(api_client, "health_check"))["status"] == "ok"

    async def test_get_schema_returns_sql_text(self, api_client: ApiClient) -> None:
        text = (await _HANDLERS["get_schema"](api_client, {}))[0].text
        assert "CREATE TABLE" in text


class TestApiClient:
    async def test_unreachable_backend(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with ApiClient("http://backend/api", transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.list_tags()
        assert exc_info.value.status == 503
        assert exc_info.value.code == "BACKEND_UNAVAILABLE"

    async def test_api_key_header_sent(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-api-key", "")
            return httpx.Response(200, json=[])

        async with ApiClient("http://backend/api", "issues_secret", transport=httpx.MockTransport(handler)) as client:
            assert await client.list_users() == []
        assert seen["key"] == "issues_secret"

    async def test_non_envelope_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with ApiClient("http://backend/api", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.get_issue(1)
        assert exc_info.value.code == "HTTP_502"
        assert exc_info.value.message == "Bad Gateway"

    async def test_schema_failure_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": {"message": "x", "code": "INTERNAL_ERROR"}})

        async with ApiClient("http://backend/api", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.get_schema()
        assert exc_info.value.message == "Failed to fetch schema: 500 Internal Server Error"

    async def test_mcp_error_shape_for_unreachable_backend(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with ApiClient("http://backend/api", transport=httpx.MockTransport(refuse)) as client:
            data = await call(client, "list_tags")
        assert data["code"] == "BACKEND_UNAVAILABLE"
        assert data["status"] == 503
