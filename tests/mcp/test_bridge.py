"""End-to-end MCP tests over streamable HTTP: session bridge -> REST API -> SQLite."""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator, Generator
from typing import Any

import anyio
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

import issues_tracker.api as api_module
from issues_tracker.api import create_app
from issues_tracker.api_client import ApiClient
from issues_tracker.auth import AuthService
from issues_tracker.config import Settings
from issues_tracker.core import TrackerDB
from issues_tracker.mcp_server import _HANDLERS, SERVER_NAME, create_mcp_app

PROTOCOL_VERSION = "2025-03-26"
BASE_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
}


@pytest.fixture
def secured_rest_app(db: TrackerDB) -> Generator[Any, None, None]:
    """REST app that requires an API key on the CRUD routes."""
    api_module._db = db
    yield create_app(Settings(environment="test"))
    api_module._db = None


@pytest.fixture
def api_key(db: TrackerDB) -> str:
    _, _, issued = AuthService(db).sign_up("Agent", "agent@example.com", "password123")
    assert issued is not None
    return issued["key"]


@contextlib.asynccontextmanager
async def mcp_http(rest_app: Any) -> AsyncIterator[tuple[AsyncClient, Any]]:
    """Run the MCP HTTP app (bridge started) and yield ``(client, bridge)``."""

    def factory(key: str) -> ApiClient:
        return ApiClient("http://test/api", key, transport=httpx.ASGITransport(app=rest_app))

    app = create_mcp_app(Settings(environment="test"), client_factory=factory, json_response=True)
    bridge = app.state.bridge
    async with bridge.run():
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://mcp") as client:
            yield client, bridge


async def _rpc(client: AsyncClient, payload: dict[str, Any], session_id: str | None = None, **headers: str) -> httpx.Response:
    all_headers = dict(BASE_HEADERS, **headers)
    if session_id:
        all_headers["mcp-session-id"] = session_id
        all_headers["mcp-protocol-version"] = PROTOCOL_VERSION
    return await client.post("/mcp", content=json.dumps(payload), headers=all_headers)


async def _open_session(client: AsyncClient, **headers: str) -> str:
    resp = await _rpc(
        client,
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "pytest", "version": "0"},
            },
        },
        **headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["result"]["serverInfo"]["name"] == SERVER_NAME
    session_id = resp.headers["mcp-session-id"]
    ack = await _rpc(client, {"jsonrpc": "2.0", "method": "notifications/initialized"}, session_id)
    assert ack.status_code == 202
    return session_id


async def _call_tool(client: AsyncClient, session_id: str, name: str, arguments: dict[str, Any], req_id: int = 3) -> Any:
    resp = await _rpc(
        client,
        {"jsonrpc": "2.0", "id": req_id, "method": "tools/call", "params": {"name": name, "arguments": arguments}},
        session_id,
    )
    assert resp.status_code == 200, resp.text
    return json.loads(resp.json()["result"]["content"][0]["text"])


class TestSessionLifecycle:
    async def test_initialize_list_tools_and_close(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            assert bridge.session_count == 1

            resp = await _rpc(client, {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}, session_id)
            names = {t["name"] for t in resp.json()["result"]["tools"]}
            assert len(names) == 18
            assert "list_issues" in names

            resp = await client.delete("/mcp", headers={"mcp-session-id": session_id})
            assert resp.status_code == 204
            assert bridge.session_count == 0

    async def test_tool_call_uses_session_api_key(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            created = await _call_tool(client, session_id, "create_tag", {"name": "agent-made"})
            assert created["name"] == "agent-made"
            tags = await _call_tool(client, session_id, "list_tags", {}, req_id=4)
            assert [t["name"] for t in tags] == ["agent-made"]

    async def test_bearer_api_key_accepted(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client, Authorization=f"Bearer {api_key}")
            assert await _call_tool(client, session_id, "list_users", {}) == []

    async def test_session_without_key_gets_backend_401(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client)
            data = await _call_tool(client, session_id, "list_users", {})
            assert data["status"] == 401
            assert data["code"] == "UNAUTHORIZED"

    async def test_sessions_are_independent(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            first = await _open_session(client, **{"x-api-key": api_key})
            second = await _open_session(client)
            assert first != second
            assert bridge.session_count == 2
            assert isinstance(await _call_tool(client, first, "list_users", {}), list)
            assert (await _call_tool(client, second, "list_users", {}))["status"] == 401

    async def test_session_dropped_when_its_server_ends(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            await bridge._transports[session_id].terminate()
            with anyio.fail_after(5):
                while bridge.session_count:
                    await anyio.sleep(0.01)
            resp = await _rpc(client, {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}, session_id)
            assert resp.status_code == 400


class TestBadRequests:
    async def test_malformed_initialize_opens_no_session(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            resp = await _rpc(client, {"method": "initialize"})
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == -32600
            assert bridge.session_count == 0
            assert (await client.get("/health")).json()["sessions"] == 0

    async def test_initialize_without_params_opens_no_session(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            resp = await _rpc(client, {"jsonrpc": "2.0", "id": 1, "method": "initialize"})
            assert resp.status_code == 400
            assert bridge.session_count == 0

    async def test_initialize_rejected_by_transport_is_dropped(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, bridge):
            resp = await _rpc(
                client,
                {
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "initialize",
                    "params": {"protocolVersion": PROTOCOL_VERSION, "capabilities": {}, "clientInfo": {"name": "pytest", "version": "0"}},
                },
                Accept="text/html",
            )
            assert resp.status_code == 406
            assert bridge.session_count == 0

    async def test_non_initialize_without_session_400(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            resp = await _rpc(client, {"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == -32600

    async def test_unknown_session_400(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            resp = await _rpc(client, {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}, "no-such-session")
            assert resp.status_code == 400

    async def test_get_without_session_400(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            resp = await client.get("/mcp", headers={"Accept": "text/event-stream"})
            assert resp.status_code == 400

    async def test_delete_unknown_session_204(self, secured_rest_app: Any) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            resp = await client.delete("/mcp", headers={"mcp-session-id": "gone"})
            assert resp.status_code == 204

    async def test_bridge_not_running_503(self, secured_rest_app: Any) -> None:
        app = create_mcp_app(Settings(environment="test"), client_factory=lambda key: ApiClient("http://test/api", key))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://mcp") as client:
            resp = await client.post("/mcp", content=b"{}", headers=BASE_HEADERS)
        assert resp.status_code == 503


class TestMcpHealth:
    async def test_health_reports_sessions(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            assert (await client.get("/health")).json() == {"status": "ok", "sessions": 0}
            await _open_session(client, **{"x-api-key": api_key})
            assert (await client.get("/health")).json()["sessions"] == 1


class TestSchemaResource:
    async def test_list_and_read_schema(self, secured_rest_app: Any, api_key: str) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            listed = await _rpc(client, {"jsonrpc": "2.0", "id": 2, "method": "resources/list"}, session_id)
            resources = listed.json()["result"]["resources"]
            assert [r["uri"] for r in resources] == ["schema://database"]
            assert resources[0]["mimeType"] == "text/plain"

            read = await _rpc(
                client,
                {"jsonrpc": "2.0", "id": 3, "method": "resources/read", "params": {"uri": "schema://database"}},
                session_id,
            )
            contents = read.json()["result"]["contents"]
            assert "CREATE TABLE" in contents[0]["text"]


class TestToolLogging:
    async def test_tool_call_logged_with_duration(self, secured_rest_app: Any, api_key: str, caplog: pytest.LogCaptureFixture) -> None:
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            with caplog.at_level(logging.INFO, logger="issues_tracker.mcp_server"):
                await _call_tool(client, session_id, "list_tags", {})
        records = [r for r in caplog.records if r.getMessage() == "tool_call"]
        assert len(records) == 1
        assert records[0].tool == "list_tags"
        assert records[0].duration_ms >= 0

    async def test_tool_error_logged(
        self, secured_rest_app: Any, api_key: str, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def explode(client: ApiClient, arguments: dict[str, Any]) -> Any:
            raise RuntimeError("handler blew up")

        monkeypatch.setitem(_HANDLERS, "list_tags", explode)
        async with mcp_http(secured_rest_app) as (client, _):
            session_id = await _open_session(client, **{"x-api-key": api_key})
            with caplog.at_level(logging.INFO, logger="issues_tracker.mcp_server"):
                resp = await _rpc(
                    client,
                    {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": "list_tags", "arguments": {}}},
                    session_id,
                )
        assert resp.json()["result"]["isError"] is True
        records = [r for r in caplog.records if r.getMessage() == "tool_error"]
        assert len(records) == 1
        assert records[0].tool == "list_tags"
        assert records[0].duration_ms >= 0
