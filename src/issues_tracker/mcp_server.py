"""MCP adapter for the issues-tracker REST API.

Primary interface for agents. Every tool call is forwarded to the REST API
(``API_BASE_URL``) through an :class:`~issues_tracker.api_client.ApiClient`,
authenticated with the API key the agent presented when it opened its
session (or ``ISSUES_TRACKER_API_KEY``).

Over HTTP each MCP session gets its own streamable-HTTP transport and its
own server instance, kept in a session-id -> transport map by
:class:`McpSessionBridge`.

Usage:
    issues-tracker mcp                    # streamable HTTP on MCP_PORT (4000)
    issues-tracker mcp --stdio            # stdio, API key from the environment
"""

from __future__ import annotations

import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any

import anyio
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from mcp.types import InitializeRequest, JSONRPCRequest, Resource, TextContent, Tool
from pydantic import ValidationError

from issues_tracker.api_client import ApiClient, ApiError
from issues_tracker.mcp_tools import issues as issue_tools
from issues_tracker.mcp_tools import meta as meta_tools
from issues_tracker.mcp_tools import tags as tag_tools
from issues_tracker.mcp_tools import users as user_tools
from issues_tracker.mcp_tools.common import ToolHandler, _text

if TYPE_CHECKING:
    from anyio.abc import TaskGroup, TaskStatus
    from fastapi import FastAPI
    from starlette.types import Receive, Scope, Send

    from issues_tracker.config import Settings

logger = logging.getLogger(__name__)

SERVER_NAME = "issues-tracker-server"
SCHEMA_URI = "schema://database"

_INVALID_REQUEST = -32600
_MISSING_SESSION_MSG = "Bad request: missing session ID or not an initialize request"
_INVALID_SESSION_MSG = "Bad request: invalid or missing session ID"

ClientFactory = Callable[[str], ApiClient]

# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


def _collect_tools() -> tuple[list[Tool], dict[str, ToolHandler]]:
    tools: list[Tool] = []
    handlers: dict[str, ToolHandler] = {}
    for module in (issue_tools, tag_tools, user_tools, meta_tools):
        module_tools, module_handlers = module.register()
        tools.extend(module_tools)
        handlers.update(module_handlers)
    return tools, handlers


_TOOLS, _HANDLERS = _collect_tools()


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_mcp_server(client: ApiClient) -> Server:
    """Build a low-level MCP server whose tools call the REST API via *client*.

    One instance per session: the HTTP bridge never shares a server between
    transports.
    """
    from issues_tracker import __version__

    server = Server(SERVER_NAME, version=__version__)

    @server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_resources() -> list[Resource]:
        return [
            Resource(
                uri=SCHEMA_URI,  # type: ignore[arg-type]
                name="Database Schema",
                description="SQLite schema for the issues database",
                mimeType="text/plain",
            ),
        ]

    @server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
    async def read_resource(uri: Any) -> list[ReadResourceContents]:
        if str(uri) != SCHEMA_URI:
            msg = f"Unknown resource: {uri}"
            raise ValueError(msg)
        try:
            schema = await client.get_schema()
        except ApiError as e:
            raise RuntimeError(e.message) from e
        return [ReadResourceContents(content=schema, mime_type="text/plain")]

    @server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_tools() -> list[Tool]:
        return list(_TOOLS)

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        handler = _HANDLERS.get(name)
        if handler is None:
            return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
        t0 = time.monotonic()
        try:
            result = await handler(client, arguments or {})
        except Exception:
            duration_ms = round((time.monotonic() - t0) * 1000, 1)
            logger.error("tool_error", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms}, exc_info=True)
            raise
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result

    return server


# ---------------------------------------------------------------------------
# Streamable-HTTP session bridge
# ---------------------------------------------------------------------------


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    """Receive callable that yields the already-read *body* once, then defers to *receive*."""
    sent = False

    async def replay() -> dict[str, Any]:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()  # type: ignore[return-value]

    return replay  # type: ignore[return-value]


def _is_initialize_request(body: bytes) -> bool:
    """True when *body* is one well-formed JSON-RPC ``initialize`` request."""
    try:
        request = JSONRPCRequest.model_validate_json(body)
        if request.method != "initialize":
            return False
        InitializeRequest.model_validate({"method": request.method, "params": request.params})
    except ValidationError:
        return False
    return True


def _api_key_from_headers(headers: dict[str, str]) -> str:
    if headers.get("x-api-key"):
        return headers["x-api-key"].strip()
    scheme, _, token = headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer":
        return token.strip()
    return ""


async def _send_json(scope: Scope, receive: Receive, send: Send, payload: Any, status: int) -> None:
    from starlette.responses import JSONResponse

    await JSONResponse(payload, status_code=status)(scope, receive, send)


async def _bad_request(scope: Scope, receive: Receive, send: Send, message: str) -> None:
    payload = {"jsonrpc": "2.0", "error": {"code": _INVALID_REQUEST, "message": message}, "id": None}
    await _send_json(scope, receive, send, payload, 400)


class McpSessionBridge:
    """ASGI app mapping ``mcp-session-id`` values to live transports.

    * ``POST`` with a known session id is routed to that session's transport.
    * ``POST`` without a session id carrying an ``initialize`` request opens a
      new session: fresh transport, fresh server, new client bound to the
      caller's API key.
    * ``GET`` (server-to-client SSE stream) requires a known session.
    * ``DELETE`` terminates and forgets the session; always 204.

    :meth:`run` must be entered (usually from the app lifespan) before the
    first request so the sessions' task group exists.
    """

    def __init__(self, client_factory: ClientFactory, *, json_response: bool = False) -> None:
        self._client_factory = client_factory
        self._json_response = json_response
        self._transports: dict[str, StreamableHTTPServerTransport] = {}
        self._task_group: TaskGroup | None = None

    @property
    def session_count(self) -> int:
        return len(self._transports)

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("MCP session bridge started")
            try:
                yield
            finally:
                for session_id, transport in list(self._transports.items()):
                    logger.debug("Terminating MCP session %s on shutdown", session_id)
                    await transport.terminate()
                self._transports.clear()
                tg.cancel_scope.cancel()
                self._task_group = None
                logger.info("MCP session bridge stopped")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._task_group is None:
            await _send_json(scope, receive, send, {"error": "MCP session bridge not running"}, 503)
            return

        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])}
        session_id = headers.get(MCP_SESSION_ID_HEADER)
        method = scope["method"]

        if method == "POST":
            body = await _read_body(receive)
            replay = _replay_receive(body, receive)
            if session_id and session_id in self._transports:
                await self._transports[session_id].handle_request(scope, replay, send)
            elif not session_id and _is_initialize_request(body):
                await self._initialize(scope, replay, send, _api_key_from_headers(headers))
            else:
                await _bad_request(scope, replay, send, _MISSING_SESSION_MSG)
        elif method == "GET":
            if not session_id or session_id not in self._transports:
                await _bad_request(scope, receive, send, _INVALID_SESSION_MSG)
                return
            await self._transports[session_id].handle_request(scope, receive, send)
        elif method == "DELETE":
            if session_id:
                await self._close_session(session_id)
            from starlette.responses import Response

            await Response(status_code=204)(scope, receive, send)
        else:
            from starlette.responses import Response

            await Response(status_code=405, headers={"Allow": "GET, POST, DELETE"})(scope, receive, send)

    async def _initialize(self, scope: Scope, receive: Receive, send: Send, api_key: str) -> None:
        """Open a session for an ``initialize`` POST; drop it again if the transport rejects the request."""
        transport = await self._open_session(api_key)
        statuses: list[int] = []

        async def send_capturing_status(message: Any) -> None:
            if message["type"] == "http.response.start":
                statuses.append(message["status"])
            await send(message)

        await transport.handle_request(scope, receive, send_capturing_status)
        if not statuses or statuses[0] >= 400:
            logger.info("MCP initialize rejected (status %s)", statuses[0] if statuses else None)
            await self._close_session(transport.mcp_session_id)

    async def _close_session(self, session_id: str | None) -> None:
        transport = self._transports.pop(session_id, None) if session_id else None
        if transport is not None:
            await transport.terminate()
            logger.info("MCP session closed", extra={"session_id": session_id})

    async def _open_session(self, api_key: str) -> StreamableHTTPServerTransport:
        assert self._task_group is not None
        session_id = uuid.uuid4().hex
        transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=self._json_response,
        )
        client = self._client_factory(api_key)
        server = create_mcp_server(client)

        async def run_server(*, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
            try:
                async with transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    await server.run(read_stream, write_stream, server.create_initialization_options())
            except Exception:
                logger.error("MCP session %s crashed", session_id, exc_info=True)
            finally:
                if self._transports.get(session_id) is transport:
                    del self._transports[session_id]
                with anyio.CancelScope(shield=True):
                    await client.aclose()
                logger.info("MCP session ended", extra={"session_id": session_id})

        self._transports[session_id] = transport
        await self._task_group.start(run_server)
        logger.info("MCP session opened", extra={"session_id": session_id})
        return transport


# ---------------------------------------------------------------------------
# HTTP app factory
# ---------------------------------------------------------------------------


def create_mcp_app(
    settings: Settings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    json_response: bool = False,
) -> FastAPI:
    """Create the MCP HTTP app: ``/mcp`` (the bridge) and ``/health``.

    With *json_response* the bridge answers POSTs with plain JSON instead of
    an SSE stream.

    The bridge's task group runs inside the app lifespan. ``app.state.bridge``
    exposes the bridge (tests enter ``bridge.run()`` directly).
    """
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse
    from starlette.routing import Route

    from issues_tracker.config import load_settings

    settings = settings or load_settings()

    def _default_factory(api_key: str) -> ApiClient:
        return ApiClient(settings.api_base_url, api_key or settings.api_key)

    bridge = McpSessionBridge(client_factory or _default_factory, json_response=json_response)

    @contextlib.asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with bridge.run():
            yield

    app = FastAPI(title="Issues Tracker MCP", docs_url=None, redoc_url=None, openapi_url=None, lifespan=_lifespan)
    app.state.bridge = bridge

    async def health(request: Any) -> JSONResponse:
        return JSONResponse({"status": "ok", "sessions": bridge.session_count})

    app.router.routes.append(Route("/health", endpoint=health, methods=["GET"]))
    app.router.routes.append(Route("/mcp", endpoint=bridge, methods=["GET", "POST", "DELETE"]))
    return app


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run_stdio(settings: Settings) -> None:
    async with ApiClient(settings.api_base_url, settings.api_key) as client:
        server = create_mcp_server(client)
        logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"api": settings.api_base_url, "transport": "stdio"}})
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())


def main(port: int | None = None, *, stdio: bool = False) -> None:
    """Serve the MCP adapter over streamable HTTP (default) or stdio."""
    from issues_tracker.config import load_settings
    from issues_tracker.logging import setup_logging

    settings = load_settings()
    setup_logging(settings.log_dir)

    if stdio:
        anyio.run(_run_stdio, settings)
        return

    import uvicorn

    bind_port = port or settings.mcp_port
    logger.info("MCP server listening on http://%s:%d/mcp (API %s)", settings.host, bind_port, settings.api_base_url)
    uvicorn.run(create_mcp_app(settings), host=settings.host, port=bind_port, log_level="warning")
