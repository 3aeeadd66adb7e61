"""TypedDicts for REST route and MCP tool handler responses."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

from issues_tracker.types.core import AuthUserDict, SessionDict


class ErrorBody(TypedDict):
    message: str
    code: str
    details: dict[str, Any]


class ErrorEnvelope(TypedDict):
    """Error envelope returned by every REST error path."""

    error: ErrorBody


class ToolError(TypedDict):
    """Error shape returned as MCP tool content."""

    error: str
    code: str
    status: NotRequired[int]


class IssuedApiKey(TypedDict):
    """A freshly created API key. ``key`` is the only time the secret is visible."""

    id: str
    name: str
    key: str
    start: str
    created: bool


class AuthResponse(TypedDict):
    token: str
    user: AuthUserDict
    apiKey: NotRequired[IssuedApiKey]


class SessionResponse(TypedDict):
    session: SessionDict
    user: AuthUserDict


class GenerateApiKeyResponse(TypedDict):
    success: bool
    apiKey: IssuedApiKey


class HealthChecks(TypedDict):
    database: str


class HealthResponse(TypedDict):
    status: str
    timestamp: str
    uptime: float
    version: str
    checks: HealthChecks


class SchemaResponse(TypedDict):
    schema: str
