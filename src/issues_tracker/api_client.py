"""Async HTTP client for the issues-tracker REST API.

Used by the MCP adapter: every tool call becomes one REST request. The
client owns one ``httpx.AsyncClient``; pass ``transport=httpx.ASGITransport(app)``
to talk to an in-process app (tests).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ApiError(Exception):
    """A non-2xx REST response (or an unreachable backend)."""

    def __init__(self, status: int, code: str, message: str) -> None:
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"[{status}] {code}: {message}")

    @classmethod
    def from_response(cls, response: httpx.Response) -> ApiError:
        """Read the ``{"error": {"message", "code"}}`` envelope, tolerating other bodies."""
        try:
            data = response.json()
        except ValueError:
            text = response.text[:200] if response.text else response.reason_phrase
            return cls(response.status_code, f"HTTP_{response.status_code}", text)
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return cls(
                response.status_code,
                str(error.get("code", f"HTTP_{response.status_code}")),
                str(error.get("message", response.reason_phrase)),
            )
        return cls(response.status_code, f"HTTP_{response.status_code}", str(error or data))

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "status": self.status}


class ApiClient:
    """Thin async wrapper over the REST endpoints, authenticated by API key."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, *, params: dict[str, Any] | None = None, json: Any = None) -> httpx.Response:
        try:
            return await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Backend request failed: %s %s: %s", method, path, exc)
            raise ApiError(503, "BACKEND_UNAVAILABLE", f"Cannot reach {self.base_url}: {exc}") from exc

    async def request(self, method: str, path: str, *, params: dict[str, Any] | None = None, json: Any = None) -> Any:
        """Send a request and return the decoded JSON body (None for 204)."""
        response = await self._send(method, path, params=params, json=json)
        if not response.is_success:
            raise ApiError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # -- Issues ----------------------------------------------------------------

    async def list_issues(self, **filters: Any) -> Any:
        params = {k: v for k, v in filters.items() if v is not None}
        return await self.request("GET", "/issues", params=params)

    async def get_issue(self, issue_id: int) -> Any:
        return await self.request("GET", f"/issues/{issue_id}")

    async def create_issue(self, body: dict[str, Any]) -> Any:
        return await self.request("POST", "/issues", json=body)

    async def update_issue(self, issue_id: int, body: dict[str, Any]) -> Any:
        return await self.request("PUT", f"/issues/{issue_id}", json=body)

    async def delete_issue(self, issue_id: int) -> None:
        await self.request("DELETE", f"/issues/{issue_id}")

    async def add_issue_tag(self, issue_id: int, tag_id: int) -> Any:
        return await self.request("POST", f"/issues/{issue_id}/tags", json={"tag_id": tag_id})

    async def remove_issue_tag(self, issue_id: int, tag_id: int) -> Any:
        return await self.request("DELETE", f"/issues/{issue_id}/tags/{tag_id}")

    # -- Tags ------------------------------------------------------------------

    async def list_tags(self) -> Any:
        return await self.request("GET", "/tags")

    async def create_tag(self, body: dict[str, Any]) -> Any:
        return await self.request("POST", "/tags", json=body)

    async def update_tag(self, tag_id: int, body: dict[str, Any]) -> Any:
        return await self.request("PUT", f"/tags/{tag_id}", json=body)

    async def delete_tag(self, tag_id: int) -> None:
        await self.request("DELETE", f"/tags/{tag_id}")

    # -- Users -----------------------------------------------------------------

    async def list_users(self) -> Any:
        return await self.request("GET", "/users")

    async def get_user(self, user_id: int) -> Any:
        return await self.request("GET", f"/users/{user_id}")

    async def create_user(self, body: dict[str, Any]) -> Any:
        return await self.request("POST", "/users", json=body)

    async def update_user(self, user_id: int, body: dict[str, Any]) -> Any:
        return await self.request("PUT", f"/users/{user_id}", json=body)

    async def delete_user(self, user_id: int) -> None:
        await self.request("DELETE", f"/users/{user_id}")

    # -- Meta ------------------------------------------------------------------

    async def health(self) -> Any:
        return await self.request("GET", "/health")

    async def get_schema(self) -> str:
        """Return the schema SQL text.

        Raises:
            ApiError: ``Failed to fetch schema: <status> <reason>`` on a non-2xx response.
        """
        response = await self._send("GET", "/schema")
        if not response.is_success:
            raise ApiError(
                response.status_code,
                f"HTTP_{response.status_code}",
                f"Failed to fetch schema: {response.status_code} {response.reason_phrase}",
            )
        data = response.json()
        return str(data.get("schema", "")) if isinstance(data, dict) else str(data)
