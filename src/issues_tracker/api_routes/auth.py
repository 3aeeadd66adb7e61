"""Authentication route handlers mounted under ``/api/auth``.

Session tokens travel in the ``issues_tracker.session_token`` cookie (or as a
bearer token); API keys in ``x-api-key`` or as a bearer token with the
``issues_`` prefix.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

    from issues_tracker.core import AuthUser

from issues_tracker.api_routes.common import _error_response, _parse_json_body, _validation_error
from issues_tracker.auth import API_KEY_PREFIX, SESSION_COOKIE_NAME, AuthError, AuthService
from issues_tracker.types.api import AuthResponse, GenerateApiKeyResponse, SessionResponse

logger = logging.getLogger(__name__)

_UNAUTHORIZED = ("Unauthorized", "UNAUTHORIZED", 401)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _session_token(request: Request) -> str | None:
    """Session token from the cookie, else from a non-API-key bearer token."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if cookie:
        return cookie
    bearer = _bearer_token(request)
    if bearer and not bearer.startswith(API_KEY_PREFIX):
        return bearer
    return None


def authenticate_request(request: Request, auth: AuthService) -> AuthUser | None:
    """Resolve the caller from an API key or a session. None when unauthenticated."""
    api_key = request.headers.get("x-api-key")
    if api_key:
        return auth.authenticate_api_key(api_key.strip())
    bearer = _bearer_token(request)
    if bearer and bearer.startswith(API_KEY_PREFIX):
        return auth.authenticate_api_key(bearer)
    found = auth.get_session(_session_token(request))
    return found[1] if found is not None else None


def _set_session_cookie(response: JSONResponse, token: str, auth: AuthService, *, secure: bool) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=int(auth.session_ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
    )


def create_router() -> APIRouter:
    """Build the APIRouter for ``/auth`` endpoints.

    The catch-all route is registered last so that unknown ``/auth/*`` paths
    return a 404 envelope instead of falling through to other routers.
    """
    from fastapi import APIRouter, Depends

    from issues_tracker.api import _get_auth

    router = APIRouter()

    def _secure_cookies(request: Request) -> bool:
        return request.app.state.settings.auth_base_url.startswith("https://")

    @router.post("/auth/sign-up/email")
    async def api_sign_up(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        try:
            user, token, api_key = auth.sign_up(
                body.get("name"),
                body.get("email"),
                body.get("password"),
                user_agent=request.headers.get("user-agent", ""),
            )
        except ValueError as e:
            return _validation_error(str(e))
        except AuthError as e:
            return _error_response(e.message, e.code, e.status)
        payload: AuthResponse = {"token": token, "user": user.to_dict()}
        if api_key is not None:
            payload["apiKey"] = api_key
        response = JSONResponse(payload)
        _set_session_cookie(response, token, auth, secure=_secure_cookies(request))
        return response

    @router.post("/auth/sign-in/email")
    async def api_sign_in(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        try:
            user, token = auth.sign_in(
                body.get("email"),
                body.get("password"),
                user_agent=request.headers.get("user-agent", ""),
            )
        except AuthError as e:
            return _error_response(e.message, e.code, e.status)
        payload: AuthResponse = {"token": token, "user": user.to_dict()}
        response = JSONResponse(payload)
        _set_session_cookie(response, token, auth, secure=_secure_cookies(request))
        return response

    @router.post("/auth/sign-out")
    async def api_sign_out(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        token = _session_token(request)
        if token:
            auth.sign_out(token)
        response = JSONResponse({"success": True})
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
        return response

    @router.get("/auth/get-session")
    async def api_get_session(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        found = auth.get_session(_session_token(request))
        if found is None:
            return JSONResponse(None)
        session, user = found
        payload: SessionResponse = {"session": session.to_dict(), "user": user.to_dict()}
        return JSONResponse(payload)

    @router.post("/auth/generate-api-key")
    async def api_generate_api_key(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        found = auth.get_session(_session_token(request))
        if found is None:
            return _error_response(*_UNAUTHORIZED)
        _, user = found
        try:
            issued = auth.rotate_api_key(user)
        except Exception as e:
            logger.error("API key generation failed for %s", user.id, exc_info=True)
            return _error_response(f"Failed to generate API key: {e}", "API_KEY_GENERATION_ERROR", 500)
        result: GenerateApiKeyResponse = {"success": True, "apiKey": issued}
        return JSONResponse(result)

    @router.get("/auth/api-key/list")
    async def api_list_api_keys(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        found = auth.get_session(_session_token(request))
        if found is None:
            return _error_response(*_UNAUTHORIZED)
        _, user = found
        return JSONResponse([k.to_dict() for k in auth.db.list_api_keys(user.id)])

    @router.post("/auth/api-key/delete")
    async def api_delete_api_key(request: Request, auth: AuthService = Depends(_get_auth)) -> JSONResponse:
        found = auth.get_session(_session_token(request))
        if found is None:
            return _error_response(*_UNAUTHORIZED)
        _, user = found
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        key_id = body.get("keyId")
        if not isinstance(key_id, str) or not key_id:
            return _validation_error("keyId must be a non-empty string", {"field": "keyId"})
        try:
            auth.db.delete_api_key(key_id, user_id=user.id)
        except KeyError as e:
            return _error_response(str(e.args[0]), "NOT_FOUND", 404)
        return JSONResponse({"success": True})

    @router.api_route("/auth/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def api_auth_not_found(path: str) -> JSONResponse:
        return _error_response(f"Unknown auth endpoint: /api/auth/{path}", "NOT_FOUND", 404)

    return router
