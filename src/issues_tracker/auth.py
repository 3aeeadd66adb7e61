"""Authentication: password hashing, login sessions, and API keys.

Passwords are bcrypt hashes. Session tokens and API keys are random
URL-safe strings; only their SHA-256 digest is stored, so a leaked database
does not leak usable credentials.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import bcrypt

from issues_tracker.validation import sanitize_email, sanitize_name, validate_password

if TYPE_CHECKING:
    from issues_tracker.core import AuthUser, Session, TrackerDB
    from issues_tracker.types.api import IssuedApiKey

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "issues_"
SESSION_COOKIE_NAME = "issues_tracker.session_token"
_API_KEY_RANDOM_BYTES = 48  # 64 URL-safe characters
_API_KEY_START_CHARS = 6


class AuthError(Exception):
    """An authentication failure with a stable error code and HTTP status."""

    def __init__(self, message: str, code: str, status: int) -> None:
        self.message = message
        self.code = code
        self.status = status
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        # Malformed stored hash or over-long input
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(_API_KEY_RANDOM_BYTES)


def api_key_start(key: str) -> str:
    """Visible, non-secret head of a key: the prefix plus six characters."""
    return key[: len(API_KEY_PREFIX) + _API_KEY_START_CHARS]


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


class AuthService:
    """Sign-up, sign-in and API key rotation on top of ``TrackerDB``."""

    def __init__(self, db: TrackerDB, *, session_ttl: timedelta = timedelta(days=7)) -> None:
        self.db = db
        self.session_ttl = session_ttl

    def _start_session(self, user: AuthUser, user_agent: str) -> str:
        self.db.delete_expired_sessions()
        token = generate_session_token()
        expires_at = (datetime.now(UTC) + self.session_ttl).isoformat()
        self.db.create_session(user.id, hash_token(token), expires_at, user_agent=user_agent)
        return token

    def sign_up(self, name: object, email: object, password: object, *, user_agent: str = "") -> tuple[AuthUser, str, IssuedApiKey | None]:
        """Create an account, log it in, and issue its first API key.

        Returns ``(user, session_token, api_key)``. ``api_key`` is None when
        key creation failed; the account and session still stand.

        Raises:
            ValueError: Invalid name, email or password.
            AuthError: The email is already registered (422).
        """
        clean_name, err = sanitize_name(name)
        if err:
            raise ValueError(err)
        clean_email, err = sanitize_email(email)
        if err:
            raise ValueError(err)
        err = validate_password(password)
        if err:
            raise ValueError(err)
        assert isinstance(password, str)

        try:
            user = self.db.create_auth_user(clean_name, clean_email, hash_password(password))
        except ValueError as exc:
            raise AuthError("User already exists", "USER_ALREADY_EXISTS", 422) from exc
        token = self._start_session(user, user_agent)

        api_key: IssuedApiKey | None
        try:
            api_key = self.issue_api_key(user, purpose="default")
        except Exception:
            logger.exception("Failed to create API key during sign-up for %s", user.id)
            api_key = None
        else:
            logger.info("Created account %s with default API key %s", user.id, api_key["id"])
        return user, token, api_key

    def sign_in(self, email: object, password: object, *, user_agent: str = "") -> tuple[AuthUser, str]:
        """Verify credentials and start a session. Raises ``AuthError`` (401) on mismatch."""
        invalid = AuthError("Invalid email or password", "INVALID_EMAIL_OR_PASSWORD", 401)
        clean_email, err = sanitize_email(email)
        if err or not isinstance(password, str):
            raise invalid
        found = self.db.get_auth_credentials(clean_email)
        if found is None:
            raise invalid
        user, password_hash = found
        if not verify_password(password, password_hash):
            raise invalid
        return user, self._start_session(user, user_agent)

    def sign_out(self, token: str) -> bool:
        return self.db.delete_session_by_token_hash(hash_token(token))

    def get_session(self, token: str | None) -> tuple[Session, AuthUser] | None:
        if not token:
            return None
        session = self.db.get_session_by_token_hash(hash_token(token))
        if session is None:
            return None
        try:
            user = self.db.get_auth_user(session.user_id)
        except KeyError:
            return None
        return session, user

    def issue_api_key(self, user: AuthUser, *, purpose: str, name: str | None = None) -> IssuedApiKey:
        """Create a key for *user*. The returned ``key`` is the only copy of the secret."""
        key = generate_api_key()
        record = self.db.create_api_key(
            user.id,
            name=name or f"{user.name}'s API Key",
            key_hash=hash_token(key),
            start=api_key_start(key),
            prefix=API_KEY_PREFIX,
            metadata={"createdAt": datetime.now(UTC).isoformat(), "purpose": purpose},
        )
        return {"id": record.id, "name": record.name, "key": key, "start": record.start, "created": True}

    def rotate_api_key(self, user: AuthUser) -> IssuedApiKey:
        """Delete every existing key of *user*, then issue a fresh one.

        A key that fails to delete is logged and skipped.
        """
        existing = self.db.list_api_keys(user.id)
        for old in existing:
            try:
                self.db.delete_api_key(old.id, user_id=user.id)
            except Exception:
                logger.warning("Failed to delete API key %s for %s", old.id, user.id, exc_info=True)
        issued = self.issue_api_key(user, purpose="regenerated")
        logger.info("Rotated API key for %s (%d old key(s))", user.id, len(existing))
        return issued

    def authenticate_api_key(self, key: str | None) -> AuthUser | None:
        if not key or not key.startswith(API_KEY_PREFIX):
            return None
        record = self.db.get_api_key_by_hash(hash_token(key))
        if record is None:
            return None
        try:
            return self.db.get_auth_user(record.user_id)
        except KeyError:
            return None
