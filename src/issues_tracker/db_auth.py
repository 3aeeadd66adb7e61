"""AuthMixin: accounts, login sessions, and API keys.

Secrets never reach this layer in clear text: callers pass the SHA-256 hash
of session tokens and API keys (see ``issues_tracker.auth``).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING, Any

from issues_tracker.db_base import DBMixinProtocol, _now_iso

if TYPE_CHECKING:
    from issues_tracker.core import ApiKey, AuthUser, Session

logger = logging.getLogger(__name__)


class AuthMixin(DBMixinProtocol):
    """Auth tables. Deleting an account cascades to its sessions and keys."""

    # -- Row builders ----------------------------------------------------------

    @staticmethod
    def _row_to_auth_user(row: sqlite3.Row) -> AuthUser:
        from issues_tracker.core import AuthUser

        return AuthUser(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        from issues_tracker.core import Session

        return Session(
            id=row["id"],
            user_id=row["user_id"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            user_agent=row["user_agent"] or "",
        )

    @staticmethod
    def _row_to_api_key(row: sqlite3.Row) -> ApiKey:
        from issues_tracker.core import ApiKey

        try:
            metadata = json.loads(row["metadata"] or "{}")
        except json.JSONDecodeError:
            logger.warning("Corrupt metadata on api key %s", row["id"])
            metadata = {}
        return ApiKey(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            start=row["start"],
            prefix=row["prefix"],
            enabled=bool(row["enabled"]),
            metadata=metadata,
            created_at=row["created_at"],
        )

    # -- Accounts --------------------------------------------------------------

    def create_auth_user(self, name: str, email: str, password_hash: str) -> AuthUser:
        user_id = uuid.uuid4().hex
        now = _now_iso()
        try:
            self.conn.execute(
                "INSERT INTO auth_users (id, name, email, password_hash, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, name, email, password_hash, now, now),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"An account with email {email!r} already exists"
            raise ValueError(msg) from exc
        return self.get_auth_user(user_id)

    def get_auth_user(self, user_id: str) -> AuthUser:
        row = self.conn.execute("SELECT * FROM auth_users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            msg = f"Account not found: {user_id}"
            raise KeyError(msg)
        return self._row_to_auth_user(row)

    def get_auth_credentials(self, email: str) -> tuple[AuthUser, str] | None:
        """Return ``(account, password_hash)`` for *email*, or None."""
        row = self.conn.execute("SELECT * FROM auth_users WHERE email = ?", (email,)).fetchone()
        if row is None:
            return None
        return self._row_to_auth_user(row), row["password_hash"]

    # -- Sessions --------------------------------------------------------------

    def create_session(self, user_id: str, token_hash: str, expires_at: str, *, user_agent: str = "") -> Session:
        session_id = uuid.uuid4().hex
        self.conn.execute(
            "INSERT INTO auth_sessions (id, user_id, token_hash, expires_at, created_at, user_agent) VALUES (?, ?, ?, ?, ?, ?)",
            (session_id, user_id, token_hash, expires_at, _now_iso(), user_agent),
        )
        self.conn.commit()
        row = self.conn.execute("SELECT * FROM auth_sessions WHERE id = ?", (session_id,)).fetchone()
        return self._row_to_session(row)

    def get_session_by_token_hash(self, token_hash: str) -> Session | None:
        """Look up a live session. Expired sessions are deleted and treated as absent."""
        row = self.conn.execute("SELECT * FROM auth_sessions WHERE token_hash = ?", (token_hash,)).fetchone()
        if row is None:
            return None
        if row["expires_at"] <= _now_iso():
            self.conn.execute("DELETE FROM auth_sessions WHERE id = ?", (row["id"],))
            self.conn.commit()
            return None
        return self._row_to_session(row)

    def delete_session_by_token_hash(self, token_hash: str) -> bool:
        cursor = self.conn.execute("DELETE FROM auth_sessions WHERE token_hash = ?", (token_hash,))
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_expired_sessions(self) -> int:
        cursor = self.conn.execute("DELETE FROM auth_sessions WHERE expires_at <= ?", (_now_iso(),))
        self.conn.commit()
        if cursor.rowcount:
            logger.info("Purged %d expired session(s)", cursor.rowcount)
        return cursor.rowcount

    # -- API keys --------------------------------------------------------------

    def create_api_key(
        self,
        user_id: str,
        *,
        name: str,
        key_hash: str,
        start: str,
        prefix: str,
        metadata: dict[str, Any] | None = None,
    ) -> ApiKey:
        key_id = uuid.uuid4().hex
        try:
            self.conn.execute(
                "INSERT INTO api_keys (id, user_id, name, start, prefix, key_hash, enabled, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)",
                (key_id, user_id, name, start, prefix, key_hash, json.dumps(metadata or {}), _now_iso()),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"Cannot create API key for account {user_id}: {exc}"
            raise ValueError(msg) from exc
        row = self.conn.execute("SELECT * FROM api_keys WHERE id = ?", (key_id,)).fetchone()
        return self._row_to_api_key(row)

    def list_api_keys(self, user_id: str) -> list[ApiKey]:
        rows = self.conn.execute("SELECT * FROM api_keys WHERE user_id = ? ORDER BY created_at, id", (user_id,)).fetchall()
        return [self._row_to_api_key(r) for r in rows]

    def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        """Return the enabled key matching *key_hash*, or None."""
        row = self.conn.execute("SELECT * FROM api_keys WHERE key_hash = ? AND enabled = 1", (key_hash,)).fetchone()
        return self._row_to_api_key(row) if row is not None else None

    def delete_api_key(self, key_id: str, *, user_id: str | None = None) -> None:
        """Delete a key. When *user_id* is given the key must belong to that account."""
        if user_id is None:
            cursor = self.conn.execute("DELETE FROM api_keys WHERE id = ?", (key_id,))
        else:
            cursor = self.conn.execute("DELETE FROM api_keys WHERE id = ? AND user_id = ?", (key_id, user_id))
        if cursor.rowcount == 0:
            self.conn.rollback()
            msg = f"API key not found: {key_id}"
            raise KeyError(msg)
        self.conn.commit()
