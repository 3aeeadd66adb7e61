"""Tests for accounts, sessions and API keys (AuthMixin + AuthService)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from issues_tracker.auth import (
    API_KEY_PREFIX,
    AuthError,
    AuthService,
    api_key_start,
    generate_api_key,
    hash_password,
    hash_token,
    verify_password,
)
from issues_tracker.core import TrackerDB


class TestPrimitives:
    def test_password_round_trip(self) -> None:
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_against_garbage_hash(self) -> None:
        assert verify_password("whatever", "not-a-bcrypt-hash") is False

    def test_api_key_shape(self) -> None:
        key = generate_api_key()
        assert key.startswith(API_KEY_PREFIX)
        assert len(key) == len(API_KEY_PREFIX) + 64
        assert api_key_start(key) == key[: len(API_KEY_PREFIX) + 6]

    def test_hash_token_is_stable(self) -> None:
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")


class TestAuthStore:
    def test_duplicate_account_email(self, db: TrackerDB) -> None:
        db.create_auth_user("A", "a@example.com", "hash")
        with pytest.raises(ValueError, match="already exists"):
            db.create_auth_user("B", "a@example.com", "hash")

    def test_credentials_lookup(self, db: TrackerDB) -> None:
        user = db.create_auth_user("A", "a@example.com", "the-hash")
        found = db.get_auth_credentials("a@example.com")
        assert found is not None
        assert found[0].id == user.id
        assert found[1] == "the-hash"
        assert db.get_auth_credentials("b@example.com") is None

    def test_expired_session_is_purged(self, db: TrackerDB) -> None:
        user = db.create_auth_user("A", "a@example.com", "h")
        past = (datetime.now(UTC) - timedelta(minutes=1)).isoformat()
        db.create_session(user.id, "token-hash", past)
        assert db.get_session_by_token_hash("token-hash") is None
        assert db.conn.execute("SELECT COUNT(*) FROM auth_sessions").fetchone()[0] == 0

    def test_delete_expired_sessions(self, db: TrackerDB) -> None:
        user = db.create_auth_user("A", "a@example.com", "h")
        past = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        future = (datetime.now(UTC) + timedelta(days=1)).isoformat()
        db.create_session(user.id, "old", past)
        db.create_session(user.id, "new", future)
        assert db.delete_expired_sessions() == 1
        assert db.get_session_by_token_hash("new") is not None

    def test_api_key_metadata_round_trip(self, db: TrackerDB) -> None:
        user = db.create_auth_user("A", "a@example.com", "h")
        key = db.create_api_key(user.id, name="k", key_hash="kh", start="issues_abcdef", prefix="issues_", metadata={"purpose": "default"})
        assert key.metadata == {"purpose": "default"}
        assert key.enabled is True
        assert db.get_api_key_by_hash("kh") is not None

    def test_delete_api_key_scoped_to_owner(self, db: TrackerDB) -> None:
        owner = db.create_auth_user("A", "a@example.com", "h")
        other = db.create_auth_user("B", "b@example.com", "h")
        key = db.create_api_key(owner.id, name="k", key_hash="kh", start="s", prefix="issues_")
        with pytest.raises(KeyError):
            db.delete_api_key(key.id, user_id=other.id)
        db.delete_api_key(key.id, user_id=owner.id)
        assert db.list_api_keys(owner.id) == []


class TestAuthService:
    def test_sign_up_issues_session_and_key(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        user, token, api_key = auth.sign_up("Agent Smith", "Smith@Example.com", "s3cretpass")
        assert user.email == "smith@example.com"
        assert token
        assert api_key is not None
        assert api_key["key"].startswith(API_KEY_PREFIX)
        assert api_key["name"] == "Agent Smith's API Key"
        stored = db.list_api_keys(user.id)
        assert len(stored) == 1
        assert stored[0].metadata["purpose"] == "default"

    def test_sign_up_duplicate_email(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        auth.sign_up("A", "a@example.com", "password1")
        with pytest.raises(AuthError) as exc_info:
            auth.sign_up("A2", "a@example.com", "password2")
        assert exc_info.value.status == 422
        assert exc_info.value.code == "USER_ALREADY_EXISTS"

    def test_sign_up_short_password(self, db: TrackerDB) -> None:
        with pytest.raises(ValueError, match="at least 8"):
            AuthService(db).sign_up("A", "a@example.com", "short")

    def test_sign_in(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        auth.sign_up("A", "a@example.com", "password1")
        user, token = auth.sign_in("a@example.com", "password1")
        found = auth.get_session(token)
        assert found is not None
        assert found[1].id == user.id

    @pytest.mark.parametrize(("email", "password"), [("a@example.com", "wrong-pass"), ("nobody@example.com", "password1")])
    def test_sign_in_rejects_bad_credentials(self, db: TrackerDB, email: str, password: str) -> None:
        auth = AuthService(db)
        auth.sign_up("A", "a@example.com", "password1")
        with pytest.raises(AuthError) as exc_info:
            auth.sign_in(email, password)
        assert exc_info.value.status == 401
        assert exc_info.value.code == "INVALID_EMAIL_OR_PASSWORD"

    def test_sign_out_ends_session(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        _, token, _ = auth.sign_up("A", "a@example.com", "password1")
        assert auth.sign_out(token) is True
        assert auth.get_session(token) is None

    def test_rotate_replaces_all_keys(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        user, _, first = auth.sign_up("A", "a@example.com", "password1")
        assert first is not None
        auth.issue_api_key(user, purpose="extra")
        rotated = auth.rotate_api_key(user)
        keys = db.list_api_keys(user.id)
        assert [k.id for k in keys] == [rotated["id"]]
        assert keys[0].metadata["purpose"] == "regenerated"
        assert auth.authenticate_api_key(first["key"]) is None
        authed = auth.authenticate_api_key(rotated["key"])
        assert authed is not None
        assert authed.id == user.id

    def test_authenticate_rejects_foreign_prefix(self, db: TrackerDB) -> None:
        assert AuthService(db).authenticate_api_key("sk-live-whatever") is None

    def test_sign_up_survives_key_failure(self, db: TrackerDB, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
        def fail(*args: Any, **kwargs: Any) -> None:
            raise RuntimeError("disk full")

        monkeypatch.setattr(db, "create_api_key", fail)
        auth = AuthService(db)
        with caplog.at_level(logging.ERROR, logger="issues_tracker.auth"):
            user, token, api_key = auth.sign_up("A", "a@example.com", "password1")
        assert api_key is None
        found = auth.get_session(token)
        assert found is not None
        assert found[1].id == user.id
        assert "Failed to create API key" in caplog.text

    def test_rotate_skips_failed_deletes(self, db: TrackerDB, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
        auth = AuthService(db)
        user, _, first = auth.sign_up("A", "a@example.com", "password1")
        assert first is not None

        def fail(*args: Any, **kwargs: Any) -> None:
            raise RuntimeError("locked")

        monkeypatch.setattr(db, "delete_api_key", fail)
        with caplog.at_level(logging.WARNING, logger="issues_tracker.auth"):
            rotated = auth.rotate_api_key(user)
        assert rotated["key"] != first["key"]
        assert {k.id for k in db.list_api_keys(user.id)} == {first["id"], rotated["id"]}
        assert "Failed to delete API key" in caplog.text

    def test_starting_a_session_purges_expired_ones(self, db: TrackerDB) -> None:
        auth = AuthService(db)
        other, _, _ = auth.sign_up("B", "b@example.com", "password1")
        past = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        db.create_session(other.id, "stale", past)
        auth.sign_up("A", "a@example.com", "password1")
        assert db.conn.execute("SELECT COUNT(*) FROM auth_sessions WHERE token_hash = 'stale'").fetchone()[0] == 0
