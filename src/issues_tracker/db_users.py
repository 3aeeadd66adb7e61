"""UsersMixin: user CRUD.

All methods access ``self.conn`` via Python's MRO when composed into
``TrackerDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from issues_tracker.db_base import DBMixinProtocol, _now_iso

if TYPE_CHECKING:
    from issues_tracker.core import User

logger = logging.getLogger(__name__)


class UsersMixin(DBMixinProtocol):
    """User CRUD. Emails are unique; deleting a user unassigns their issues."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        from issues_tracker.core import User

        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def create_user(self, name: str, email: str) -> User:
        if not name or not name.strip():
            msg = "Name cannot be empty"
            raise ValueError(msg)
        if not email or not email.strip():
            msg = "Email cannot be empty"
            raise ValueError(msg)
        now = _now_iso()
        try:
            cursor = self.conn.execute(
                "INSERT INTO users (name, email, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (name.strip(), email.strip(), now, now),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"A user with email {email!r} already exists"
            raise ValueError(msg) from exc
        user_id = cursor.lastrowid
        assert user_id is not None
        return self.get_user(user_id)

    def get_user(self, user_id: int) -> User:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            msg = f"User not found: {user_id}"
            raise KeyError(msg)
        return self._row_to_user(row)

    def list_users(self) -> list[User]:
        rows = self.conn.execute("SELECT * FROM users ORDER BY name COLLATE NOCASE, id").fetchall()
        return [self._row_to_user(r) for r in rows]

    def update_user(self, user_id: int, *, name: str | None = None, email: str | None = None) -> User:
        current = self.get_user(user_id)
        new_name = current.name if name is None else name.strip()
        new_email = current.email if email is None else email.strip()
        if not new_name:
            msg = "Name cannot be empty"
            raise ValueError(msg)
        if not new_email:
            msg = "Email cannot be empty"
            raise ValueError(msg)
        if new_name == current.name and new_email == current.email:
            return current
        try:
            self.conn.execute(
                "UPDATE users SET name = ?, email = ?, updated_at = ? WHERE id = ?",
                (new_name, new_email, _now_iso(), user_id),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"A user with email {new_email!r} already exists"
            raise ValueError(msg) from exc
        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> None:
        cursor = self.conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        if cursor.rowcount == 0:
            self.conn.rollback()
            msg = f"User not found: {user_id}"
            raise KeyError(msg)
        self.conn.commit()
        logger.info("Deleted user %s", user_id)

    def _user_exists(self, user_id: int) -> bool:
        return self.conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is not None
