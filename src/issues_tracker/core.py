"""Core database operations for the issue tracker.

Single source of truth for all SQLite operations. The REST API, the CLI and
the test-suite import from this module; the MCP adapter reaches it only
through the REST API. Direct SQLite with WAL mode, schema owned by the
named-file migrations in ``issues_tracker/migrations/``.

Covers users, tags, issues (with tag attachment), auth accounts, login
sessions, and API keys.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from issues_tracker.db_auth import AuthMixin
from issues_tracker.db_issues import IssuesMixin
from issues_tracker.db_tags import TagsMixin
from issues_tracker.db_users import UsersMixin
from issues_tracker.types.core import ISOTimestamp

if TYPE_CHECKING:
    from issues_tracker.config import Settings
    from issues_tracker.types.core import (
        ApiKeyDict,
        AuthUserDict,
        IssueDict,
        SessionDict,
        TagDict,
        UserDict,
        UserRef,
    )

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class User:
    id: int
    name: str
    email: str
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> UserDict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": ISOTimestamp(self.created_at),
            "updated_at": ISOTimestamp(self.updated_at),
        }


@dataclass
class Tag:
    id: int
    name: str
    color: str = "#6b7280"
    created_at: str = ""

    def to_dict(self) -> TagDict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "created_at": ISOTimestamp(self.created_at),
        }


@dataclass
class Issue:
    id: int
    title: str
    description: str = ""
    status: str = "not_started"
    priority: str = "medium"
    assigned_user_id: int | None = None
    created_by_user_id: int | None = None
    created_at: str = ""
    updated_at: str = ""
    # Computed (joined, not stored on the row)
    assigned_user: UserRef | None = None
    created_by_user: UserRef | None = None
    tags: list[Tag] = field(default_factory=list)

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assigned_user_id": self.assigned_user_id,
            "created_by_user_id": self.created_by_user_id,
            "assigned_user": self.assigned_user,
            "created_by_user": self.created_by_user,
            "tags": [t.to_dict() for t in self.tags],
            "created_at": ISOTimestamp(self.created_at),
            "updated_at": ISOTimestamp(self.updated_at),
        }


@dataclass
class AuthUser:
    """A login account. Distinct from the ``User`` records issues are assigned to."""

    id: str
    name: str
    email: str
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> AuthUserDict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "createdAt": ISOTimestamp(self.created_at),
            "updatedAt": ISOTimestamp(self.updated_at),
        }


@dataclass
class Session:
    id: str
    user_id: str
    expires_at: str
    created_at: str = ""
    user_agent: str = ""

    def to_dict(self) -> SessionDict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "expiresAt": ISOTimestamp(self.expires_at),
            "createdAt": ISOTimestamp(self.created_at),
        }


@dataclass
class ApiKey:
    id: str
    user_id: str
    name: str
    start: str
    prefix: str = ""
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> ApiKeyDict:
        return {
            "id": self.id,
            "name": self.name,
            "start": self.start,
            "prefix": self.prefix,
            "userId": self.user_id,
            "enabled": self.enabled,
            "metadata": self.metadata,
            "createdAt": ISOTimestamp(self.created_at),
        }


# ---------------------------------------------------------------------------
# TrackerDB
# ---------------------------------------------------------------------------


class TrackerDB(UsersMixin, TagsMixin, IssuesMixin, AuthMixin):
    """Direct SQLite operations. Importable by the API, the CLI and tests."""

    def __init__(self, db_path: str | Path, *, check_same_thread: bool = True) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_settings(cls, settings: Settings, *, check_same_thread: bool = True) -> TrackerDB:
        """Open the database named by ``DATABASE_PATH`` and apply pending migrations."""
        db = cls(settings.database_path, check_same_thread=check_same_thread)
        db.initialize()
        return db

    def __enter__(self) -> TrackerDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> list[str]:
        """Apply pending migrations. Returns the names applied by this call."""
        from issues_tracker.migrations import apply_pending_migrations

        return apply_pending_migrations(self.conn)

    def get_schema_sql(self) -> str:
        """Every table's CREATE statement, ordered by table name, one per line."""
        rows = self.conn.execute("SELECT sql FROM sqlite_master WHERE type='table' AND sql IS NOT NULL ORDER BY name").fetchall()
        return "\n".join(f"{r['sql']};" for r in rows)

    def ping(self) -> bool:
        """Run ``SELECT 1``. Raises ``sqlite3.Error`` when the database is unusable."""
        row = self.conn.execute("SELECT 1").fetchone()
        return row is not None and row[0] == 1

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
