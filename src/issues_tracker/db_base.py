"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, Protocol

IssueStatus = Literal["not_started", "in_progress", "done"]
IssuePriority = Literal["low", "medium", "high", "urgent"]

VALID_STATUSES: tuple[str, ...] = ("not_started", "in_progress", "done")
VALID_PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "urgent")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _placeholders(values: list[int] | list[str]) -> str:
    return ",".join("?" * len(values))


class DBMixinProtocol(Protocol):
    """Shared attributes that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check ``self.conn``
    without ``type: ignore`` on every call. Actual implementations are
    provided by TrackerDB at composition time.
    """

    db_path: Path
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...
