"""Shared pytest fixtures for issues-tracker tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from click.testing import CliRunner

from issues_tracker.core import TrackerDB


@dataclass
class PopulatedDB:
    """A TrackerDB plus the IDs of the rows ``populated_db`` created."""

    db: TrackerDB
    ids: dict[str, int] = field(default_factory=dict)


@pytest.fixture
def db(tmp_path: Path) -> Generator[TrackerDB, None, None]:
    """Fresh, migrated TrackerDB for each test."""
    d = TrackerDB(tmp_path / "tracker.db", check_same_thread=False)
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def populated_db(db: TrackerDB) -> PopulatedDB:
    """TrackerDB pre-populated with a representative data set.

    Creates:
    - 2 users (alice, bob)
    - 2 tags (bug, frontend)
    - 3 issues: A (alice, urgent, in_progress, [bug]),
      B (bob, low, not_started, [frontend]), C (unassigned, done, no tags)
    """
    alice = db.create_user("Alice", "alice@example.com")
    bob = db.create_user("Bob", "bob@example.com")
    bug = db.create_tag("bug", "#ef4444")
    frontend = db.create_tag("frontend")
    a = db.create_issue(
        "Login button broken",
        description="Clicking does nothing",
        status="in_progress",
        priority="urgent",
        assigned_user_id=alice.id,
        created_by_user_id=bob.id,
        tag_ids=[bug.id],
    )
    b = db.create_issue("Dark mode", priority="low", assigned_user_id=bob.id, tag_ids=[frontend.id])
    c = db.create_issue("Write release notes", status="done")
    return PopulatedDB(
        db=db,
        ids={
            "alice": alice.id,
            "bob": bob.id,
            "bug": bug.id,
            "frontend": frontend.id,
            "a": a.id,
            "b": b.id,
            "c": c.id,
        },
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
