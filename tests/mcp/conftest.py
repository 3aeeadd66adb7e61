"""Fixtures for MCP adapter tests.

The adapter never touches SQLite: its ``ApiClient`` talks to an in-process
REST app through ``httpx.ASGITransport``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from typing import Any

import httpx
import pytest

import issues_tracker.api as api_module
from issues_tracker.api import create_app
from issues_tracker.api_client import ApiClient
from issues_tracker.config import Settings
from tests.conftest import PopulatedDB


@pytest.fixture
def rest_app(populated_db: PopulatedDB) -> Generator[Any, None, None]:
    """REST app with the CRUD routes open, backed by the populated DB."""
    api_module._db = populated_db.db
    yield create_app(Settings(environment="test"), skip_auth=True)
    api_module._db = None


@pytest.fixture
async def api_client(rest_app: Any) -> AsyncIterator[ApiClient]:
    async with ApiClient("http://test/api", transport=httpx.ASGITransport(app=rest_app)) as c:
        yield c
