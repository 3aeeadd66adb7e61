"""Fixtures for REST API tests (FastAPI over httpx.ASGITransport)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import issues_tracker.api as api_module
from issues_tracker.api import create_app
from issues_tracker.config import Settings
from issues_tracker.core import TrackerDB
from tests.conftest import PopulatedDB


@pytest.fixture
def api_db(populated_db: PopulatedDB) -> PopulatedDB:
    """Populated DB shared by the REST fixtures."""
    return populated_db


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="test")


@pytest.fixture
async def client(api_db: PopulatedDB, test_settings: Settings) -> AsyncIterator[AsyncClient]:
    """Client for an app with the CRUD routes open (no credentials needed)."""
    api_module._db = api_db.db
    app = create_app(test_settings, skip_auth=True)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None


@pytest.fixture
async def auth_client(db: TrackerDB, test_settings: Settings) -> AsyncIterator[AsyncClient]:
    """Client for an app that requires an API key or session on the CRUD routes."""
    api_module._db = db
    app = create_app(test_settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None

