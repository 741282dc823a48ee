"""
pytest configuration and shared fixtures for the Report Analytics tests.

Key concern: tests must not require a live MongoDB. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client / db_client.db = None (disconnected) so the
     health check reports "disconnected" and analytics routes answer 503
     unless a test overrides get_db with a FakeDB (see tests/fakes.py).
  3. Resetting the slowapi in-memory counters so the per-IP limits on the
     analytics routes never leak between tests.
"""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REPORT_TIMEZONE", "UTC")


@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("report_analytics.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("report_analytics.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import report_analytics.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from report_analytics.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """
    HTTPX async test client wired to the FastAPI app.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from report_analytics.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def now():
    """Fixed reference instant: 19 Oct 2026, 12:00 UTC (a Monday)."""
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def make_ctx(now):
    """Build a ResolverContext over a FakeDB with a fixed clock."""
    from report_analytics.services.context import ResolverContext

    def _make(db, tz: str = "UTC", **overrides):
        zone = ZoneInfo(tz)
        return ResolverContext(db=db, tz=zone, now=now.astimezone(zone), **overrides)

    return _make
