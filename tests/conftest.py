"""Shared test fixtures for all test modules."""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest

from drainmetrics.adapters.storage.in_memory import InMemoryMetricsStorage
from drainmetrics.adapters.storage.sqlite_metrics import SQLiteMetricsStorage
from drainmetrics.app import create_app
from drainmetrics.config import Settings

TOKEN = "s3cret-token"


@pytest.fixture
def metrics_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for metrics storage tests."""
    return str(tmp_path / "metrics.db")


@pytest.fixture
async def sqlite_storage() -> AsyncGenerator[SQLiteMetricsStorage, None]:
    """In-memory SQLite store, closed after the test."""
    storage = SQLiteMetricsStorage(":memory:")
    yield storage
    await storage.close()


@pytest.fixture
def memory_storage() -> InMemoryMetricsStorage:
    """Fixture providing an empty in-memory metrics store."""
    return InMemoryMetricsStorage()


@pytest.fixture
def settings() -> Settings:
    return Settings(token=TOKEN, database_path=":memory:")


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
async def app_with_storage(settings: Settings, memory_storage: InMemoryMetricsStorage):
    """App backed by the in-memory store.

    The ASGI transport does not run the lifespan, so tests drive the
    committer and the sweeper by hand through ``app.state``.
    """
    return create_app(settings, storage=memory_storage)


@pytest.fixture
async def client(app_with_storage, asgi_test_client):
    async with asgi_test_client(app_with_storage) as client:
        yield client
