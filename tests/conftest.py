"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from sweeper.database import Database

# Configure pytest-asyncio to auto-detect async tests
pytest_plugins = ("pytest_asyncio",)


class FakeClock:
    """Controllable naive-UTC clock injected in place of ``utcnow``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at Monday 2024-01-15 10:00 UTC."""
    return FakeClock(datetime(2024, 1, 15, 10, 0))


@pytest_asyncio.fixture
async def test_db():
    """Create a fresh in-memory database for each test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init_db()
    yield db
    await db.close()
