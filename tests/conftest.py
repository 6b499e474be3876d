"""Shared test fixtures and configuration.

Sets up fake environment variables before any src import, and provides a
temp SQLite store plus a service driven by a controllable clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_listify.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a ListifyDB instance backed by a temp file."""
    from src.data.db import ListifyDB
    return ListifyDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(store, clock):
    """Return a ListifyService in UTC driven by the fake clock."""
    from src.core.listify_service import ListifyService
    return ListifyService(store, tz=timezone.utc, clock=clock)
