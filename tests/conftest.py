"""Shared fixtures for news_sync tests."""

from datetime import datetime, timedelta, timezone

import pytest

from news_sync.remote.memory import InMemoryRemoteStore
from news_sync.services.notifier import ChangeNotifier
from news_sync.services.sync_engine import SyncEngine
from news_sync.storage.database import LocalStore


T0 = datetime(2026, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = T0, step: float = 1.0):
        self.now = start
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def anyio_backend():
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def store():
    """In-memory local store."""
    local_store = LocalStore(":memory:")
    await local_store.connection()
    yield local_store
    await local_store.close()


@pytest.fixture
def remote():
    return InMemoryRemoteStore()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def engine(store, remote, notifier, clock):
    """Engine with no completion delay, wired to in-memory stores."""
    return SyncEngine(
        store,
        remote,
        notifier,
        clock=clock,
        complete_display_delay=0,
    )
