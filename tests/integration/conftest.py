"""Fixtures for integration tests."""

import logging

import pytest

from news_sync.logging_config import logger as package_logger
from news_sync.remote.memory import InMemoryRemoteStore
from news_sync.services.sync_engine import SyncEngine
from news_sync.storage.database import LocalStore
from news_sync.tools.sync_tools import create_sync_tools


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo setup_logging so later tests see records through caplog."""
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def account():
    """One remote account shared by several devices."""
    return InMemoryRemoteStore()


@pytest.fixture
async def make_device(account, clock):
    """Factory for devices (engines) attached to the shared account."""
    stores = []

    async def factory() -> SyncEngine:
        store = LocalStore(":memory:")
        await store.connection()
        stores.append(store)
        engine = SyncEngine(store, account, clock=clock, complete_display_delay=0)
        await engine.start()
        return engine

    yield factory

    for store in stores:
        await store.close()


@pytest.fixture
async def tools(make_device):
    """Tool functions keyed by name, bound to one device."""
    engine = await make_device()
    return {func.__name__: func for func in create_sync_tools(engine)}
