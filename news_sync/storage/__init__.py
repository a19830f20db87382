"""Storage layer for news_sync."""

from .database import (
    LAST_SYNC_KEY,
    PENDING_UPLOADS_KEY,
    LocalStore,
    init_database,
)

__all__ = [
    "LAST_SYNC_KEY",
    "PENDING_UPLOADS_KEY",
    "LocalStore",
    "init_database",
]
