"""Remote store adapters for news_sync."""

from .base import APPEND_ONLY_KINDS, Availability, RemoteStore
from .http_remote import HttpRemoteStore
from .memory import InMemoryRemoteStore

__all__ = [
    "APPEND_ONLY_KINDS",
    "Availability",
    "RemoteStore",
    "HttpRemoteStore",
    "InMemoryRemoteStore",
]
