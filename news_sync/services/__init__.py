"""Services for news_sync."""

from .notifier import ChangeKind, ChangeNotifier
from .status import StatusObservable
from .sync_engine import SyncEngine, is_upload_candidate, newer_preference

__all__ = [
    "ChangeKind",
    "ChangeNotifier",
    "StatusObservable",
    "SyncEngine",
    "is_upload_candidate",
    "newer_preference",
]
