"""Sync status observable.

Holds the values a status display needs: the current state, the last
successful sync time, whether the remote is reachable and the last error.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from news_sync.models.schemas import SyncState, SyncStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


class StatusObservable:
    """Current sync status with change listeners."""

    def __init__(self):
        self._status = SyncStatus.idle()
        self._listeners: List[StatusListener] = []
        self.last_sync_date: Optional[datetime] = None
        self.remote_available: bool = False
        self.last_error_message: Optional[str] = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    def set_status(self, status: SyncStatus) -> None:
        """Move to a new status and notify listeners.

        An ERROR status records its message as the last error; SYNCING clears it.
        """
        if status.state == SyncState.ERROR:
            self.last_error_message = status.message
        elif status.state == SyncState.SYNCING:
            self.last_error_message = None

        self._status = status
        logger.debug(f"Sync status: {status.describe()}")

        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener called on every status change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> Dict[str, Any]:
        """Status values as a JSON-able dict."""
        return {
            "status": self._status.state.value,
            "status_text": self._status.describe(),
            "count": self._status.count,
            "last_sync_date": self.last_sync_date.isoformat() if self.last_sync_date else None,
            "remote_available": self.remote_available,
            "last_error_message": self.last_error_message,
        }
