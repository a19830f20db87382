"""Change notifier.

Publish point the sync engine uses to tell observers that a record arrived
from another device. Delivery is best-effort and at-most-once: only observers
registered at publish time see an event, and nothing is stored for replay.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Events published when a downloaded record is accepted."""

    FAVORITE_ARRIVED = "favorite_arrived"
    CUSTOM_SOURCE_ARRIVED = "custom_source_arrived"
    PREFERENCE_ARRIVED = "preference_arrived"


Observer = Callable[[Any], Any]


class ChangeNotifier:
    """Observer registry keyed by event kind.

    Observers may be plain callables or coroutine functions. An observer that
    raises is logged and skipped; the others still receive the event.
    """

    def __init__(self):
        self._observers: Dict[ChangeKind, List[Observer]] = {kind: [] for kind in ChangeKind}

    def subscribe(self, kind: ChangeKind, observer: Observer) -> Callable[[], None]:
        """Register an observer for one event kind.

        Args:
            kind: Event kind to observe
            observer: Called with the accepted record

        Returns:
            Callable that removes the registration
        """
        self._observers[kind].append(observer)

        def unsubscribe() -> None:
            if observer in self._observers[kind]:
                self._observers[kind].remove(observer)

        return unsubscribe

    def observer_count(self, kind: ChangeKind) -> int:
        return len(self._observers[kind])

    async def publish(self, kind: ChangeKind, record: Any) -> int:
        """Deliver an event to every currently registered observer.

        Args:
            kind: Event kind
            record: The accepted record

        Returns:
            Number of observers that handled the event without error
        """
        delivered = 0
        # Copy so observers may unsubscribe while being notified
        for observer in list(self._observers[kind]):
            try:
                result = observer(record)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Observer for {kind.value} failed: {e}", exc_info=True)
        return delivered
