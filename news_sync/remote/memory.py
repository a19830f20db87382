"""In-process remote store.

One ``InMemoryRemoteStore`` plays the role of a single account: several
devices (engines) can share an instance to exercise multi-device scenarios.
Failure injection hooks make partial failures reproducible.
"""

import logging
from typing import Any, Dict, Iterable, List, Set, Tuple

from news_sync.errors import RemoteError, RemoteUnavailableError
from news_sync.models.schemas import ALL_KINDS, RecordKind
from news_sync.remote.base import APPEND_ONLY_KINDS, Availability, RemoteStore

logger = logging.getLogger(__name__)


class InMemoryRemoteStore(RemoteStore):
    """Remote store kept in memory.

    Attributes:
        availability: Value reported by check_availability
        reachable: When False every call raises RemoteUnavailableError
        failing_upserts: (kind, record_id) pairs whose upsert raises RemoteError
        failing_queries: Kinds whose query_all raises RemoteError
        upsert_calls: Every (kind, record_id) passed to upsert, in order
    """

    def __init__(self, availability: Availability = Availability.AVAILABLE):
        self.availability = availability
        self.reachable = True
        self.workspace_ready = False
        self.subscriptions: Set[RecordKind] = set()
        self.failing_upserts: Set[Tuple[RecordKind, str]] = set()
        self.failing_queries: Set[RecordKind] = set()
        self.upsert_calls: List[Tuple[RecordKind, str]] = []
        self._records: Dict[RecordKind, Dict[str, Any]] = {kind: {} for kind in ALL_KINDS}

    def _check_reachable(self) -> None:
        if not self.reachable:
            raise RemoteUnavailableError("Remote store is unreachable")

    async def check_availability(self) -> Availability:
        if not self.reachable:
            return Availability.UNKNOWN
        return self.availability

    async def ensure_workspace(self) -> None:
        self._check_reachable()
        self.workspace_ready = True

    async def subscribe_to_changes(self, kinds: Iterable[RecordKind]) -> None:
        self._check_reachable()
        self.subscriptions.update(kinds)

    async def upsert(self, record: Any) -> None:
        self._check_reachable()
        kind = RecordKind.of(record)
        self.upsert_calls.append((kind, record.record_id))
        if (kind, record.record_id) in self.failing_upserts:
            raise RemoteError(f"Upsert of {kind.value} '{record.record_id}' failed")
        if kind in APPEND_ONLY_KINDS and record.record_id in self._records[kind]:
            return
        self._records[kind][record.record_id] = record

    async def query_all(self, kind: RecordKind) -> List[Any]:
        self._check_reachable()
        if kind in self.failing_queries:
            raise RemoteError(f"Query of {kind.value} records failed")
        return list(self._records[kind].values())

    def put(self, record: Any) -> None:
        """Store a record directly, bypassing failure injection."""
        self._records[RecordKind.of(record)][record.record_id] = record

    def records(self, kind: RecordKind) -> Dict[str, Any]:
        """Current remote records of one kind, keyed by identity."""
        return dict(self._records[kind])
