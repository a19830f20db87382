"""Remote store contract.

The sync engine talks to a remote backend only through this interface, so it
stays backend-agnostic. Adapters do not retry; retry policy belongs to the
engine and its callers.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, List

from news_sync.models.schemas import RecordKind

# The remote keeps the first record written for an identity in these kinds;
# later upserts of the same identity succeed without changing it.
APPEND_ONLY_KINDS = frozenset({RecordKind.READ_MARKER, RecordKind.FAVORITE})


class Availability(str, Enum):
    """Account/session state reported by the remote."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class RemoteStore(ABC):
    """Capability interface for a remote synchronization backend.

    All methods raise ``RemoteError`` on failure and ``RemoteUnavailableError``
    when the backend cannot be reached at all.
    """

    @abstractmethod
    async def check_availability(self) -> Availability:
        """Report whether the account can be used for syncing."""

    @abstractmethod
    async def ensure_workspace(self) -> None:
        """Create the workspace (zone) records are scoped to, if missing."""

    @abstractmethod
    async def subscribe_to_changes(self, kinds: Iterable[RecordKind]) -> None:
        """Register for change notifications on the given collections."""

    @abstractmethod
    async def upsert(self, record: Any) -> None:
        """Create or replace a record, keyed by its kind and identity.

        Records of APPEND_ONLY_KINDS are only created, never replaced.
        """

    @abstractmethod
    async def query_all(self, kind: RecordKind) -> List[Any]:
        """Fetch every record of one collection."""

    async def close(self) -> None:
        """Release any resources held by the adapter."""
