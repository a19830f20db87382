"""Data models for news_sync.

This module defines the four synchronized record kinds (read markers,
favorites, custom sources and preferences), the sync status values and the
report returned by a full sync cycle.

Timestamps are timezone-aware UTC datetimes and are serialized as ISO 8601
strings.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type

from news_sync.errors import RecordDecodeError


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise RecordDecodeError(f"Invalid timestamp: {value!r}") from e
    else:
        raise RecordDecodeError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(data: Dict[str, Any], name: str, kind: type = str) -> Any:
    if not isinstance(data, dict):
        raise RecordDecodeError(f"Expected an object, got {type(data).__name__}")
    if name not in data:
        raise RecordDecodeError(f"Missing field '{name}'")
    value = data[name]
    if not isinstance(value, kind):
        raise RecordDecodeError(
            f"Field '{name}' must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


@dataclass(frozen=True)
class ReadMarker:
    """An article the user has read on some device."""

    article_id: str
    title: str
    source: str
    read_date: datetime

    @property
    def record_id(self) -> str:
        return self.article_id

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.read_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "article_id": self.article_id,
            "title": self.title,
            "source": self.source,
            "read_date": self.read_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadMarker":
        return cls(
            article_id=_require(data, "article_id"),
            title=_require(data, "title"),
            source=_require(data, "source"),
            read_date=parse_timestamp(_require(data, "read_date")),
        )


@dataclass(frozen=True)
class Favorite:
    """An article the user saved as a favorite."""

    article_id: str
    title: str
    source: str
    category: str
    saved_date: datetime

    @property
    def record_id(self) -> str:
        return self.article_id

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.saved_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "article_id": self.article_id,
            "title": self.title,
            "source": self.source,
            "category": self.category,
            "saved_date": self.saved_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Favorite":
        return cls(
            article_id=_require(data, "article_id"),
            title=_require(data, "title"),
            source=_require(data, "source"),
            category=_require(data, "category"),
            saved_date=parse_timestamp(_require(data, "saved_date")),
        )


@dataclass(frozen=True)
class CustomSource:
    """A user-added news source.

    Custom sources carry no modification timestamp, so every local source is
    uploaded on every cycle and downloads overwrite unconditionally.
    """

    id: str
    name: str
    url: str
    category: str
    is_enabled: bool = True

    @classmethod
    def create(cls, name: str, url: str, category: str) -> "CustomSource":
        """Create a new enabled source with a generated id."""
        return cls(id=str(uuid.uuid4()), name=name, url=url, category=category)

    @property
    def record_id(self) -> str:
        return self.id

    @property
    def timestamp(self) -> Optional[datetime]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "category": self.category,
            "is_enabled": self.is_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomSource":
        return cls(
            id=_require(data, "id"),
            name=_require(data, "name"),
            url=_require(data, "url"),
            category=_require(data, "category"),
            is_enabled=_require(data, "is_enabled", bool),
        )


@dataclass(frozen=True)
class Preference:
    """A key/value user setting."""

    key: str
    value: str
    modified_date: datetime

    @property
    def record_id(self) -> str:
        return self.key

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.modified_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "modified_date": self.modified_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preference":
        return cls(
            key=_require(data, "key"),
            value=_require(data, "value"),
            modified_date=parse_timestamp(_require(data, "modified_date")),
        )


class RecordKind(str, Enum):
    """The four independently synchronized record collections."""

    READ_MARKER = "read_marker"
    FAVORITE = "favorite"
    CUSTOM_SOURCE = "custom_source"
    PREFERENCE = "preference"

    @property
    def record_class(self) -> Type:
        return _RECORD_CLASSES[self]

    @property
    def storage_key(self) -> str:
        """Stable key the collection is persisted under."""
        return _STORAGE_KEYS[self]

    @classmethod
    def of(cls, record: Any) -> "RecordKind":
        """Return the kind of a record instance."""
        for kind, record_class in _RECORD_CLASSES.items():
            if isinstance(record, record_class):
                return kind
        raise TypeError(f"Not a synchronized record: {type(record).__name__}")


_RECORD_CLASSES = {
    RecordKind.READ_MARKER: ReadMarker,
    RecordKind.FAVORITE: Favorite,
    RecordKind.CUSTOM_SOURCE: CustomSource,
    RecordKind.PREFERENCE: Preference,
}

_STORAGE_KEYS = {
    RecordKind.READ_MARKER: "read_markers",
    RecordKind.FAVORITE: "favorites",
    RecordKind.CUSTOM_SOURCE: "custom_sources",
    RecordKind.PREFERENCE: "preferences",
}

# Collections in the order a cycle processes them
ALL_KINDS = (
    RecordKind.READ_MARKER,
    RecordKind.FAVORITE,
    RecordKind.CUSTOM_SOURCE,
    RecordKind.PREFERENCE,
)


class SyncState(str, Enum):
    """States of the sync status machine."""

    IDLE = "idle"
    SYNCING = "syncing"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SyncStatus:
    """Current sync status.

    ``count`` is meaningful for UPLOADING and DOWNLOADING, ``message`` for
    ERROR.
    """

    state: SyncState
    count: int = 0
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> "SyncStatus":
        return cls(SyncState.IDLE)

    @classmethod
    def syncing(cls) -> "SyncStatus":
        return cls(SyncState.SYNCING)

    @classmethod
    def uploading(cls, count: int) -> "SyncStatus":
        return cls(SyncState.UPLOADING, count=count)

    @classmethod
    def downloading(cls, count: int) -> "SyncStatus":
        return cls(SyncState.DOWNLOADING, count=count)

    @classmethod
    def error(cls, message: str) -> "SyncStatus":
        return cls(SyncState.ERROR, message=message)

    @classmethod
    def complete(cls) -> "SyncStatus":
        return cls(SyncState.COMPLETE)

    @property
    def in_progress(self) -> bool:
        return self.state in (
            SyncState.SYNCING,
            SyncState.UPLOADING,
            SyncState.DOWNLOADING,
        )

    def describe(self) -> str:
        """Short human-readable form for status displays."""
        if self.state in (SyncState.UPLOADING, SyncState.DOWNLOADING):
            return f"{self.state.value} ({self.count})"
        if self.state == SyncState.ERROR:
            return f"error: {self.message}"
        return self.state.value


@dataclass
class SyncReport:
    """Outcome of one full sync cycle."""

    success: bool = False
    rejected: bool = False
    upload_candidates: int = 0
    uploaded: int = 0
    upload_failures: int = 0
    accepted: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def downloaded(self) -> int:
        """Total records accepted into the local store."""
        return sum(self.accepted.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "rejected": self.rejected,
            "upload_candidates": self.upload_candidates,
            "uploaded": self.uploaded,
            "upload_failures": self.upload_failures,
            "accepted": dict(self.accepted),
            "downloaded": self.downloaded,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
