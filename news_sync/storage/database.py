"""Local store for news_sync.

This module provides the async SQLite key-value store holding the four
synchronized collections, the last successful sync timestamp and the
records whose upload failed.
Database location: ~/.news_sync/news_sync.db (or NEWS_SYNC_DB_PATH env var)

Each collection is stored as one JSON document under a stable key, so other
processes (widgets, assistants) can read the same snapshot without going
through the sync engine.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import aiosqlite

from news_sync.errors import LocalStoreError, RecordDecodeError
from news_sync.models.schemas import ALL_KINDS, RecordKind, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"
PENDING_UPLOADS_KEY = "pending_uploads"


def _get_db_path() -> Path:
    """Get the database path, respecting NEWS_SYNC_DB_PATH env var for testing."""
    env_path = os.environ.get("NEWS_SYNC_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path.home() / ".news_sync" / "news_sync.db"


async def init_database(db: aiosqlite.Connection) -> None:
    """Initialize database tables if they don't exist.

    Args:
        db: Open database connection
    """
    await db.execute("""
        CREATE TABLE IF NOT EXISTS sync_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP
        )
    """)
    await db.commit()


class LocalStore:
    """Durable per-device store for the synchronized collections.

    Writes to a collection replace its whole document in a single statement,
    so a write is either fully visible or not at all. Read-modify-write
    operations on the same collection are serialized by a per-collection lock.
    """

    def __init__(self, db_path: Union[str, Path, None] = None):
        """Initialize the store.

        Args:
            db_path: SQLite file path, or ":memory:". Defaults to
                     ~/.news_sync/news_sync.db (or NEWS_SYNC_DB_PATH).
        """
        self.db_path = str(db_path) if db_path is not None else str(_get_db_path())
        self._db: Optional[aiosqlite.Connection] = None
        self._connect_lock = asyncio.Lock()
        self._pending_lock = asyncio.Lock()
        self._locks: Dict[RecordKind, asyncio.Lock] = {
            kind: asyncio.Lock() for kind in ALL_KINDS
        }

    async def __aenter__(self) -> "LocalStore":
        await self.connection()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connection(self) -> aiosqlite.Connection:
        """Get or open the database connection.

        Returns:
            Active database connection
        """
        if self._db is None:
            async with self._connect_lock:
                if self._db is None:
                    if self.db_path != ":memory:":
                        # Ensure directory exists
                        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                    try:
                        db = await aiosqlite.connect(self.db_path)
                        db.row_factory = aiosqlite.Row
                        await init_database(db)
                    except (aiosqlite.Error, OSError) as e:
                        raise LocalStoreError(f"Cannot open local store at {self.db_path}: {e}") from e
                    self._db = db
                    logger.debug(f"Opened local store at {self.db_path}")
        return self._db

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def _read(self, key: str) -> Optional[str]:
        db = await self.connection()
        try:
            cursor = await db.execute("SELECT value FROM sync_state WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise LocalStoreError(f"Failed to read '{key}': {e}") from e
        return row["value"] if row is not None else None

    async def _write(self, key: str, value: str) -> None:
        db = await self.connection()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO sync_state (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, utcnow().isoformat()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise LocalStoreError(f"Failed to write '{key}': {e}") from e

    async def _load(self, kind: RecordKind) -> List[Any]:
        """Decode a collection, treating undecodable data as absent."""
        raw = await self._read(kind.storage_key)
        if raw is None:
            return []

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding undecodable {kind.storage_key} collection: {e}")
            return []

        if not isinstance(items, list):
            logger.warning(f"Discarding malformed {kind.storage_key} collection")
            return []

        records = []
        for item in items:
            try:
                records.append(kind.record_class.from_dict(item))
            except RecordDecodeError as e:
                logger.warning(f"Skipping undecodable {kind.value} record: {e}")
        return records

    async def _save(self, kind: RecordKind, records: List[Any]) -> None:
        payload = json.dumps([record.to_dict() for record in records])
        await self._write(kind.storage_key, payload)

    async def get_all(self, kind: RecordKind) -> List[Any]:
        """Get every record in a collection.

        Args:
            kind: Collection to read

        Returns:
            List of records, empty if the collection is missing or undecodable
        """
        return await self._load(kind)

    async def get(self, kind: RecordKind, record_id: str) -> Optional[Any]:
        """Get a single record by identity.

        Returns:
            The record if found, None otherwise
        """
        for record in await self._load(kind):
            if record.record_id == record_id:
                return record
        return None

    async def append(self, record: Any) -> bool:
        """Add a record unless one with the same identity exists.

        Args:
            record: ReadMarker or Favorite (or any record kind)

        Returns:
            True if the record was added, False if the identity already existed
        """
        kind = RecordKind.of(record)
        async with self._locks[kind]:
            records = await self._load(kind)
            if any(existing.record_id == record.record_id for existing in records):
                return False
            records.append(record)
            await self._save(kind, records)
            return True

    async def upsert_by_id(
        self,
        record: Any,
        accept: Optional[Callable[[Any, Any], bool]] = None,
    ) -> bool:
        """Insert a record or replace the one with the same identity.

        Args:
            record: Record to write
            accept: Optional predicate ``accept(existing, incoming)``; when given,
                    an existing record is only replaced if it returns True

        Returns:
            True if the record was written, False if an existing record was kept
        """
        kind = RecordKind.of(record)
        async with self._locks[kind]:
            records = await self._load(kind)
            for index, existing in enumerate(records):
                if existing.record_id == record.record_id:
                    if accept is not None and not accept(existing, record):
                        return False
                    records[index] = record
                    break
            else:
                records.append(record)
            await self._save(kind, records)
            return True

    async def get_last_sync(self) -> Optional[datetime]:
        """Get the last successful sync time, None if never synced."""
        raw = await self._read(LAST_SYNC_KEY)
        if raw is None:
            return None
        try:
            return parse_timestamp(json.loads(raw))
        except (json.JSONDecodeError, RecordDecodeError) as e:
            logger.warning(f"Ignoring undecodable last sync timestamp: {e}")
            return None

    async def set_last_sync(self, timestamp: datetime) -> datetime:
        """Persist the last successful sync time.

        The stored value never moves backwards.

        Returns:
            The value now stored
        """
        current = await self.get_last_sync()
        if current is not None and timestamp < current:
            logger.debug(f"Keeping last sync {current.isoformat()} over older {timestamp.isoformat()}")
            return current
        await self._write(LAST_SYNC_KEY, json.dumps(timestamp.isoformat()))
        return timestamp

    async def _load_pending(self) -> Set[Tuple[RecordKind, str]]:
        raw = await self._read(PENDING_UPLOADS_KEY)
        if raw is None:
            return set()

        try:
            items = json.loads(raw)
            return {(RecordKind(item["kind"]), str(item["id"])) for item in items}
        except (json.JSONDecodeError, TypeError, KeyError, ValueError) as e:
            logger.warning(f"Discarding undecodable pending uploads: {e}")
            return set()

    async def _save_pending(self, pending: Set[Tuple[RecordKind, str]]) -> None:
        payload = json.dumps([
            {"kind": kind.value, "id": record_id}
            for kind, record_id in sorted(pending, key=lambda item: (item[0].value, item[1]))
        ])
        await self._write(PENDING_UPLOADS_KEY, payload)

    async def get_pending_uploads(self) -> Set[Tuple[RecordKind, str]]:
        """Get the identities of records whose last upload failed.

        Returns:
            Set of (kind, record_id) pairs, empty if none or undecodable
        """
        return await self._load_pending()

    async def add_pending_upload(self, kind: RecordKind, record_id: str) -> None:
        """Remember a record whose upload failed so later cycles retry it."""
        async with self._pending_lock:
            pending = await self._load_pending()
            if (kind, record_id) in pending:
                return
            pending.add((kind, record_id))
            await self._save_pending(pending)

    async def remove_pending_upload(self, kind: RecordKind, record_id: str) -> bool:
        """Forget a pending upload once it has reached the remote.

        Returns:
            True if the record was pending
        """
        async with self._pending_lock:
            pending = await self._load_pending()
            if (kind, record_id) not in pending:
                return False
            pending.discard((kind, record_id))
            await self._save_pending(pending)
            return True
