"""Unit tests for the local store.

Tests for the storage layer using in-memory SQLite.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from news_sync.models.schemas import (
    CustomSource,
    Favorite,
    Preference,
    ReadMarker,
    RecordKind,
)
from news_sync.services.sync_engine import newer_preference
from news_sync.storage.database import (
    LAST_SYNC_KEY,
    PENDING_UPLOADS_KEY,
    LocalStore,
    init_database,
)


# Mark all tests as async
pytestmark = pytest.mark.anyio

D = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


class TestDatabaseInitialization:
    """Tests for database schema initialization."""

    async def test_init_creates_table(self, store):
        """Test that initialization creates the key-value table."""
        db = await store.connection()
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = [row[0] for row in await cursor.fetchall()]

        assert "sync_state" in tables

    async def test_init_is_idempotent(self, store):
        """Test that calling init multiple times doesn't cause errors."""
        db = await store.connection()
        await init_database(db)
        await init_database(db)

    async def test_file_store_persists_between_connections(self, tmp_path):
        """Test that records survive closing and reopening the store."""
        db_path = tmp_path / "nested" / "news_sync.db"

        async with LocalStore(db_path) as first:
            await first.append(ReadMarker("a1", "T", "S", D))
            await first.set_last_sync(D)

        async with LocalStore(db_path) as second:
            markers = await second.get_all(RecordKind.READ_MARKER)
            assert [m.article_id for m in markers] == ["a1"]
            assert await second.get_last_sync() == D

    async def test_db_path_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NEWS_SYNC_DB_PATH", str(tmp_path / "env.db"))

        assert LocalStore().db_path == str(tmp_path / "env.db")


class TestAppendOnlyCollections:
    """Tests for read markers and favorites."""

    async def test_get_all_empty(self, store):
        assert await store.get_all(RecordKind.READ_MARKER) == []
        assert await store.get_all(RecordKind.FAVORITE) == []

    async def test_append_new_record(self, store):
        added = await store.append(Favorite("a1", "T", "S", "World", D))

        assert added is True
        assert await store.get(RecordKind.FAVORITE, "a1") == Favorite("a1", "T", "S", "World", D)

    async def test_append_existing_identity_keeps_first(self, store):
        await store.append(Favorite("a1", "T", "S", "World", D))

        added = await store.append(Favorite("a1", "Other", "S2", "Tech", D + timedelta(hours=1)))

        assert added is False
        favorites = await store.get_all(RecordKind.FAVORITE)
        assert favorites == [Favorite("a1", "T", "S", "World", D)]

    async def test_get_missing_returns_none(self, store):
        assert await store.get(RecordKind.READ_MARKER, "nope") is None

    async def test_concurrent_appends_keep_identity_unique(self, store):
        """Test that racing appends of the same identity store it once."""
        markers = [ReadMarker("a1", f"T{i}", "S", D) for i in range(10)]

        results = await asyncio.gather(*(store.append(m) for m in markers))

        assert results.count(True) == 1
        assert len(await store.get_all(RecordKind.READ_MARKER)) == 1


class TestUpsertCollections:
    """Tests for custom sources and preferences."""

    async def test_upsert_replaces_same_id(self, store):
        await store.upsert_by_id(CustomSource("s1", "Old", "https://old", "World"))

        written = await store.upsert_by_id(CustomSource("s1", "New", "https://new", "Tech", False))

        assert written is True
        sources = await store.get_all(RecordKind.CUSTOM_SOURCE)
        assert sources == [CustomSource("s1", "New", "https://new", "Tech", False)]

    async def test_upsert_appends_new_id(self, store):
        await store.upsert_by_id(CustomSource("s1", "A", "https://a", "World"))
        await store.upsert_by_id(CustomSource("s2", "B", "https://b", "World"))

        ids = [s.id for s in await store.get_all(RecordKind.CUSTOM_SOURCE)]
        assert ids == ["s1", "s2"]

    async def test_upsert_with_predicate_keeps_existing(self, store):
        await store.upsert_by_id(Preference("theme", "dark", D))

        written = await store.upsert_by_id(
            Preference("theme", "light", D - timedelta(minutes=1)),
            accept=newer_preference,
        )

        assert written is False
        assert (await store.get(RecordKind.PREFERENCE, "theme")).value == "dark"

    async def test_upsert_with_predicate_inserts_when_absent(self, store):
        written = await store.upsert_by_id(Preference("theme", "light", D), accept=newer_preference)

        assert written is True


class TestUndecodableData:
    """Tests for the treat-as-no-data policy on decode failures."""

    async def test_corrupt_collection_reads_as_empty(self, store):
        await store._write(RecordKind.FAVORITE.storage_key, "{not json")

        assert await store.get_all(RecordKind.FAVORITE) == []

    async def test_non_list_collection_reads_as_empty(self, store):
        await store._write(RecordKind.PREFERENCE.storage_key, '{"theme": "dark"}')

        assert await store.get_all(RecordKind.PREFERENCE) == []

    async def test_bad_record_is_skipped(self, store):
        await store._write(
            RecordKind.READ_MARKER.storage_key,
            '[{"article_id": "a1"}, '
            '{"article_id": "a2", "title": "T", "source": "S", "read_date": "2026-02-01T08:00:00+00:00"}]',
        )

        markers = await store.get_all(RecordKind.READ_MARKER)

        assert [m.article_id for m in markers] == ["a2"]

    async def test_append_after_corruption_starts_fresh(self, store):
        await store._write(RecordKind.FAVORITE.storage_key, "garbage")

        assert await store.append(Favorite("a1", "T", "S", "World", D)) is True
        assert len(await store.get_all(RecordKind.FAVORITE)) == 1

    async def test_corrupt_last_sync_reads_as_none(self, store):
        await store._write(LAST_SYNC_KEY, "not-a-date")

        assert await store.get_last_sync() is None


class TestLastSync:
    """Tests for the last sync timestamp."""

    async def test_absent_by_default(self, store):
        assert await store.get_last_sync() is None

    async def test_set_and_get(self, store):
        stored = await store.set_last_sync(D)

        assert stored == D
        assert await store.get_last_sync() == D

    async def test_never_moves_backwards(self, store):
        await store.set_last_sync(D)

        stored = await store.set_last_sync(D - timedelta(days=1))

        assert stored == D
        assert await store.get_last_sync() == D

    async def test_moves_forward(self, store):
        await store.set_last_sync(D)
        later = D + timedelta(seconds=5)

        assert await store.set_last_sync(later) == later


class TestPendingUploads:
    """Tests for records whose upload failed."""

    async def test_empty_by_default(self, store):
        assert await store.get_pending_uploads() == set()

    async def test_add_and_remove(self, store):
        await store.add_pending_upload(RecordKind.READ_MARKER, "a1")
        await store.add_pending_upload(RecordKind.FAVORITE, "a1")
        await store.add_pending_upload(RecordKind.READ_MARKER, "a1")

        assert await store.get_pending_uploads() == {
            (RecordKind.READ_MARKER, "a1"),
            (RecordKind.FAVORITE, "a1"),
        }

        assert await store.remove_pending_upload(RecordKind.READ_MARKER, "a1") is True
        assert await store.remove_pending_upload(RecordKind.READ_MARKER, "a1") is False
        assert await store.get_pending_uploads() == {(RecordKind.FAVORITE, "a1")}

    async def test_persists_between_connections(self, tmp_path):
        db_path = tmp_path / "pending.db"
        async with LocalStore(db_path) as first:
            await first.add_pending_upload(RecordKind.PREFERENCE, "theme")

        async with LocalStore(db_path) as second:
            assert await second.get_pending_uploads() == {(RecordKind.PREFERENCE, "theme")}

    async def test_concurrent_adds_all_kept(self, store):
        await asyncio.gather(*(
            store.add_pending_upload(RecordKind.READ_MARKER, f"a{i}") for i in range(10)
        ))

        assert len(await store.get_pending_uploads()) == 10

    @pytest.mark.parametrize("raw", ["{not json", '{"kind": "favorite"}', '[{"kind": "bogus", "id": "x"}]'])
    async def test_undecodable_reads_as_empty(self, store, raw):
        await store._write(PENDING_UPLOADS_KEY, raw)

        assert await store.get_pending_uploads() == set()
