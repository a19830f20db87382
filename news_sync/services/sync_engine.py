"""Sync engine.

Keeps read markers, favorites, custom sources and preferences consistent
across the devices of one account. A full cycle uploads local records newer
than the last successful sync, then downloads every remote record and merges
it into the local store:

- read markers and favorites are append-only: the first record stored for an
  article wins and later arrivals are ignored
- custom sources are overwritten unconditionally by the downloaded copy
- preferences are last-write-wins on ``modified_date``; ties keep the local value

The last sync time advances only after a cycle completes both phases. Local
mutations are written first and pushed to the remote opportunistically; a
failed push leaves the record to the next full cycle.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from news_sync.errors import (
    LocalStoreError,
    NewsSyncError,
    RemoteError,
    RemoteUnavailableError,
    SyncCycleError,
)
from news_sync.log_system.correlation import correlation_scope
from news_sync.models.schemas import (
    ALL_KINDS,
    CustomSource,
    Favorite,
    Preference,
    ReadMarker,
    RecordKind,
    SyncReport,
    SyncState,
    SyncStatus,
    utcnow,
)
from news_sync.remote.base import Availability, RemoteStore
from news_sync.services.notifier import ChangeKind, ChangeNotifier
from news_sync.services.status import StatusObservable
from news_sync.storage.database import LocalStore

logger = logging.getLogger(__name__)

REMOTE_UNAVAILABLE_MESSAGE = "remote unavailable"
SYNC_IN_PROGRESS_MESSAGE = "sync already in progress"

# Events published when a downloaded record is accepted
ARRIVAL_EVENTS = {
    RecordKind.FAVORITE: ChangeKind.FAVORITE_ARRIVED,
    RecordKind.CUSTOM_SOURCE: ChangeKind.CUSTOM_SOURCE_ARRIVED,
    RecordKind.PREFERENCE: ChangeKind.PREFERENCE_ARRIVED,
}


def is_upload_candidate(record: Any, last_sync: Optional[datetime]) -> bool:
    """Whether a local record should be uploaded in the next cycle.

    Records without a timestamp (custom sources) are always candidates.
    Otherwise the timestamp must be strictly newer than ``last_sync``; a
    missing ``last_sync`` selects everything.
    """
    timestamp = record.timestamp
    if timestamp is None or last_sync is None:
        return True
    return timestamp > last_sync


def newer_preference(existing: Preference, incoming: Preference) -> bool:
    """Last-write-wins: accept only a strictly newer modification."""
    return incoming.modified_date > existing.modified_date


class SyncEngine:
    """Orchestrates full sync cycles and local mutations for one device.

    Attributes:
        store: Local store for this device
        remote: Remote store adapter
        notifier: Receives arrival events for accepted downloads
        status_observable: Current status for displays
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        notifier: Optional[ChangeNotifier] = None,
        status: Optional[StatusObservable] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        complete_display_delay: float = 2.0,
        max_concurrent_uploads: int = 4,
    ):
        """Initialize the engine.

        Args:
            store: Local store
            remote: Remote store adapter
            notifier: Change notifier (a new one is created if omitted)
            status: Status observable (a new one is created if omitted)
            clock: Returns the current UTC time; defaults to utcnow
            complete_display_delay: Seconds the COMPLETE status is shown before IDLE
            max_concurrent_uploads: Upper bound on in-flight upserts per collection
        """
        if max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")

        self.store = store
        self.remote = remote
        self.notifier = notifier or ChangeNotifier()
        self.status_observable = status or StatusObservable()
        self.complete_display_delay = complete_display_delay
        self.max_concurrent_uploads = max_concurrent_uploads
        self._clock = clock or utcnow
        self._cycle_lock = asyncio.Lock()
        self._started = False
        self._remote_prepared = False

    # Observability

    @property
    def status(self) -> SyncStatus:
        return self.status_observable.status

    @property
    def last_sync_date(self) -> Optional[datetime]:
        return self.status_observable.last_sync_date

    @property
    def remote_available(self) -> bool:
        return self.status_observable.remote_available

    @property
    def last_error_message(self) -> Optional[str]:
        return self.status_observable.last_error_message

    @property
    def is_syncing(self) -> bool:
        return self._cycle_lock.locked()

    def _set_status(self, status: SyncStatus) -> None:
        self.status_observable.set_status(status)

    # Setup

    async def start(self) -> None:
        """Load persisted state and prepare the remote workspace.

        Safe to call more than once; never raises for remote failures.
        """
        if self._started:
            return
        self._started = True

        try:
            self.status_observable.last_sync_date = await self.store.get_last_sync()
        except LocalStoreError as e:
            logger.error(f"Could not load last sync date: {e}")

        if await self.refresh_availability():
            await self._prepare_remote()

        logger.info(
            f"Sync engine started (remote available: {self.remote_available}, "
            f"last sync: {self.last_sync_date.isoformat() if self.last_sync_date else 'never'})"
        )

    async def refresh_availability(self) -> bool:
        """Ask the remote whether the account is usable.

        Returns:
            True if the remote reported AVAILABLE
        """
        try:
            availability = await self.remote.check_availability()
        except RemoteError as e:
            logger.warning(f"Availability check failed: {e}")
            availability = Availability.UNKNOWN
        except Exception as e:
            logger.error(f"Availability check raised {type(e).__name__}: {e}", exc_info=True)
            availability = Availability.UNKNOWN

        available = availability == Availability.AVAILABLE
        if available != self.remote_available:
            logger.info(f"Remote availability changed: {availability.value}")
        self.status_observable.remote_available = available
        return available

    async def _prepare_remote(self) -> None:
        """Create the workspace and subscribe to changes, best-effort."""
        if self._remote_prepared:
            return

        try:
            await self.remote.ensure_workspace()
        except RemoteError as e:
            logger.warning(f"Failed to create sync workspace: {e}")
            return

        try:
            await self.remote.subscribe_to_changes(ALL_KINDS)
        except RemoteError as e:
            # Change notifications are optional; periodic sync still works
            logger.warning(f"Change subscription failed: {e}")

        self._remote_prepared = True

    # Full sync

    async def perform_full_sync(self) -> SyncReport:
        """Run one upload-then-download cycle.

        Only one cycle runs at a time; a call made while another is in flight
        is rejected without touching the status. Never raises: failures are
        reported through the status and the returned report.

        Returns:
            SyncReport describing the cycle
        """
        if self._cycle_lock.locked():
            logger.warning("Full sync requested while another is running, rejecting")
            return SyncReport(rejected=True, error=SYNC_IN_PROGRESS_MESSAGE)

        async with self._cycle_lock:
            with correlation_scope("sync"):
                report = await self._run_cycle()

        if report.success:
            if self.complete_display_delay > 0:
                await asyncio.sleep(self.complete_display_delay)
            # A new cycle may have started during the delay
            if self.status.state == SyncState.COMPLETE:
                self._set_status(SyncStatus.idle())

        return report

    async def _run_cycle(self) -> SyncReport:
        report = SyncReport(started_at=self._clock())

        try:
            await self.start()
            if not await self.refresh_availability():
                return self._refuse(report)

            await self._prepare_remote()
            self._set_status(SyncStatus.syncing())
            logger.info("Full sync started")

            last_sync = await self.store.get_last_sync()
            await self._upload_phase(last_sync, report)
            await self._download_phase(report)

            # The cycle start is recorded so records written while it ran
            # remain upload candidates next time
            stored = await self.store.set_last_sync(report.started_at)
        except SyncCycleError as e:
            return self._fail(report, str(e))
        except Exception as e:
            logger.error(f"Unexpected error during full sync: {e}", exc_info=True)
            return self._fail(report, str(e) or type(e).__name__)

        self.status_observable.last_sync_date = stored
        report.success = True
        report.completed_at = self._clock()
        self._set_status(SyncStatus.complete())
        logger.info(
            f"Full sync complete: uploaded {report.uploaded}/{report.upload_candidates} "
            f"({report.upload_failures} failed), accepted {report.downloaded} downloads"
        )
        return report

    def _refuse(self, report: SyncReport) -> SyncReport:
        logger.warning("Full sync skipped: remote unavailable")
        report.error = REMOTE_UNAVAILABLE_MESSAGE
        report.completed_at = self._clock()
        self._set_status(SyncStatus.error(REMOTE_UNAVAILABLE_MESSAGE))
        # Nothing ran; the error stays readable as last_error_message
        self._set_status(SyncStatus.idle())
        return report

    def _fail(self, report: SyncReport, message: str) -> SyncReport:
        logger.error(f"Full sync failed: {message}")
        report.error = message
        report.completed_at = self._clock()
        self._set_status(SyncStatus.error(message))
        return report

    async def collect_upload_candidates(
        self, last_sync: Optional[datetime]
    ) -> Dict[RecordKind, List[Any]]:
        """Local records to upload, per collection, given the last sync time.

        Records whose earlier upload failed are included regardless of their
        timestamp until an upload succeeds.
        """
        pending = await self.store.get_pending_uploads()
        candidates = {}
        for kind in ALL_KINDS:
            records = await self.store.get_all(kind)
            candidates[kind] = [
                r for r in records
                if is_upload_candidate(r, last_sync) or (kind, r.record_id) in pending
            ]
        return candidates

    async def _upload_phase(self, last_sync: Optional[datetime], report: SyncReport) -> None:
        candidates = await self.collect_upload_candidates(last_sync)
        total = sum(len(records) for records in candidates.values())
        report.upload_candidates = total

        if total == 0:
            logger.debug("Nothing to upload")
            return

        self._set_status(SyncStatus.uploading(total))
        semaphore = asyncio.Semaphore(self.max_concurrent_uploads)

        async def upload(record: Any) -> bool:
            async with semaphore:
                return await self._upload_record(record)

        for kind in ALL_KINDS:
            records = candidates[kind]
            if not records:
                continue

            results = await asyncio.gather(
                *(upload(record) for record in records),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, RemoteUnavailableError):
                    raise SyncCycleError(f"Remote became unreachable during upload: {result}") from result
                if isinstance(result, BaseException):
                    raise result
                if result:
                    report.uploaded += 1
                else:
                    report.upload_failures += 1

            logger.debug(f"Uploaded {kind.value} records: {len(records)} candidates")

    async def _upload_record(self, record: Any) -> bool:
        """Upsert one record; a per-record failure is logged and reported as False.

        Raises:
            RemoteUnavailableError: The remote cannot be reached at all
        """
        try:
            await self.remote.upsert(record)
        except RemoteUnavailableError:
            raise
        except RemoteError as e:
            logger.warning(f"Failed to upload {RecordKind.of(record).value} '{record.record_id}': {e}")
            await self._track_pending(record, failed=True)
            return False

        await self._track_pending(record, failed=False)
        return True

    async def _track_pending(self, record: Any, failed: bool) -> None:
        kind = RecordKind.of(record)
        try:
            if failed:
                await self.store.add_pending_upload(kind, record.record_id)
            elif await self.store.remove_pending_upload(kind, record.record_id):
                logger.debug(f"Pending {kind.value} '{record.record_id}' uploaded")
        except LocalStoreError as e:
            logger.error(f"Could not update pending upload of {kind.value} '{record.record_id}': {e}")

    async def _download_phase(self, report: SyncReport) -> None:
        accepted_total = 0
        self._set_status(SyncStatus.downloading(0))

        for kind in ALL_KINDS:
            try:
                records = await self.remote.query_all(kind)
            except RemoteError as e:
                raise SyncCycleError(f"Download of {kind.value} records failed: {e}") from e

            accepted = 0
            for record in records:
                if await self._merge_downloaded(kind, record):
                    accepted += 1

            report.accepted[kind.value] = accepted
            accepted_total += accepted
            self._set_status(SyncStatus.downloading(accepted_total))
            logger.debug(f"Merged {kind.value} records: {accepted} of {len(records)} accepted")

    async def _merge_downloaded(self, kind: RecordKind, record: Any) -> bool:
        """Apply the collection's conflict rule to one downloaded record.

        Returns:
            True if the record was written to the local store
        """
        if not isinstance(record, kind.record_class):
            logger.warning(f"Skipping downloaded {kind.value} of unexpected type {type(record).__name__}")
            return False

        try:
            if kind in (RecordKind.READ_MARKER, RecordKind.FAVORITE):
                accepted = await self.store.append(record)
            elif kind == RecordKind.CUSTOM_SOURCE:
                accepted = await self.store.upsert_by_id(record)
            else:
                accepted = await self.store.upsert_by_id(record, accept=newer_preference)
        except NewsSyncError as e:
            logger.warning(f"Failed to merge {kind.value} '{record.record_id}': {e}")
            return False

        if accepted and kind in ARRIVAL_EVENTS:
            await self.notifier.publish(ARRIVAL_EVENTS[kind], record)
        return accepted

    async def run_periodic(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run full sync cycles every ``interval`` seconds until stopped.

        Args:
            interval: Seconds between the end of one cycle and the next
            stop_event: Set to stop the loop
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        stop_event = stop_event or asyncio.Event()
        logger.info(f"Periodic sync every {interval}s")

        while not stop_event.is_set():
            await self.perform_full_sync()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # Mutations

    async def _mutate(self, record: Any, append: bool) -> Any:
        """Write a record locally, then push it if the remote is available.

        Returns:
            The record now held locally for that identity
        """
        kind = RecordKind.of(record)
        stored = record

        try:
            if append:
                if not await self.store.append(record):
                    stored = await self.store.get(kind, record.record_id) or record
            else:
                await self.store.upsert_by_id(record)
        except LocalStoreError as e:
            logger.error(f"Failed to store {kind.value} '{record.record_id}' locally: {e}")

        if self.remote_available:
            try:
                await self._upload_record(stored)
            except RemoteUnavailableError as e:
                logger.warning(f"Remote unreachable, {kind.value} '{stored.record_id}' left for next sync: {e}")
                self.status_observable.remote_available = False
                await self._track_pending(stored, failed=True)

        return stored

    async def mark_read(self, article_id: str, title: str, source: str) -> ReadMarker:
        """Record that an article was read."""
        marker = ReadMarker(
            article_id=article_id,
            title=title,
            source=source,
            read_date=self._clock(),
        )
        return await self._mutate(marker, append=True)

    async def add_favorite(self, article_id: str, title: str, source: str, category: str) -> Favorite:
        """Save an article as a favorite."""
        favorite = Favorite(
            article_id=article_id,
            title=title,
            source=source,
            category=category,
            saved_date=self._clock(),
        )
        return await self._mutate(favorite, append=True)

    async def add_custom_source(self, name: str, url: str, category: str) -> CustomSource:
        """Add an enabled custom source with a generated id."""
        source = CustomSource.create(name=name, url=url, category=category)
        return await self._mutate(source, append=False)

    async def set_custom_source_enabled(self, source_id: str, is_enabled: bool) -> Optional[CustomSource]:
        """Enable or disable an existing custom source.

        Returns:
            The updated source, None if no source has that id
        """
        existing = await self.store.get(RecordKind.CUSTOM_SOURCE, source_id)
        if existing is None:
            return None
        updated = CustomSource(
            id=existing.id,
            name=existing.name,
            url=existing.url,
            category=existing.category,
            is_enabled=is_enabled,
        )
        return await self._mutate(updated, append=False)

    async def update_preference(self, key: str, value: str) -> Preference:
        """Set a preference value, stamped with the current time."""
        preference = Preference(key=key, value=value, modified_date=self._clock())
        return await self._mutate(preference, append=False)

    # Local snapshot

    async def read_markers(self) -> List[ReadMarker]:
        return await self.store.get_all(RecordKind.READ_MARKER)

    async def favorites(self) -> List[Favorite]:
        return await self.store.get_all(RecordKind.FAVORITE)

    async def custom_sources(self) -> List[CustomSource]:
        return await self.store.get_all(RecordKind.CUSTOM_SOURCE)

    async def preferences(self) -> List[Preference]:
        return await self.store.get_all(RecordKind.PREFERENCE)

    async def is_read(self, article_id: str) -> bool:
        return await self.store.get(RecordKind.READ_MARKER, article_id) is not None

    async def is_favorite(self, article_id: str) -> bool:
        return await self.store.get(RecordKind.FAVORITE, article_id) is not None

    async def get_preference(self, key: str, default: Optional[str] = None) -> Optional[str]:
        preference = await self.store.get(RecordKind.PREFERENCE, key)
        return preference.value if preference is not None else default

    async def close(self) -> None:
        """Close the local store and the remote adapter."""
        await self.remote.close()
        await self.store.close()
