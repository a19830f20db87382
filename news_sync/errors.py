"""Exception types for news_sync."""


class NewsSyncError(Exception):
    """Base class for all news_sync errors."""


class LocalStoreError(NewsSyncError):
    """The local store could not be read or written."""


class RecordDecodeError(NewsSyncError):
    """A stored or downloaded record could not be decoded."""


class RemoteError(NewsSyncError):
    """A remote store call failed.

    Raised for a single failed call (one upsert, one query). The sync engine
    treats these as per-record failures during uploads.
    """


class RemoteUnavailableError(RemoteError):
    """The remote store is unreachable or the account is unusable.

    Aborts a running sync cycle.
    """


class SyncCycleError(NewsSyncError):
    """A full sync cycle was aborted before completing."""
