# vayura_sync/errors.py
from __future__ import annotations


class SyncError(Exception):
    """Base class for every condition the cache/sync layer reports."""


class StorageUnavailable(SyncError):
    """The durable store cannot be opened, read or written."""


class StorageOpenError(StorageUnavailable):
    """The database file itself could not be opened; every operation will fail the same way."""


class NotFoundError(SyncError):
    """The remote API explicitly has no such entity. Never cached."""

    def __init__(self, key: str):
        super().__init__(f"not found: {key}")
        self.key = key


class FetchError(SyncError):
    """A remote fetch failed for a reason other than 'not found'."""


class TransportError(FetchError):
    """Network-level failure or timeout talking to the remote API."""


class NoCachedData(SyncError):
    """Offline and nothing cached for the key. The user can reconnect and retry."""

    def __init__(self, key: str):
        super().__init__(f"no cached data for {key!r} while offline")
        self.key = key
