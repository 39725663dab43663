# vayura_sync/staleness.py
from __future__ import annotations

from typing import Any

from vayura_sync.models import CacheRecord


def record_age(record: CacheRecord[Any], now: float) -> float:
    """Seconds since the record was written. Never negative."""
    return max(0.0, now - record.inserted_at)


def is_stale(record: CacheRecord[Any], validity_seconds: float, now: float) -> bool:
    """
    A record is stale once strictly more than `validity_seconds` have passed
    since it was written. Reads do not reset this; only a new write does.
    """
    return now - record.inserted_at > validity_seconds


class StalenessPolicy:
    """Binds a validity window so callers don't thread it through every call."""

    def __init__(self, validity_seconds: float):
        if validity_seconds < 0:
            raise ValueError("validity window must be non-negative")
        self.validity_seconds = validity_seconds

    def is_stale(self, record: CacheRecord[Any], now: float) -> bool:
        return is_stale(record, self.validity_seconds, now)
