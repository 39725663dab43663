# vayura_sync/store.py
from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from vayura_sync.errors import StorageOpenError, StorageUnavailable
from vayura_sync.metrics import metrics
from vayura_sync.models import CacheRecord
from vayura_sync.storage import Row, SQLiteTable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _identity(value: Any) -> Any:
    return value


class PersistentStore(Generic[T]):
    """
    Async, durable, capacity-bounded key/value store with LRU eviction.

    - get(): returns a CacheRecord and bumps its last-access time (one write-back per hit)
    - set(): upserts with fresh timestamps, then evicts least-recently-accessed rows over capacity
    - writes carry a sequence number taken when the call was issued; a write whose
      sequence is older than the last one applied to that key is discarded
    - reserve() marks a write as in flight so a delete issued meanwhile still wins
    - storage failures never escape: reads become misses, writes return False
    """

    def __init__(
        self,
        table: SQLiteTable,
        capacity: Optional[int] = None,
        *,
        name: Optional[str] = None,
        encode: Callable[[T], Any] = _identity,
        decode: Callable[[Any], T] = _identity,
        clock: Callable[[], float] = time.time,
    ):
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.table = table
        self.capacity = capacity
        self.name = name or table.name
        self._encode = encode
        self._decode = decode
        self.clock = clock
        self._lock = asyncio.Lock()
        self._seq = itertools.count(1)
        self._applied: Dict[str, int] = {}
        self._reserved: Dict[str, int] = {}  # key -> writes reserved but not yet settled
        self._floor = 0  # sequence issued by the last clear()
        self._unavailable_logged = False

    # ----------------------------- internals -----------------------------

    def _storage_failed(self, op: str, err: Exception) -> None:
        metrics.inc(f"cache.{self.name}.storage_error")
        if isinstance(err, StorageOpenError):
            if not self._unavailable_logged:
                self._unavailable_logged = True
                logger.warning("Offline cache %s unavailable, running without it: %s", self.name, err)
            else:
                logger.debug("Offline cache %s %s skipped, storage unavailable", self.name, op)
        else:
            logger.warning("Offline cache %s %s failed: %s", self.name, op, err)

    def _to_record(self, row: Row) -> CacheRecord[T]:
        key, raw, inserted_at, last_accessed_at = row
        return CacheRecord(
            key=key,
            payload=self._decode(json.loads(raw)),
            inserted_at=float(inserted_at),
            last_accessed_at=float(last_accessed_at),
        )

    def _superseded(self, key: str, seq: int) -> bool:
        return seq < max(self._applied.get(key, 0), self._floor)

    # ----------------------------- public API -----------------------------

    def next_sequence(self) -> int:
        return next(self._seq)

    def reserve(self, key: str) -> int:
        """
        Take an ordering token for a write to `key` that will be issued later.
        Pair with release() once that write has been issued or abandoned.
        """
        self._reserved[key] = self._reserved.get(key, 0) + 1
        return self.next_sequence()

    def release(self, key: str) -> None:
        left = self._reserved.get(key, 0) - 1
        if left > 0:
            self._reserved[key] = left
        else:
            self._reserved.pop(key, None)

    async def get(self, key: str) -> Optional[CacheRecord[T]]:
        async with self._lock:
            try:
                row = await asyncio.to_thread(self.table.read, key)
            except StorageUnavailable as e:
                self._storage_failed("read", e)
                return None
            if row is None:
                metrics.inc(f"cache.{self.name}.miss")
                return None
            try:
                record = self._to_record(row)
            except (ValueError, TypeError) as e:
                # unreadable or incompatible payload: drop it and report a miss
                logger.warning("Discarding unreadable %s entry %r: %s", self.name, key, e)
                metrics.inc(f"cache.{self.name}.unreadable")
                try:
                    await asyncio.to_thread(self.table.remove, key)
                except StorageUnavailable as se:
                    self._storage_failed("remove", se)
                return None
            record = record.touched(self.clock())
            try:
                await asyncio.to_thread(self.table.touch, key, record.last_accessed_at)
            except StorageUnavailable as e:
                self._storage_failed("touch", e)
            metrics.inc(f"cache.{self.name}.hit")
            return record

    async def peek(self, key: str) -> Optional[CacheRecord[T]]:
        """Read without touching access time."""
        try:
            row = await asyncio.to_thread(self.table.read, key)
            return self._to_record(row) if row is not None else None
        except StorageUnavailable as e:
            self._storage_failed("read", e)
        except (ValueError, TypeError) as e:
            logger.debug("Unreadable %s entry %r: %s", self.name, key, e)
        return None

    async def set(self, key: str, payload: T, seq: Optional[int] = None) -> bool:
        """
        Upsert `key`. Returns True when the write was applied, False when it was
        superseded by a newer write or the storage failed.
        """
        if seq is None:
            seq = self.next_sequence()
        try:
            raw = json.dumps(self._encode(payload))
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize %s payload for %r: %s", self.name, key, e)
            return False
        async with self._lock:
            if self._superseded(key, seq):
                metrics.inc(f"cache.{self.name}.write_discarded")
                logger.debug("Discarding superseded write to %s %r (seq=%s)", self.name, key, seq)
                return False
            now = self.clock()
            try:
                await asyncio.to_thread(self.table.write, key, raw, now, now)
                self._applied[key] = seq
                if self.capacity is not None:
                    evicted = await asyncio.to_thread(self.table.evict_over, self.capacity, key)
                    for victim in evicted:
                        self._applied.pop(victim, None)
                    if evicted:
                        metrics.inc(f"cache.{self.name}.evicted", len(evicted))
                        logger.debug("Evicted %s from %s", evicted, self.name)
            except StorageUnavailable as e:
                self._storage_failed("write", e)
                return False
            return True

    async def has(self, key: str) -> bool:
        try:
            return await asyncio.to_thread(self.table.exists, key)
        except StorageUnavailable as e:
            self._storage_failed("exists", e)
            return False

    async def delete(self, key: str, seq: Optional[int] = None) -> None:
        if seq is None:
            seq = self.next_sequence()
        async with self._lock:
            if self._superseded(key, seq):
                return
            try:
                await asyncio.to_thread(self.table.remove, key)
            except StorageUnavailable as e:
                self._storage_failed("delete", e)
                return
            # reserved writes issued before this delete must not resurrect the key
            if key in self._reserved:
                self._applied[key] = seq
            else:
                self._applied.pop(key, None)

    async def clear(self) -> None:
        seq = self.next_sequence()
        async with self._lock:
            try:
                await asyncio.to_thread(self.table.purge)
            except StorageUnavailable as e:
                self._storage_failed("clear", e)
                return
            self._applied.clear()
            self._floor = seq

    async def count(self) -> int:
        try:
            return await asyncio.to_thread(self.table.count)
        except StorageUnavailable as e:
            self._storage_failed("count", e)
            return 0

    async def list_all(self) -> List[CacheRecord[T]]:
        """Every readable record, in no particular order. Does not touch access times."""
        try:
            rows = await asyncio.to_thread(self.table.rows)
        except StorageUnavailable as e:
            self._storage_failed("list", e)
            return []
        out: List[CacheRecord[T]] = []
        for row in rows:
            try:
                out.append(self._to_record(row))
            except (ValueError, TypeError) as e:
                logger.debug("Skipping unreadable %s entry %r: %s", self.name, row[0], e)
        return out
