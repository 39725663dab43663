# vayura_sync/sync.py
"""
Cache-or-network resolution for one cache kind.

resolve(key) ends in exactly one of:
  fresh hit             -> cached payload, source=cache, no network
  stale hit, online     -> cached payload, source=stale-cache, plus a background
                           refresh whose success is emitted as source=network
  stale hit, offline    -> cached payload, source=stale-cache, no network
  miss, online          -> network payload (stored), or NotFoundError / FetchError
  miss, offline         -> NoCachedData, no network

At most one resolution and one remote fetch per key are outstanding; concurrent
callers share them. A background refresh is shared the same way, so listeners
see one network update per fetch.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from vayura_sync.connectivity import ConnectivityMonitor
from vayura_sync.errors import FetchError, NoCachedData, NotFoundError, SyncError, TransportError
from vayura_sync.metrics import metrics
from vayura_sync.models import CacheRecord, Resolution, Source
from vayura_sync.staleness import StalenessPolicy, record_age
from vayura_sync.store import PersistentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

RemoteFetch = Callable[[str], Awaitable[T]]
UpdateListener = Callable[[Resolution[T]], None]

DEFAULT_FETCH_TIMEOUT = 8.0


class CancelToken:
    """Owned by a requester; cancelling it discards any result still on its way to them."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SyncOrchestrator(Generic[T]):
    def __init__(
        self,
        cache: PersistentStore[T],
        fetch: RemoteFetch,
        monitor: ConnectivityMonitor,
        policy: StalenessPolicy,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        key_fn: Optional[Callable[[str], str]] = None,
        name: Optional[str] = None,
    ):
        self.cache = cache
        self.monitor = monitor
        self.policy = policy
        self.timeout = timeout
        self.name = name or cache.name
        self._fetch = fetch
        self._key_fn = key_fn
        # (key, force) -> whole resolution, registered before the first await
        self._pending: Dict[Tuple[str, bool], "asyncio.Task[Resolution[T]]"] = {}
        self._inflight: Dict[str, "asyncio.Task[T]"] = {}
        self._refreshing: Dict[str, "asyncio.Task[Optional[Resolution[T]]]"] = {}
        self._background: Set[asyncio.Task] = set()
        self._listeners: List[UpdateListener] = []
        self._active_key: Optional[str] = None
        self._active_token: Optional[CancelToken] = None
        self._displayed: Optional[CacheRecord[T]] = None
        self._unsubscribe = monitor.on_change(self._on_connectivity)

    # ----------------------------- public API -----------------------------

    async def resolve(self, key: str, *, token: Optional[CancelToken] = None, force: bool = False) -> Resolution[T]:
        """
        Serve `key` from cache and/or network. `force` (manual refresh) skips the
        cache while online but still falls back to it if the fetch fails.

        Concurrent calls for the same key share one resolution, so they see the
        same outcome and trigger at most one remote fetch.
        """
        key = self._key_fn(key) if self._key_fn else key
        token = self._focus(key, token)
        slot = (key, force)
        task = self._pending.get(slot)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._resolve(key, token, force))
            self._pending[slot] = task
            task.add_done_callback(lambda t, s=slot: self._settled(self._pending, s, t))
        else:
            metrics.inc(f"sync.{self.name}.deduplicated")
        # a cancelled caller must not cancel the resolution other callers are waiting on
        return await asyncio.shield(task)

    def on_update(self, listener: UpdateListener) -> Callable[[], None]:
        """Subscribe to background network updates. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def release(self) -> None:
        """The current requester is no longer interested (e.g. navigated away)."""
        if self._active_token is not None:
            self._active_token.cancel()
        self._active_key = None
        self._active_token = None
        self._displayed = None

    def is_fetching(self, key: str) -> bool:
        return key in self._inflight

    async def drain(self) -> None:
        """Wait for every background refresh scheduled so far."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop reacting to connectivity and cancel every resolution, fetch and refresh still running."""
        self._unsubscribe()
        tasks = {*self._pending.values(), *self._inflight.values(), *self._refreshing.values(), *self._background}
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ----------------------------- internals -----------------------------

    async def _resolve(self, key: str, token: CancelToken, force: bool) -> Resolution[T]:
        online = self.monitor.is_online()

        record = await self.cache.get(key)
        if record is not None and not (force and online):
            return self._serve_cached(record, token, online)

        if not online:
            metrics.inc(f"sync.{self.name}.offline_miss")
            raise NoCachedData(key)

        try:
            payload = await self._fetch_shared(key)
        except NotFoundError:
            raise
        except FetchError:
            if record is None:
                raise
            logger.info("Forced refresh of %s %r failed, serving cached copy", self.name, key)
            return self._serve_cached(record, token, online=False)

        now = self.cache.clock()
        self._remember(CacheRecord(key, payload, now, now))
        return Resolution(key=key, payload=payload, source=Source.NETWORK)

    def _settled(self, registry: Dict, key, task: asyncio.Task) -> None:
        if registry.get(key) is task:
            del registry[key]
        if not task.cancelled():
            task.exception()  # mark retrieved; awaiting callers already got it

    def _focus(self, key: str, token: Optional[CancelToken]) -> CancelToken:
        current = self._active_token
        if token is None:
            if key == self._active_key and current is not None and not current.cancelled:
                return current
            token = CancelToken()
        if current is not None and current is not token and key != self._active_key:
            current.cancel()
        if key != self._active_key:
            self._displayed = None
        self._active_key = key
        self._active_token = token
        return token

    def _remember(self, record: CacheRecord[T]) -> None:
        if record.key == self._active_key:
            self._displayed = record

    def _serve_cached(self, record: CacheRecord[T], token: CancelToken, online: bool) -> Resolution[T]:
        self._remember(record)
        now = self.cache.clock()
        if not self.policy.is_stale(record, now):
            return Resolution(key=record.key, payload=record.payload, source=Source.CACHE, cached_at=record.inserted_at)

        metrics.inc(f"cache.{self.name}.stale_hit")
        logger.debug("Serving stale %s %r, %.0fs old", self.name, record.key, record_age(record, now))
        refresh = self._spawn_refresh(record.key, token) if online else None
        return Resolution(
            key=record.key,
            payload=record.payload,
            source=Source.STALE_CACHE,
            cached_at=record.inserted_at,
            refresh=refresh,
        )

    async def _fetch_shared(self, key: str) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._fetch_and_store(key))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._settled(self._inflight, k, t))
        else:
            metrics.inc(f"sync.{self.name}.deduplicated")
        return await asyncio.shield(task)

    async def _fetch_and_store(self, key: str) -> T:
        seq = self.cache.reserve(key)
        metrics.inc(f"sync.{self.name}.fetch")
        try:
            try:
                payload = await asyncio.wait_for(self._fetch(key), self.timeout)
            except asyncio.TimeoutError as e:
                metrics.inc(f"sync.{self.name}.fetch_failed")
                raise TransportError(f"fetching {key!r} timed out after {self.timeout}s") from e
            except TransportError:
                metrics.inc(f"sync.{self.name}.fetch_failed")
                self.monitor.report_failure()
                raise
            except NotFoundError:
                self.monitor.report_success()  # the remote answered
                raise
            except FetchError:
                metrics.inc(f"sync.{self.name}.fetch_failed")
                self.monitor.report_success()
                raise
            except Exception as e:
                metrics.inc(f"sync.{self.name}.fetch_failed")
                raise FetchError(f"fetching {key!r} failed: {e!r}") from e
            self.monitor.report_success()
            await self.cache.set(key, payload, seq=seq)
        finally:
            self.cache.release(key)
        return payload

    def _spawn_refresh(self, key: str, token: CancelToken) -> "asyncio.Task[Optional[Resolution[T]]]":
        task = self._refreshing.get(key)
        if task is not None:
            return task
        task = asyncio.get_running_loop().create_task(self._refresh(key, token))
        self._refreshing[key] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(lambda t, k=key: self._settled(self._refreshing, k, t))
        return task

    async def _refresh(self, key: str, token: CancelToken) -> Optional[Resolution[T]]:
        try:
            payload = await self._fetch_shared(key)
        except SyncError as e:
            metrics.inc(f"sync.{self.name}.refresh_failed")
            logger.info("Background refresh of %s %r failed, keeping cached copy: %s", self.name, key, e)
            return None
        if token.cancelled or key != self._active_key:
            logger.debug("Discarding refresh of %s %r, requester went away", self.name, key)
            return None
        metrics.inc(f"sync.{self.name}.refreshed")
        now = self.cache.clock()
        self._remember(CacheRecord(key, payload, now, now))
        update = Resolution(key=key, payload=payload, source=Source.NETWORK)
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception:
                logger.exception("Update listener failed for %s %r", self.name, key)
        return update

    def _on_connectivity(self, online: bool) -> None:
        if not online or self._active_key is None or self._displayed is None:
            return
        if not self.policy.is_stale(self._displayed, self.cache.clock()):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Reconnected outside an event loop, skipping refresh of %r", self._active_key)
            return
        if self._active_key in self._inflight:
            return
        logger.info("Back online, refreshing stale %s %r", self.name, self._active_key)
        self._spawn_refresh(self._active_key, self._active_token or CancelToken())
