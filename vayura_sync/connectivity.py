# vayura_sync/connectivity.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Two-state (online/offline) reachability tracker.

    Primary signals come from the environment (set_online / a polling probe);
    the remote client path feeds secondary signals via report_success and
    report_failure. Listeners fire once per transition, never per signal.
    An unknown initial state is treated as online, so the first request tries
    the network and falls back to the cache on failure.
    """

    def __init__(self, initial: Optional[bool] = None):
        self._online = True if initial is None else bool(initial)
        self._listeners: List[Listener] = []

    def is_online(self) -> bool:
        return self._online

    def on_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener failed")

    # secondary signals from network operations
    def report_success(self) -> None:
        self.set_online(True)

    def report_failure(self) -> None:
        self.set_online(False)

    async def watch(self, probe: Probe, interval: float) -> None:
        """Poll `probe` forever, feeding its answer into set_online. Cancel to stop."""
        while True:
            try:
                self.set_online(await probe())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Reachability probe raised, assuming offline: %s", e)
                self.set_online(False)
            await asyncio.sleep(interval)


def http_probe(url: str, timeout: float = 3.0) -> Probe:
    """Reachability check: any HTTP response from `url` counts as online."""

    async def probe() -> bool:
        try:
            async with httpx.AsyncClient(timeout=timeout) as c:
                await c.head(url)
            return True
        except httpx.TransportError:
            return False

    return probe
