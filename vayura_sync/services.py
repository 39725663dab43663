# vayura_sync/services.py
from __future__ import annotations

from typing import List, Optional

from vayura_sync.caches import DetailCache, OfflineCache, QueryResultCache
from vayura_sync.config import Settings, settings
from vayura_sync.connectivity import ConnectivityMonitor
from vayura_sync.models import DistrictReport, DistrictSummary
from vayura_sync.remote import DistrictAPIClient
from vayura_sync.staleness import StalenessPolicy
from vayura_sync.storage import SQLiteDatabase
from vayura_sync.sync import SyncOrchestrator


class Services:
    """
    Long-lived collaborators for one process: one database handle, one store per
    cache kind, one monitor, one orchestrator per cache kind.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        details: DetailCache,
        searches: QueryResultCache,
        monitor: ConnectivityMonitor,
        district_sync: SyncOrchestrator[DistrictReport],
        search_sync: SyncOrchestrator[List[DistrictSummary]],
    ):
        self.db = db
        self.offline = OfflineCache(details, searches)
        self.details = details
        self.searches = searches
        self.monitor = monitor
        self.district_sync = district_sync
        self.search_sync = search_sync

    async def aclose(self) -> None:
        await self.district_sync.aclose()
        await self.search_sync.aclose()
        self.db.close()


def build_services(cfg: Settings = settings) -> Services:
    db = SQLiteDatabase(cfg.cache_path)
    details = DetailCache(db, capacity=cfg.detail_capacity)
    searches = QueryResultCache(db, capacity=cfg.search_capacity)
    monitor = ConnectivityMonitor()
    client = DistrictAPIClient(cfg.api_base_url, timeout=cfg.fetch_timeout_seconds)
    district_sync = SyncOrchestrator(
        details,
        client.fetch_district_detail,
        monitor,
        StalenessPolicy(cfg.detail_validity_seconds),
        timeout=cfg.fetch_timeout_seconds,
    )
    search_sync = SyncOrchestrator(
        searches,
        client.fetch_search_results,
        monitor,
        StalenessPolicy(cfg.search_validity_seconds),
        timeout=cfg.fetch_timeout_seconds,
        key_fn=QueryResultCache.key_for,
    )
    return Services(db, details, searches, monitor, district_sync, search_sync)


_services: Optional[Services] = None


def get_services() -> Services:
    """Process-wide instance, built on first use."""
    global _services
    if _services is None:
        _services = build_services()
    return _services
