# vayura_sync/caches.py
from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Tuple

from vayura_sync.models import DistrictReport, DistrictSummary
from vayura_sync.storage import SQLiteDatabase
from vayura_sync.store import PersistentStore

DETAIL_TABLE = "district_details"
SEARCH_TABLE = "search_results"

DEFAULT_DETAIL_CAPACITY = 10
DEFAULT_SEARCH_CAPACITY = 100


def normalize_query(query: str) -> str:
    """Search cache key: surrounding whitespace stripped, case kept as typed."""
    return (query or "").strip()


def _encode_report(report: DistrictReport) -> dict:
    return report.model_dump(mode="json")


def _encode_hits(hits: List[DistrictSummary]) -> list:
    return [h.model_dump(mode="json") for h in hits]


def _decode_hits(raw: list) -> List[DistrictSummary]:
    if not isinstance(raw, list):
        raise ValueError("search payload is not a list")
    return [DistrictSummary.model_validate(item) for item in raw]


class DetailCache(PersistentStore[DistrictReport]):
    """
    One district report per slug. Backs offline display of district pages and
    the "recently viewed" list.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        capacity: int = DEFAULT_DETAIL_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(
            db.table(DETAIL_TABLE),
            capacity,
            name="detail",
            encode=_encode_report,
            decode=DistrictReport.model_validate,
            clock=clock,
        )

    async def list_recent(self, n: int = 5) -> List[Tuple[str, DistrictSummary]]:
        """The `n` most recently accessed districts. Pure read: access order is untouched."""
        if n <= 0:
            return []
        records = await self.list_all()
        records.sort(key=lambda r: r.last_accessed_at, reverse=True)
        return [(r.key, r.payload.summary()) for r in records[:n]]

    async def list_cached(self) -> List[Dict[str, object]]:
        """Every cached district with the time it was written, newest first."""
        records = await self.list_all()
        records.sort(key=lambda r: r.inserted_at, reverse=True)
        return [
            {
                "slug": r.key,
                "name": r.payload.name,
                "state": r.payload.state,
                "cached_at": r.inserted_at,
            }
            for r in records
        ]


class QueryResultCache(PersistentStore[List[DistrictSummary]]):
    """
    One result list per normalized search string. Exact-match only: "Pune" and
    "pune" are different entries, and no prefix sharing takes place.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        capacity: Optional[int] = DEFAULT_SEARCH_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(
            db.table(SEARCH_TABLE),
            capacity,
            name="search",
            encode=_encode_hits,
            decode=_decode_hits,
            clock=clock,
        )

    @staticmethod
    def key_for(query: str) -> str:
        key = normalize_query(query)
        if not key:
            raise ValueError("empty search query is never cached")
        return key


class OfflineCache:
    """Both caches behind one handle, for the cache management page."""

    def __init__(self, details: DetailCache, searches: QueryResultCache):
        self.details = details
        self.searches = searches

    async def stats(self) -> Dict[str, Optional[int]]:
        return {
            "details_count": await self.details.count(),
            "search_count": await self.searches.count(),
            "details_capacity": self.details.capacity,
            "search_capacity": self.searches.capacity,
        }

    async def clear_all(self) -> None:
        await self.details.clear()
        await self.searches.clear()

    async def clear_one(self, slug: str) -> None:
        await self.details.delete(slug)

    async def list_recent(self, n: int = 5) -> List[Tuple[str, DistrictSummary]]:
        return await self.details.list_recent(n)
