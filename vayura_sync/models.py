# vayura_sync/models.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ----------------------------- domain payloads -----------------------------

class DistrictSummary(BaseModel):
    """Compact district row used by search results and the recently-viewed list."""
    id: str
    name: str
    slug: str
    state: str = ""
    population: int = 0


class DistrictReport(BaseModel):
    """
    Full district report as served by the district detail endpoint.
    The environmental/oxygen blocks are kept free-form; the cache never inspects them.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    slug: str
    state: str = ""
    population: int = 0
    environmental_data: Dict[str, Any] = Field(default_factory=dict, alias="environmentalData")
    oxygen_calculation: Dict[str, Any] = Field(default_factory=dict, alias="oxygenCalculation")
    leaderboard: Optional[Dict[str, Any]] = None
    recommendations: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Optional[Dict[str, Any]] = None

    def summary(self) -> DistrictSummary:
        return DistrictSummary(
            id=self.id,
            name=self.name,
            slug=self.slug,
            state=self.state,
            population=self.population,
        )


# ----------------------------- cache records -----------------------------

@dataclass(frozen=True)
class CacheRecord(Generic[T]):
    """
    One cached value. Timestamps are epoch seconds.
    Staleness is never stored; see staleness.is_stale.
    """
    key: str
    payload: T
    inserted_at: float
    last_accessed_at: float

    def touched(self, now: float) -> "CacheRecord[T]":
        # access time never moves behind insertion time
        return CacheRecord(
            key=self.key,
            payload=self.payload,
            inserted_at=self.inserted_at,
            last_accessed_at=max(now, self.inserted_at, self.last_accessed_at),
        )


class Source(str, Enum):
    NETWORK = "network"
    CACHE = "cache"
    STALE_CACHE = "stale-cache"


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """
    What the UI layer receives from SyncOrchestrator.resolve.
    `refresh` is only set for a stale hit while online; awaiting it yields the
    network update, or None when the refresh failed or was cancelled.
    """
    key: str
    payload: T
    source: Source
    cached_at: Optional[float] = None
    refresh: Optional["asyncio.Task[Optional[Resolution[T]]]"] = field(default=None, compare=False, repr=False)
