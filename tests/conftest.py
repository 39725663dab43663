# tests/conftest.py
import pytest

from vayura_sync.caches import DetailCache, QueryResultCache
from vayura_sync.models import DistrictReport, DistrictSummary
from vayura_sync.storage import SQLiteDatabase

HOUR = 60 * 60


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_report(slug: str, name: str = "", trees: int = 0) -> DistrictReport:
    return DistrictReport(
        id=f"id-{slug}",
        name=name or slug.title(),
        slug=slug,
        state="Maharashtra",
        population=1000,
        environmentalData={"aqi": 80},
        stats={"totalTrees": trees},
    )


def make_hit(slug: str) -> DistrictSummary:
    return DistrictSummary(id=f"id-{slug}", name=slug.title(), slug=slug, state="Maharashtra", population=1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    d = SQLiteDatabase(":memory:")
    yield d
    d.close()


@pytest.fixture
def details(db, clock):
    return DetailCache(db, capacity=10, clock=clock)


@pytest.fixture
def searches(db, clock):
    return QueryResultCache(db, capacity=3, clock=clock)
