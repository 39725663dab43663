from fastapi.testclient import TestClient

from conftest import FakeClock, make_hit, make_report
from vayura_sync.caches import DetailCache, QueryResultCache
from vayura_sync.connectivity import ConnectivityMonitor
from vayura_sync.errors import NotFoundError
from vayura_sync.main import app
from vayura_sync.services import Services, get_services
from vayura_sync.staleness import StalenessPolicy
from vayura_sync.storage import SQLiteDatabase
from vayura_sync.sync import SyncOrchestrator

DAY = 24 * 60 * 60


def _services():
    db = SQLiteDatabase(":memory:")
    clock = FakeClock()
    details = DetailCache(db, clock=clock)
    searches = QueryResultCache(db, clock=clock)
    monitor = ConnectivityMonitor()

    async def detail(slug):
        if slug == "atlantis":
            raise NotFoundError(slug)
        return make_report(slug)

    async def search(q):
        return [make_hit("pune")]

    return Services(
        db,
        details,
        searches,
        monitor,
        SyncOrchestrator(details, detail, monitor, StalenessPolicy(DAY)),
        SyncOrchestrator(searches, search, monitor, StalenessPolicy(3600), key_fn=QueryResultCache.key_for),
    )


def _client():
    svc = _services()
    app.dependency_overrides[get_services] = lambda: svc
    return TestClient(app), svc


def test_detail_network_then_cache_then_offline_flow():
    client, _ = _client()
    try:
        r = client.get("/districts/pune")
        assert r.status_code == 200 and r.json()["source"] == "network"
        r = client.get("/districts/pune")
        assert r.json()["source"] == "cache"
        assert r.json()["payload"]["slug"] == "pune"

        assert client.post("/connectivity", json={"online": False}).json() == {"online": False}
        r = client.get("/districts/thane")
        assert r.status_code == 503 and r.json()["detail"] == "no_cached_data"
    finally:
        app.dependency_overrides.clear()

def test_not_found_maps_to_404():
    client, _ = _client()
    try:
        assert client.get("/districts/atlantis").status_code == 404
    finally:
        app.dependency_overrides.clear()

def test_search_and_recent_and_cache_management():
    client, _ = _client()
    try:
        r = client.get("/districts", params={"q": " Pune "})
        assert r.json()["key"] == "Pune"
        assert r.json()["payload"][0]["slug"] == "pune"

        client.get("/districts/pune")
        client.get("/districts/thane")
        recent = client.get("/districts").json()["recent"]
        assert {d["slug"] for d in recent} == {"pune", "thane"}

        overview = client.get("/cache").json()
        assert overview["details_count"] == 2
        assert overview["search_count"] == 1

        assert client.delete("/cache/pune").json()["ok"]
        assert [d["slug"] for d in client.get("/cache/recent").json()["recent"]] == ["thane"]
        client.delete("/cache")
        assert client.get("/cache").json()["details_count"] == 0
    finally:
        app.dependency_overrides.clear()
