import pytest

from conftest import make_hit, make_report
from vayura_sync.caches import OfflineCache, QueryResultCache, normalize_query


def test_normalize_query_trims_but_keeps_case():
    assert normalize_query("  Pune ") == "Pune"
    assert normalize_query("pune") != normalize_query("Pune")
    with pytest.raises(ValueError):
        QueryResultCache.key_for("   ")

@pytest.mark.asyncio
async def test_list_recent_orders_by_access_without_touching(details, clock):
    for slug in ("pune", "nagpur", "thane"):
        await details.set(slug, make_report(slug))
        clock.advance(10)
    await details.get("pune")
    before = {r.key: r.last_accessed_at for r in await details.list_all()}
    clock.advance(10)
    recent = await details.list_recent(2)
    assert [slug for slug, _ in recent] == ["pune", "thane"]
    assert recent[0][1].name == "Pune"
    after = {r.key: r.last_accessed_at for r in await details.list_all()}
    assert before == after
    assert await details.list_recent(0) == []

@pytest.mark.asyncio
async def test_list_cached_reports_insert_time(details, clock):
    await details.set("pune", make_report("pune"))
    clock.advance(5)
    await details.set("thane", make_report("thane"))
    rows = await details.list_cached()
    assert [r["slug"] for r in rows] == ["thane", "pune"]
    assert rows[0]["cached_at"] == clock.now

@pytest.mark.asyncio
async def test_search_results_roundtrip_and_capacity(searches, clock):
    for q in ("Pu", "Pun", "Pune", "Nag"):
        await searches.set(q, [make_hit("pune")])
        clock.advance(1)
    assert await searches.count() == 3
    rec = await searches.get("Pune")
    assert rec.payload[0].slug == "pune"
    assert await searches.get("pune") is None

@pytest.mark.asyncio
async def test_offline_cache_stats_and_clear(details, searches):
    offline = OfflineCache(details, searches)
    await details.set("pune", make_report("pune"))
    await details.set("thane", make_report("thane"))
    await searches.set("Pune", [make_hit("pune")])
    stats = await offline.stats()
    assert stats == {"details_count": 2, "search_count": 1, "details_capacity": 10, "search_capacity": 3}
    await offline.clear_one("pune")
    assert (await offline.stats())["details_count"] == 1
    await offline.clear_all()
    assert (await offline.stats())["details_count"] == 0
    assert (await offline.stats())["search_count"] == 0
