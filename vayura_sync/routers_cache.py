# vayura_sync/routers_cache.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from vayura_sync.services import Services, get_services

router = APIRouter(tags=["cache"])


class ConnectivitySignal(BaseModel):
    online: bool = Field(..., description="Environment-reported reachability")


@router.get("/cache")
async def cache_overview(svc: Services = Depends(get_services)):
    """Counts, capacities and the cached district list for the cache management page."""
    stats = await svc.offline.stats()
    return {
        "online": svc.monitor.is_online(),
        **stats,
        "districts": await svc.details.list_cached(),
    }


@router.get("/cache/recent")
async def cache_recent(
    n: int = Query(5, ge=1, le=50),
    svc: Services = Depends(get_services),
):
    recent = await svc.offline.list_recent(n)
    return {"recent": [{"slug": slug, **summary.model_dump()} for slug, summary in recent]}


@router.delete("/cache")
async def cache_clear_all(svc: Services = Depends(get_services)):
    await svc.offline.clear_all()
    return {"ok": True}


@router.delete("/cache/{slug}")
async def cache_clear_one(slug: str, svc: Services = Depends(get_services)):
    await svc.offline.clear_one(slug)
    return {"ok": True, "slug": slug}


@router.post("/connectivity")
async def connectivity_signal(signal: ConnectivitySignal, svc: Services = Depends(get_services)):
    svc.monitor.set_online(signal.online)
    return {"online": svc.monitor.is_online()}
