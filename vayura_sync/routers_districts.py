# vayura_sync/routers_districts.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from vayura_sync.errors import FetchError, NoCachedData, NotFoundError
from vayura_sync.models import Resolution
from vayura_sync.services import Services, get_services

router = APIRouter(tags=["districts"])


def _as_json(res: Resolution[Any]) -> Dict[str, Any]:
    return {
        "key": res.key,
        "payload": res.payload,
        "source": res.source.value,
        "cached_at": res.cached_at,
    }


async def _resolve(orchestrator, key: str, force: bool = False) -> Dict[str, Any]:
    try:
        res = await orchestrator.resolve(key, force=force)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="not_found")
    except NoCachedData:
        raise HTTPException(status_code=503, detail="no_cached_data")
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _as_json(res)


@router.get("/districts/{slug}")
async def district_detail(
    slug: str,
    refresh: bool = Query(False, description="Skip the cache when online (manual refresh)"),
    svc: Services = Depends(get_services),
):
    return await _resolve(svc.district_sync, slug, force=refresh)


@router.get("/districts")
async def district_search(
    q: str = Query("", description="District name as typed"),
    n: int = Query(5, ge=1, le=50, description="Recently viewed entries when q is empty"),
    svc: Services = Depends(get_services),
):
    """
    Search districts. With no query, returns the recently viewed list instead so
    the dropdown has something to show offline.
    """
    if not q.strip():
        recent = await svc.details.list_recent(n)
        return {"recent": [summary for _, summary in recent]}
    return await _resolve(svc.search_sync, q)
