# vayura_sync/main.py
import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from vayura_sync.__about__ import __app_name__, __version__
from vayura_sync.config import settings
from vayura_sync.connectivity import http_probe
from vayura_sync.metrics import metrics
from vayura_sync.routers_cache import router as cache_router
from vayura_sync.routers_districts import router as districts_router
from vayura_sync.services import get_services

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    svc = get_services()
    watcher = asyncio.create_task(
        svc.monitor.watch(http_probe(settings.api_base_url), settings.probe_interval_seconds)
    )
    logger.info("Offline cache at %s, api=%s", settings.cache_path, settings.api_base_url)
    try:
        yield
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
        await svc.aclose()


app = FastAPI(
    title="Vayura offline sync",
    version=__version__,
    description="Offline-first district report and search cache.",
    lifespan=lifespan,
)

# ---------------------- Middleware ----------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    try:
        response = await call_next(request)
        return response
    finally:
        ms = (time.perf_counter() - start) * 1000.0
        metrics.inc("http.requests.total")
        metrics.observe_ms(f"http.latency.{request.method}", ms)

# ---------------------- Health endpoint ----------------------
@app.get("/health")
def health():
    return {
        "app": __app_name__,
        "version": __version__,
        "online": get_services().monitor.is_online(),
        "status": "ok",
    }

# ---------------------- Metrics endpoint (JSON snapshot) ----------------------
@app.get("/_metrics")
def get_metrics():
    return metrics.snapshot()

# ---------------------- API routers ----------------------
app.include_router(districts_router)
app.include_router(cache_router)
