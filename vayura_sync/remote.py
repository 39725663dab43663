# vayura_sync/remote.py
from __future__ import annotations

import time
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from vayura_sync.errors import FetchError, NotFoundError, TransportError
from vayura_sync.metrics import metrics
from vayura_sync.models import DistrictReport, DistrictSummary


class DistrictAPIClient:
    """
    Thin wrapper around the district data API.
    - GET {base}/api/districts/{slug}   -> district report (404 means no such district)
    - GET {base}/api/districts?q=...    -> list of district summaries
    - Retries transport failures with jittered exponential backoff; HTTP errors are not retried
    - Raises NotFoundError / FetchError / TransportError, never raw httpx exceptions
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        attempts: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.attempts = attempts
        self.headers = {"Accept": "application/json", "Cache-Control": "no-store"}

    # ----------------------------- internals -----------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        @retry(
            retry=retry_if_exception_type(httpx.TransportError),
            wait=wait_exponential_jitter(initial=0.25, max=4),
            stop=stop_after_attempt(self.attempts),
            reraise=True,
        )
        async def attempt() -> httpx.Response:
            async with self._client() as c:
                return await c.get(path, params=params)

        try:
            r = await attempt()
        except httpx.TransportError as e:
            raise TransportError(f"GET {path} failed: {e!r}") from e
        if r.status_code == 404:
            raise NotFoundError(path.rsplit("/", 1)[-1])
        try:
            r.raise_for_status()
            return r.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"GET {path} returned HTTP {r.status_code}") from e
        except ValueError as e:
            raise FetchError(f"GET {path} returned malformed JSON") from e

    # ----------------------------- endpoints -----------------------------

    async def fetch_district_detail(self, slug: str) -> DistrictReport:
        t0 = time.perf_counter()
        data = await self._get_json(f"/api/districts/{slug}")
        try:
            report = DistrictReport.model_validate(data)
        except ValidationError as e:
            raise FetchError(f"unexpected district payload for {slug}") from e
        metrics.observe_ms("remote.district_detail.ms", (time.perf_counter() - t0) * 1000)
        return report

    async def fetch_search_results(self, query: str) -> List[DistrictSummary]:
        t0 = time.perf_counter()
        data = await self._get_json("/api/districts", params={"q": query})
        if not isinstance(data, list):
            raise FetchError("search endpoint did not return a list")
        try:
            hits = [DistrictSummary.model_validate(item) for item in data]
        except ValidationError as e:
            raise FetchError(f"unexpected search payload for {query!r}") from e
        metrics.observe_ms("remote.search.ms", (time.perf_counter() - t0) * 1000)
        return hits
