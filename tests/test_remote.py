import httpx
import pytest

from vayura_sync.errors import FetchError, NotFoundError, TransportError
from vayura_sync.remote import DistrictAPIClient

SAMPLE_DETAIL = {
    "id": "mh-pune",
    "name": "Pune",
    "slug": "pune",
    "state": "Maharashtra",
    "population": 9429408,
    "environmentalData": {"aqi": 92, "forestCover": 8.2},
    "oxygenCalculation": {"deficit": 1200},
    "recommendations": [{"species": "Neem"}],
}


def _client(handler, attempts=1):
    return DistrictAPIClient("http://api.test", transport=httpx.MockTransport(handler), attempts=attempts)

@pytest.mark.asyncio
async def test_fetch_district_detail_parses_camel_case():
    def handler(request):
        assert request.url.path == "/api/districts/pune"
        return httpx.Response(200, json=SAMPLE_DETAIL)

    report = await _client(handler).fetch_district_detail("pune")
    assert report.environmental_data["aqi"] == 92
    assert report.summary().population == 9429408

@pytest.mark.asyncio
async def test_fetch_search_results_sends_query():
    def handler(request):
        assert request.url.params["q"] == "Pu"
        return httpx.Response(200, json=[{"id": "1", "name": "Pune", "slug": "pune", "state": "MH", "population": 5}])

    hits = await _client(handler).fetch_search_results("Pu")
    assert [h.slug for h in hits] == ["pune"]

@pytest.mark.asyncio
async def test_404_is_not_found():
    client = _client(lambda request: httpx.Response(404, json={"error": "District not found"}))
    with pytest.raises(NotFoundError):
        await client.fetch_district_detail("atlantis")

@pytest.mark.asyncio
async def test_server_error_is_fetch_error_not_transport():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(FetchError) as exc:
        await client.fetch_district_detail("pune")
    assert not isinstance(exc.value, TransportError)

@pytest.mark.asyncio
async def test_malformed_payload_is_fetch_error():
    client = _client(lambda request: httpx.Response(200, json={"name": "no id"}))
    with pytest.raises(FetchError):
        await client.fetch_district_detail("pune")
    client = _client(lambda request: httpx.Response(200, json={"not": "a list"}))
    with pytest.raises(FetchError):
        await client.fetch_search_results("Pu")

@pytest.mark.asyncio
async def test_transport_failures_are_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        await _client(handler, attempts=2).fetch_district_detail("pune")
    assert len(calls) == 2
