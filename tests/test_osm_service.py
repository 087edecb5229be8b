from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from app.models.geo import Coordinate
from services.osm_service import OsmPlacesService
from services.search_provider import SearchProviderError, SearchRateLimitedError, SearchServerError

ENDPOINT = "https://overpass.example.com/api/interpreter"
ANCHOR = Coordinate(latitude=37.0, longitude=-122.0)


def _service(**overrides) -> OsmPlacesService:
    options = dict(
        endpoint=ENDPOINT,
        timeout_s=25,
        user_agent="mapnews-tests/1.0",
        max_results=40,
        max_retries=1,
        backoff_base_s=0,
    )
    options.update(overrides)
    return OsmPlacesService(**options)


def _sent_query(request: httpx.Request) -> str:
    return parse_qs(request.content.decode())["data"][0]


OVERPASS_PAYLOAD = {
    "elements": [
        {
            "type": "node",
            "id": 101,
            "lat": 37.001,
            "lon": -122.001,
            "tags": {
                "name": "Downtown Library",
                "amenity": "library",
                "addr:street": "Church St",
                "addr:housenumber": "224",
                "addr:city": "Santa Cruz",
                "website": "https://library.example.com",
            },
        },
        {
            "type": "way",
            "id": 202,
            "center": {"lat": 37.002, "lon": -122.002},
            "tags": {"name": "San Lorenzo Park", "leisure": "park"},
        },
        # duplicate of the library
        {"type": "node", "id": 101, "lat": 37.001, "lon": -122.001, "tags": {"name": "Downtown Library"}},
        # no coordinates
        {"type": "way", "id": 303, "tags": {"name": "Ghost"}},
        "garbage",
    ]
}


@pytest.mark.asyncio
async def test_search_by_category_normalizes_and_dedupes(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, json=OVERPASS_PAYLOAD)

    service = _service()
    try:
        results = await service.search_by_category(ANCHOR, 9000, ["library", "park"])
    finally:
        await service.aclose()

    assert [r.name for r in results] == ["Downtown Library", "San Lorenzo Park"]

    library, park = results
    assert library.subtitle == "Church St 224 · Santa Cruz"
    assert library.locality == "Santa Cruz"
    assert library.url == "https://library.example.com"
    assert library.category == "Library"
    assert library.provider_id == "node/101"
    assert library.coordinate == Coordinate(latitude=37.001, longitude=-122.001)

    assert park.coordinate == Coordinate(latitude=37.002, longitude=-122.002)
    assert park.category == "Park"
    assert park.subtitle is None
    assert park.url is None

    query = _sent_query(httpx_mock.get_requests()[0])
    assert query.startswith("[out:json][timeout:25];")
    assert 'node["amenity"="library"](around:9000,37.000000,-122.000000);' in query
    assert 'way["leisure"="park"](around:9000,37.000000,-122.000000);' in query
    assert query.endswith("out center 40;")


@pytest.mark.asyncio
async def test_results_are_capped(httpx_mock):
    elements = [
        {"type": "node", "id": i, "lat": 37.0 + i / 1000, "lon": -122.0, "tags": {"name": f"Park {i}", "leisure": "park"}}
        for i in range(5)
    ]
    httpx_mock.add_response(method="POST", url=ENDPOINT, json={"elements": elements})

    service = _service(max_results=3)
    try:
        results = await service.search_by_category(ANCHOR, 9000, ["park"])
    finally:
        await service.aclose()

    assert [r.name for r in results] == ["Park 0", "Park 1", "Park 2"]
    assert _sent_query(httpx_mock.get_requests()[0]).endswith("out center 3;")


@pytest.mark.asyncio
async def test_unknown_categories_use_fallback_tags(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, json={"elements": []})

    service = _service()
    try:
        assert await service.search_by_category(ANCHOR, 9000, ["nightclub"]) == []
    finally:
        await service.aclose()

    query = _sent_query(httpx_mock.get_requests()[0])
    assert '["tourism"="museum"]' in query


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=429)

    service = _service()
    try:
        with pytest.raises(SearchRateLimitedError):
            await service.search_by_category(ANCHOR, 9000, ["museum"])
    finally:
        await service.aclose()

    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_server_error_is_retried_then_succeeds(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=504)
    httpx_mock.add_response(method="POST", url=ENDPOINT, json={"elements": []})

    service = _service()
    try:
        assert await service.search_by_category(ANCHOR, 9000, ["museum"]) == []
    finally:
        await service.aclose()

    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_server_error_after_retries(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=503)
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=503)

    service = _service()
    try:
        with pytest.raises(SearchServerError):
            await service.search_by_category(ANCHOR, 9000, ["museum"])
    finally:
        await service.aclose()


@pytest.mark.asyncio
async def test_timeouts_become_server_errors(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

    service = _service(max_retries=0)
    try:
        with pytest.raises(SearchServerError):
            await service.search_by_category(ANCHOR, 9000, ["museum"])
    finally:
        await service.aclose()


@pytest.mark.asyncio
async def test_rejected_query_is_generic_failure(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=400, text="parse error")

    service = _service()
    try:
        with pytest.raises(SearchProviderError) as exc_info:
            await service.search_by_category(ANCHOR, 9000, ["museum"])
    finally:
        await service.aclose()

    assert type(exc_info.value) is SearchProviderError
    assert "400" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unreadable_response(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, text="runtime error: Query timed out")

    service = _service()
    try:
        with pytest.raises(SearchProviderError):
            await service.search_by_category(ANCHOR, 9000, ["museum"])
    finally:
        await service.aclose()


def test_union_query_handles_all_groups():
    service = OsmPlacesService(endpoint=ENDPOINT, timeout_s=10)
    query = service._build_union_query(
        52.0,
        4.5,
        500,
        [[{"all": [{"amenity": "school"}, {"school:type": "primary"}]}]],
        10,
    )
    assert 'node["amenity"="school"]["school:type"="primary"](around:500,52.000000,4.500000);' in query
    assert query.count("(around:") == 3
