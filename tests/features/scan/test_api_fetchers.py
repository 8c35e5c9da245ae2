import json

import httpx
import pytest

from app.features.scan.services.fetchers.errors import PerformanceFetchError, RankQueryError
from app.features.scan.services.fetchers.performance_fetcher import PageSpeedPerformanceFetcher
from app.features.scan.services.fetchers.rank_query_service import SerpApiRankQueryService

PAGESPEED_PAYLOAD = {
    "lighthouseResult": {
        "categories": {"performance": {"score": 0.72}},
        "audits": {
            "largest-contentful-paint": {"numericValue": 3120.5, "score": 0.4, "title": "Largest Contentful Paint"},
            "cumulative-layout-shift": {"numericValue": 0.12, "score": 0.8, "title": "Cumulative Layout Shift"},
            "first-contentful-paint": {"numericValue": 1400, "score": 1},
            "total-blocking-time": {"numericValue": 210, "score": 0.6, "title": "Total Blocking Time"},
            "render-blocking-resources": {"score": 0.1, "title": "Eliminate render-blocking resources",
                                          "displayValue": "Potential savings of 600 ms"},
            "diagnostics": {"score": None},
        },
    }
}


def json_transport(status_code, payload, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, content=json.dumps(payload), headers={"content-type": "application/json"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_pagespeed_parses_score_vitals_and_recommendations():
    seen = []
    fetcher = PageSpeedPerformanceFetcher(api_key="psi-key", transport=json_transport(200, PAGESPEED_PAYLOAD, seen))

    result = await fetcher.fetch("example.com")

    params = seen[0].url.params
    assert params["url"] == "https://example.com"
    assert params["strategy"] == "mobile"
    assert params["key"] == "psi-key"

    assert result.score == 72
    assert result.core_web_vitals.lcp_ms == 3120.5
    assert result.core_web_vitals.cls == 0.12
    assert result.core_web_vitals.speed_index is None
    # worst audits first, passing audits left out
    assert [r.id for r in result.recommendations] == [
        "render-blocking-resources",
        "largest-contentful-paint",
        "total-blocking-time",
        "cumulative-layout-shift",
    ]
    assert result.recommendations[0].display_value == "Potential savings of 600 ms"


@pytest.mark.asyncio
async def test_pagespeed_without_key_omits_it():
    seen = []
    fetcher = PageSpeedPerformanceFetcher(api_key=None, transport=json_transport(200, PAGESPEED_PAYLOAD, seen))

    await fetcher.fetch("example.com")

    assert "key" not in seen[0].url.params


@pytest.mark.asyncio
async def test_pagespeed_http_error():
    fetcher = PageSpeedPerformanceFetcher(transport=json_transport(500, {}))

    with pytest.raises(PerformanceFetchError, match="PageSpeed returned HTTP 500"):
        await fetcher.fetch("example.com")


@pytest.mark.asyncio
async def test_pagespeed_error_payload():
    fetcher = PageSpeedPerformanceFetcher(transport=json_transport(200, {"error": {"message": "Quota exceeded"}}))

    with pytest.raises(PerformanceFetchError, match="Quota exceeded"):
        await fetcher.fetch("example.com")


@pytest.mark.asyncio
async def test_serpapi_query_returns_organic_listings():
    seen = []
    payload = {
        "organic_results": [
            {"position": 1, "link": "https://rival.com/drains", "title": "Rival Drains"},
            {"position": 2, "link": "https://example.com/drain-cleaning", "title": "Acme"},
            "garbage",
        ]
    }
    service = SerpApiRankQueryService(api_key="serp-key", transport=json_transport(200, payload, seen))

    listings = await service.query("drain cleaning sacramento", "Sacramento, CA")

    params = seen[0].url.params
    assert params["q"] == "drain cleaning sacramento"
    assert params["location"] == "Sacramento, CA"
    assert params["num"] == "20"
    assert [(listing.position, listing.link) for listing in listings] == [
        (1, "https://rival.com/drains"),
        (2, "https://example.com/drain-cleaning"),
    ]


@pytest.mark.asyncio
async def test_serpapi_without_results():
    service = SerpApiRankQueryService(api_key="serp-key", transport=json_transport(200, {"search_metadata": {}}))

    assert await service.query("drain cleaning") == []


@pytest.mark.asyncio
async def test_serpapi_http_error():
    service = SerpApiRankQueryService(api_key="serp-key", transport=json_transport(429, {"error": "rate limited"}))

    with pytest.raises(RankQueryError, match="HTTP 429"):
        await service.query("drain cleaning")


@pytest.mark.asyncio
async def test_serpapi_network_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    service = SerpApiRankQueryService(api_key="serp-key", transport=httpx.MockTransport(handler))

    with pytest.raises(RankQueryError):
        await service.query("drain cleaning")


def test_serpapi_configured_flag():
    assert SerpApiRankQueryService(api_key="serp-key").configured is True
    assert SerpApiRankQueryService(api_key=None).configured is False
    assert SerpApiRankQueryService(api_key="").configured is False
