from typing import List, Optional

import httpx

from app.features.scan.schemas.pipeline import OrganicListing
from app.features.scan.services.fetchers.errors import RankQueryError
from app.platform.config import settings


class SerpApiRankQueryService:
    """One SerpApi Google query per keyword; returns the organic listings."""

    def __init__(
        self,
        api_key: Optional[str] = settings.SERPAPI_API_KEY,
        base_url: str = settings.SERPAPI_BASE_URL,
        timeout: float = settings.RANK_QUERY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def query(self, keyword: str, location: Optional[str] = None) -> List[OrganicListing]:
        params = {
            "api_key": self.api_key or "",
            "engine": "google",
            "q": keyword,
            "google_domain": "google.com",
            "gl": "us",
            "hl": "en",
            "num": "20",
        }
        if location:
            params["location"] = location

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.get(self.base_url, params=params)
            except httpx.HTTPError as e:
                raise RankQueryError(f"SERP query failed for '{keyword}': {e}") from e

        if not response.is_success:
            raise RankQueryError(f"SERP query for '{keyword}' returned HTTP {response.status_code}")

        listings = []
        for item in response.json().get("organic_results") or []:
            if not isinstance(item, dict):
                continue
            listings.append(
                OrganicListing(
                    position=item.get("position"),
                    link=item.get("link"),
                    title=item.get("title"),
                )
            )
        return listings
