"""
PageSpeed Insights performance fetcher (mobile strategy, lab metrics).
"""
from typing import Any, Dict, Optional

import httpx

from app.features.scan.schemas.pipeline import AuditRecommendation, CoreWebVitals, PerformanceResult
from app.features.scan.services.fetchers.errors import PerformanceFetchError
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

MAX_RECOMMENDATIONS = 5


def _numeric(audits: Dict[str, Any], audit_id: str) -> Optional[float]:
    value = (audits.get(audit_id) or {}).get("numericValue")
    return float(value) if value is not None else None


def parse_pagespeed_payload(payload: Dict[str, Any]) -> PerformanceResult:
    lighthouse = payload.get("lighthouseResult") or {}
    audits = lighthouse.get("audits") or {}

    category_score = ((lighthouse.get("categories") or {}).get("performance") or {}).get("score")
    score = round(category_score * 100) if category_score is not None else None

    vitals = CoreWebVitals(
        lcp_ms=_numeric(audits, "largest-contentful-paint"),
        cls=_numeric(audits, "cumulative-layout-shift"),
        fcp_ms=_numeric(audits, "first-contentful-paint"),
        tbt_ms=_numeric(audits, "total-blocking-time"),
        speed_index=_numeric(audits, "speed-index"),
    )

    failing = [
        (audit_id, audit)
        for audit_id, audit in audits.items()
        if isinstance(audit, dict) and audit.get("score") is not None and audit["score"] < 1
    ]
    failing.sort(key=lambda item: item[1]["score"])
    recommendations = tuple(
        AuditRecommendation(
            id=audit_id,
            title=audit.get("title") or audit_id,
            score=audit["score"],
            display_value=audit.get("displayValue"),
        )
        for audit_id, audit in failing[:MAX_RECOMMENDATIONS]
    )

    return PerformanceResult(score=score, core_web_vitals=vitals, recommendations=recommendations)


class PageSpeedPerformanceFetcher:

    def __init__(
        self,
        api_key: Optional[str] = settings.GOOGLE_PAGESPEED_API_KEY,
        api_url: str = settings.PAGESPEED_API_URL,
        timeout: float = settings.PAGESPEED_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, domain: str) -> PerformanceResult:
        """
        Raises:
            PerformanceFetchError: non-2xx answer or an error payload from the API.
        """
        params = {"url": f"https://{domain}", "strategy": "mobile", "category": "performance"}
        if self.api_key:
            params["key"] = self.api_key

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.get(self.api_url, params=params, headers={"Accept": "application/json"})
            except httpx.HTTPError as e:
                raise PerformanceFetchError(f"PageSpeed request failed: {e}") from e

        if not response.is_success:
            raise PerformanceFetchError(f"PageSpeed returned HTTP {response.status_code}")

        payload = response.json()
        if payload.get("error"):
            message = (payload["error"] or {}).get("message") or "API error"
            raise PerformanceFetchError(f"PageSpeed error: {message}")

        result = parse_pagespeed_payload(payload)
        logger.info(f"[PageSpeed] {domain} score={result.score} lcp_ms={result.core_web_vitals.lcp_ms}")
        return result
