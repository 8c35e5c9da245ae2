"""
HTTP crawl fetcher: homepage plus same-domain pages one link deep.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from app.features.scan.schemas.pipeline import CrawlFinding, CrawlOptions, CrawlResult, CrawlSummary
from app.features.scan.services.fetchers.finding_rules import (
    PageFacts,
    calculate_health_score,
    run_finding_rules,
)
from app.features.scan.services.fetchers.html_parser import (
    ParsedPage,
    determine_indexability,
    parse_page,
)
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CrawledPage:
    url: str
    status_code: int
    indexability: str
    html: str = ""
    parsed: Optional[ParsedPage] = None
    findings: Tuple[CrawlFinding, ...] = ()


def _page_key(url: str) -> str:
    return url.rstrip("/").lower()


class HttpCrawlFetcher:

    def __init__(
        self,
        user_agent: str = settings.USER_AGENT,
        timeout: float = settings.CRAWL_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    async def crawl(self, domain: str, options: CrawlOptions) -> CrawlResult:
        """
        Crawl `domain` over HTTPS.

        A homepage that cannot be fetched, or answers with an error status,
        makes the whole result `ok=False`; failures of secondary pages are
        recorded as error pages.
        """
        base_url = f"https://{domain}"
        logger.info(f"[TechnicalCrawler] Starting crawl of {domain} (max {options.max_pages} pages)")

        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        ) as client:
            try:
                homepage = await self._fetch_page(client, base_url, domain)
            except httpx.HTTPError as e:
                logger.warning(f"[TechnicalCrawler] Homepage fetch failed for {domain}: {e}")
                return CrawlResult(ok=False, error=f"Homepage fetch failed: {e}")

            if homepage.status_code >= 400:
                return CrawlResult(
                    ok=False,
                    findings=homepage.findings,
                    pages_crawled=1,
                    error=f"Homepage returned HTTP {homepage.status_code}",
                )

            pages = [homepage]
            to_visit = self._discover(homepage, options)
            if to_visit:
                semaphore = asyncio.Semaphore(max(1, options.concurrency))

                async def visit(url: str) -> CrawledPage:
                    async with semaphore:
                        try:
                            return await self._fetch_page(client, url, domain)
                        except httpx.HTTPError as e:
                            logger.warning(f"[TechnicalCrawler] Failed to load page {url}: {e}")
                            return CrawledPage(url=url, status_code=0, indexability="error")

                pages.extend(await asyncio.gather(*(visit(url) for url in to_visit)))

        findings = [f for page in pages for f in page.findings]
        summary = self._summarize(pages, findings)
        logger.info(
            f"[TechnicalCrawler] Crawl complete: {len(pages)} pages, {len(findings)} findings "
            f"(health {summary.health_score})"
        )
        return CrawlResult(
            ok=True,
            html=homepage.html,
            findings=tuple(findings),
            summary=summary,
            pages_crawled=len(pages),
        )

    async def _fetch_page(self, client: httpx.AsyncClient, url: str, domain: str) -> CrawledPage:
        response = await client.get(url)
        content_type = response.headers.get("content-type", "")
        html = ""
        if "text/html" in content_type and response.is_success:
            html = response.text

        parsed = await asyncio.to_thread(parse_page, html, str(response.url), domain) if html else None
        indexability = determine_indexability(
            response.status_code,
            content_type,
            parsed.robots_meta if parsed else None,
            response.headers.get("x-robots-tag"),
            parsed.canonical_url if parsed else None,
            str(response.url),
        )

        facts = PageFacts(url=url, status_code=response.status_code, indexability=indexability)
        if parsed is not None:
            facts.canonical_url = parsed.canonical_url
            facts.title = parsed.title
            facts.title_len = parsed.title_len
            facts.meta_description = parsed.meta_description
            facts.meta_description_len = parsed.meta_description_len
            facts.h1_texts = parsed.h1_texts
            facts.word_count = parsed.word_count
            facts.outlinks_count = len(parsed.internal_links)
            facts.images_missing_alt = sum(1 for img in parsed.images if not img.alt)
            facts.images_missing_size = sum(
                1 for img in parsed.images if not (img.has_width and img.has_height)
            )

        return CrawledPage(
            url=url,
            status_code=response.status_code,
            indexability=indexability,
            html=html,
            parsed=parsed,
            findings=tuple(run_finding_rules(facts)),
        )

    @staticmethod
    def _discover(homepage: CrawledPage, options: CrawlOptions) -> List[str]:
        if homepage.parsed is None or options.max_depth < 1:
            return []
        seen = {_page_key(homepage.url)}
        urls = []
        for link in homepage.parsed.internal_links:
            if len(urls) >= options.max_pages - 1:
                break
            key = _page_key(link.href)
            if key in seen:
                continue
            seen.add(key)
            urls.append(link.href)
        return urls

    @staticmethod
    def _summarize(pages: List[CrawledPage], findings: List[CrawlFinding]) -> CrawlSummary:
        by_severity = {"critical": 0, "high": 0, "medium": 0, "low": 0}
        for finding in findings:
            by_severity[finding.severity] += 1
        return CrawlSummary(
            health_score=calculate_health_score(len(pages), findings),
            pages_crawled=len(pages),
            indexable=sum(1 for p in pages if p.indexability == "indexable"),
            errors=sum(1 for p in pages if p.status_code >= 400 or p.status_code == 0),
            findings=len(findings),
            **by_severity,
        )
