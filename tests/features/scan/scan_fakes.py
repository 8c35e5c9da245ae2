"""In-memory collaborators and sample pages shared by the scan pipeline tests."""
import asyncio
from typing import Dict, List, Optional

from app.features.scan.schemas.pipeline import (
    CompetitiveResult,
    CompetitorSummary,
    CoreWebVitals,
    CrawlFinding,
    CrawlResult,
    CrawlSummary,
    OrganicListing,
    PerformanceResult,
)


HOMEPAGE_HTML = """
<html>
<head>
  <title>Acme Plumbing | Drain Cleaning in Sacramento</title>
  <meta name="description" content="Emergency plumbing repair, drain cleaning, water heater installation.">
  <meta property="og:site_name" content="Acme Plumbing">
  <link rel="canonical" href="https://example.com/">
  <script type="application/ld+json">
  {"@context": "https://schema.org", "@type": "LocalBusiness", "name": "Acme Plumbing",
   "telephone": "916-555-0100",
   "address": {"@type": "PostalAddress", "addressLocality": "Sacramento", "addressRegion": "CA"}}
  </script>
</head>
<body>
  <nav>
    <a href="/">Home</a>
    <a href="/drain-cleaning">Drain Cleaning</a>
    <a href="/water-heaters">Water Heater Installation</a>
  </nav>
  <h1>Sacramento Plumbing Experts</h1>
  <section id="services">
    <h2>Drain Cleaning</h2>
    <h2>Water Heater Installation</h2>
    <h2>Leak Detection</h2>
  </section>
  <h2>Why choose us?</h2>
  <p>We are a family owned plumbing company serving Sacramento, CA since 1998.</p>
  <ul><li>Licensed</li><li>Insured</li></ul>
</body>
</html>
"""


def crawl_finding(severity: str, category: str = "titles", rule_id: str = "RULE_TEST") -> CrawlFinding:
    return CrawlFinding(
        url="https://example.com/",
        category=category,
        rule_id=rule_id,
        severity=severity,
        summary=f"{severity} {category} issue",
        suggested_action="Fix it",
    )


class FakeCrawlFetcher:

    def __init__(self, result: Optional[CrawlResult] = None, error: Optional[Exception] = None, delay: float = 0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def crawl(self, domain, options):
        self.calls.append((domain, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class FakePerformanceFetcher:

    def __init__(self, result: Optional[PerformanceResult] = None, error: Optional[Exception] = None, delay: float = 0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def fetch(self, domain):
        self.calls.append(domain)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class FakeRankQueryService:

    def __init__(self, configured: bool = True, listings: Optional[Dict[str, List[OrganicListing]]] = None):
        self.configured = configured
        self.listings = listings or {}
        self.queries = []

    async def query(self, keyword, location=None):
        self.queries.append((keyword, location))
        return self.listings.get(keyword, [])


class FakeCompetitiveAnalyzer:

    def __init__(self):
        self.calls = []

    async def analyze(self, domain, rank_results):
        self.calls.append((domain, list(rank_results)))
        return CompetitiveResult(
            competitors=(CompetitorSummary(domain="rival.com", keywords=1, avg_position=2.0),),
            summary={"content_gaps": 0, "schema_gaps": 0, "ranking_opportunities": 0, "freshness_issues": 0},
        )


def good_crawl() -> CrawlResult:
    findings = (
        crawl_finding("high", "headings", "RULE_H1_MISSING"),
        crawl_finding("medium", "titles", "RULE_META_DESC_MISSING"),
        crawl_finding("medium", "images", "RULE_IMG_MISSING_ALT"),
    )
    return CrawlResult(
        ok=True,
        html=HOMEPAGE_HTML,
        findings=findings,
        summary=CrawlSummary(health_score=91, pages_crawled=3, indexable=3, findings=3, high=1, medium=2),
        pages_crawled=3,
    )


def good_performance(lcp_ms: float = 3000, cls: float = 0.05, score: int = 80) -> PerformanceResult:
    return PerformanceResult(score=score, core_web_vitals=CoreWebVitals(lcp_ms=lcp_ms, cls=cls))


