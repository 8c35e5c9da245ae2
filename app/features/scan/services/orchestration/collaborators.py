"""
External collaborators consumed by the scan pipeline.

Each is a narrow adapter around one external interaction. The pipeline only
relies on these protocols, so tests substitute in-memory fakes.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from app.features.scan.schemas.pipeline import (
    AIReadinessResult,
    CompetitiveResult,
    CrawlOptions,
    CrawlResult,
    OrganicListing,
    PerformanceResult,
    RankResult,
)
from app.features.scan.services.fetchers.ai_readiness_analyzer import HtmlAIReadinessAnalyzer
from app.features.scan.services.fetchers.competitive_analyzer import HttpCompetitiveAnalyzer
from app.features.scan.services.fetchers.crawl_fetcher import HttpCrawlFetcher
from app.features.scan.services.fetchers.performance_fetcher import PageSpeedPerformanceFetcher
from app.features.scan.services.fetchers.rank_query_service import SerpApiRankQueryService


class CrawlFetcher(Protocol):
    async def crawl(self, domain: str, options: CrawlOptions) -> CrawlResult:
        ...


class PerformanceFetcher(Protocol):
    async def fetch(self, domain: str) -> PerformanceResult:
        ...


class RankQueryService(Protocol):
    configured: bool

    async def query(self, keyword: str, location: Optional[str] = None) -> List[OrganicListing]:
        ...


class CompetitiveAnalyzer(Protocol):
    async def analyze(self, domain: str, rank_results: Sequence[RankResult]) -> CompetitiveResult:
        ...


class AIReadinessAnalyzer(Protocol):
    async def analyze(self, html: str, url: str) -> AIReadinessResult:
        ...


@dataclass
class ScanCollaborators:
    crawl_fetcher: CrawlFetcher = field(default_factory=HttpCrawlFetcher)
    performance_fetcher: PerformanceFetcher = field(default_factory=PageSpeedPerformanceFetcher)
    rank_query_service: RankQueryService = field(default_factory=SerpApiRankQueryService)
    competitive_analyzer: CompetitiveAnalyzer = field(default_factory=HttpCompetitiveAnalyzer)
    ai_readiness_analyzer: AIReadinessAnalyzer = field(default_factory=HtmlAIReadinessAnalyzer)
