import pytest

from app.features.scan.services.fetchers.ai_readiness_analyzer import HtmlAIReadinessAnalyzer
from app.features.scan.services.fetchers.errors import CrawlFetchError
from app.features.scan.services.orchestration.collaborators import ScanCollaborators
from app.features.scan.schemas.pipeline import OrganicListing

from scan_fakes import (
    FakeCompetitiveAnalyzer,
    FakeCrawlFetcher,
    FakePerformanceFetcher,
    FakeRankQueryService,
    good_crawl,
    good_performance,
)


@pytest.fixture
def collaborators():
    return ScanCollaborators(
        crawl_fetcher=FakeCrawlFetcher(good_crawl()),
        performance_fetcher=FakePerformanceFetcher(good_performance()),
        rank_query_service=FakeRankQueryService(
            listings={
                "drain cleaning sacramento": [
                    OrganicListing(position=1, link="https://rival.com/drains", title="Rival"),
                    OrganicListing(position=2, link="https://www.example.com/drain-cleaning", title="Acme"),
                ],
            }
        ),
        competitive_analyzer=FakeCompetitiveAnalyzer(),
        ai_readiness_analyzer=HtmlAIReadinessAnalyzer(),
    )


@pytest.fixture
def failing_crawl_collaborators(collaborators):
    collaborators.crawl_fetcher = FakeCrawlFetcher(error=CrawlFetchError("connection refused"))
    return collaborators
