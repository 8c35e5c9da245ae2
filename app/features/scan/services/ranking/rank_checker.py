"""
Rank Checker

Sequential, paced and deadline-bounded driver over a rank query service.
Result count and order always match the input keywords.
"""
import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from app.features.scan.schemas.pipeline import (
    CompetitorListing,
    OrganicListing,
    RankCheckReport,
    RankResult,
    SerpKeyword,
)
from app.features.scan.services.orchestration.collaborators import RankQueryService
from app.platform.logger import get_logger
from app.platform.utils.url_validator import canonical_host, host_of

logger = get_logger(__name__)

MAX_COMPETITORS = 5


def not_ranking(keyword: SerpKeyword) -> RankResult:
    return RankResult(keyword=keyword.keyword, intent=keyword.intent, source=keyword.source)


def classify(keyword: SerpKeyword, listings: Sequence[OrganicListing], target_domain: str) -> RankResult:
    """
    First listing on the target host (apex or www.) gives the position;
    up to five other listings are kept as competitors.
    """
    target = canonical_host(target_domain)
    position = None
    url = None
    competitors = []

    for listing in listings:
        host = host_of(listing.link)
        if not host:
            continue
        if host == target:
            if position is None:
                position = listing.position
                url = listing.link
        else:
            competitors.append(
                CompetitorListing(domain=host, url=listing.link, title=listing.title, position=listing.position)
            )

    return RankResult(
        keyword=keyword.keyword,
        intent=keyword.intent,
        source=keyword.source,
        position=position,
        url=url,
        competitors=tuple(competitors[:MAX_COMPETITORS]),
    )


class RankChecker:

    def __init__(
        self,
        query_service: RankQueryService,
        target_domain: str,
        per_call_timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.query_service = query_service
        self.target_domain = target_domain
        self.per_call_timeout_s = per_call_timeout_s
        self._clock = clock
        self._sleep = sleep

    async def check_all(
        self,
        keywords: Sequence[SerpKeyword],
        location: Optional[str],
        deadline_ms: int,
        delay_ms: int,
    ) -> RankCheckReport:
        """
        Query every keyword in order, pausing `delay_ms` between queries.

        Once `deadline_ms` has elapsed no further query is issued; an in-flight
        query is abandoned. Unprocessed and failed keywords report position None.
        """
        deadline = self._clock() + deadline_ms / 1000
        results: List[RankResult] = []
        queries_issued = 0
        deadline_reached = False

        for index, keyword in enumerate(keywords):
            remaining = deadline - self._clock()
            if remaining <= 0:
                deadline_reached = True
                break

            queries_issued += 1
            try:
                listings = await asyncio.wait_for(
                    self.query_service.query(keyword.keyword, location),
                    timeout=min(self.per_call_timeout_s, remaining),
                )
                results.append(classify(keyword, listings, self.target_domain))
            except asyncio.TimeoutError:
                logger.warning(f"[RankChecker] query timed out keyword='{keyword.keyword}'")
                results.append(not_ranking(keyword))
            except Exception as e:
                logger.warning(f"[RankChecker] query failed keyword='{keyword.keyword}': {e}")
                results.append(not_ranking(keyword))

            if index < len(keywords) - 1:
                if deadline - self._clock() <= 0:
                    deadline_reached = True
                    break
                await self._sleep(delay_ms / 1000)

        if len(results) < len(keywords):
            logger.warning(
                f"[RankChecker] deadline_reached processed={len(results)} total={len(keywords)}"
            )
            results.extend(not_ranking(k) for k in keywords[len(results):])

        return RankCheckReport(
            results=tuple(results),
            queries_issued=queries_issued,
            deadline_reached=deadline_reached,
        )
