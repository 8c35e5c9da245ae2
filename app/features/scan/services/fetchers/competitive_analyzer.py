"""
Competitive Analyzer

Compares the target's page with the top competitor page for keywords where
the target is not in the top 3, and turns the differences into findings.
"""
import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import httpx

from app.features.scan.schemas.pipeline import (
    CompetitiveFinding,
    CompetitiveResult,
    CompetitorSummary,
    RankResult,
)
from app.features.scan.services.fetchers.html_parser import (
    heading_texts,
    meta_content,
    page_title,
    schema_types,
    soup_of,
    visible_text,
    word_count,
)
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

MAX_FINDINGS = 30
MAX_COMPETITORS = 10
HEADING_MATCH_PREFIX = 20
SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
FRESHNESS_WORDS_RE = re.compile(r"updated|latest|new for 20\d\d")


@dataclass
class PageMetadata:
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    headings: List[str] = field(default_factory=list)
    schema_types: List[str] = field(default_factory=list)
    word_count: int = 0
    has_freshness_signals: bool = False


@dataclass
class ContentGap:
    keyword: str
    our_url: Optional[str]
    competitor_url: str
    competitor_domain: str
    competitor_position: Optional[int]
    our_position: Optional[int]
    missing_headings: List[str]
    missing_schema_types: List[str]
    content_depth_gap: int
    competitor_has_freshness: bool
    our_has_freshness: bool


def has_freshness_signals(body_text: str, modified_time: Optional[str], now: datetime = None) -> bool:
    """Recent year mentions, update wording or an article:modified_time meta."""
    now = now or datetime.now(timezone.utc)
    lowered = body_text.lower()
    recent_years = (str(now.year - 1), str(now.year))
    return (
        any(year in lowered for year in recent_years)
        or bool(FRESHNESS_WORDS_RE.search(lowered))
        or bool(modified_time)
    )


def extract_page_metadata(html: str, url: str) -> PageMetadata:
    soup = soup_of(html)
    headings = [h for h in heading_texts(soup, "h1", "h2", "h3")[:30] if len(h) > 2]
    body_text = soup.body.get_text(" ") if soup.body else soup.get_text(" ")
    return PageMetadata(
        url=url,
        title=page_title(soup),
        description=meta_content(soup, name="description"),
        headings=headings,
        schema_types=schema_types(soup),
        word_count=word_count(visible_text(soup)),
        has_freshness_signals=has_freshness_signals(
            body_text, meta_content(soup, prop="article:modified_time")
        ),
    )


def analyze_gap(
    keyword: str,
    ours: Optional[PageMetadata],
    theirs: PageMetadata,
    competitor_domain: str,
    competitor_position: Optional[int],
    our_position: Optional[int],
) -> ContentGap:
    our_headings = {h.lower()[:HEADING_MATCH_PREFIX] for h in (ours.headings if ours else [])}
    missing_headings = [
        h for h in theirs.headings if h.lower()[:HEADING_MATCH_PREFIX] not in our_headings
    ][:10]

    our_schemas = {s.lower() for s in (ours.schema_types if ours else [])}
    missing_schema_types = [s for s in theirs.schema_types if s.lower() not in our_schemas][:5]

    return ContentGap(
        keyword=keyword,
        our_url=ours.url if ours else None,
        competitor_url=theirs.url,
        competitor_domain=competitor_domain,
        competitor_position=competitor_position,
        our_position=our_position,
        missing_headings=missing_headings,
        missing_schema_types=missing_schema_types,
        content_depth_gap=theirs.word_count - (ours.word_count if ours else 0),
        competitor_has_freshness=theirs.has_freshness_signals,
        our_has_freshness=ours.has_freshness_signals if ours else False,
    )


def generate_findings(gaps: Sequence[ContentGap]) -> List[CompetitiveFinding]:
    findings = []
    for gap in gaps:
        if gap.our_position and gap.competitor_position:
            rank_delta = gap.competitor_position - gap.our_position
        else:
            rank_delta = 20
        common = dict(
            keyword=gap.keyword,
            our_url=gap.our_url,
            competitor_url=gap.competitor_url,
            competitor_domain=gap.competitor_domain,
        )

        missing = gap.missing_headings
        if len(missing) >= 2:
            if len(missing) >= 5 and abs(rank_delta) >= 5:
                severity = "high"
            elif len(missing) >= 3:
                severity = "medium"
            else:
                severity = "low"
            findings.append(CompetitiveFinding(
                type="content_gap",
                severity=severity,
                title=f"Missing {len(missing)} content topics vs {gap.competitor_domain}",
                description=(
                    f"For \"{gap.keyword}\", {gap.competitor_domain} covers topics your page doesn't: "
                    f"{', '.join(missing[:3])}"
                ),
                recommendation=f"Add sections covering: {'; '.join(missing[:5])}",
                evidence={
                    "missingHeadings": missing,
                    "ourPosition": gap.our_position,
                    "competitorPosition": gap.competitor_position,
                },
                **common,
            ))

        schemas = gap.missing_schema_types
        if schemas:
            joined = ", ".join(schemas)
            findings.append(CompetitiveFinding(
                type="schema_gap",
                severity="medium" if "FAQPage" in schemas or "HowTo" in schemas else "low",
                title=f"Missing schema: {joined}",
                description=f"{gap.competitor_domain} uses {joined} schema that your page lacks",
                recommendation=f"Add {joined} structured data markup",
                evidence={"missingSchemaTypes": schemas},
                **common,
            ))

        if gap.content_depth_gap > 300:
            findings.append(CompetitiveFinding(
                type="ranking_opportunity",
                severity="high" if gap.content_depth_gap > 1000 else "medium",
                title=f"Content depth gap: {gap.content_depth_gap} fewer words than {gap.competitor_domain}",
                description=(
                    f"Your page has ~{gap.content_depth_gap} fewer words than the top competitor "
                    f"for \"{gap.keyword}\""
                ),
                recommendation="Expand content depth with additional relevant sections",
                evidence={
                    "contentDepthGap": gap.content_depth_gap,
                    "ourPosition": gap.our_position,
                    "competitorPosition": gap.competitor_position,
                },
                **common,
            ))

        if gap.competitor_has_freshness and not gap.our_has_freshness:
            findings.append(CompetitiveFinding(
                type="freshness_issue",
                severity="low",
                title=f"{gap.competitor_domain} has freshness signals you lack",
                description=(
                    f"Competitor page for \"{gap.keyword}\" shows recent updates or dates, your page doesn't"
                ),
                recommendation="Add last-updated dates, publication dates, or recent content references",
                evidence={"competitorHasFreshness": True, "ourHasFreshness": False},
                **common,
            ))

    findings.sort(key=lambda f: SEVERITY_ORDER[f.severity])
    return findings[:MAX_FINDINGS]


def summarize_findings(findings: Sequence[CompetitiveFinding]) -> Dict[str, int]:
    return {
        "content_gaps": sum(1 for f in findings if f.type == "content_gap"),
        "schema_gaps": sum(1 for f in findings if f.type == "schema_gap"),
        "freshness_issues": sum(1 for f in findings if f.type == "freshness_issue"),
        "ranking_opportunities": sum(1 for f in findings if f.type == "ranking_opportunity"),
    }


class HttpCompetitiveAnalyzer:

    def __init__(
        self,
        max_keywords: int = settings.COMPETITIVE_MAX_KEYWORDS,
        fetch_timeout: float = settings.COMPETITIVE_FETCH_TIMEOUT_SECONDS,
        user_agent: str = settings.USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_keywords = max_keywords
        self.fetch_timeout = fetch_timeout
        self.user_agent = user_agent
        self.transport = transport

    async def analyze(self, domain: str, rank_results: Sequence[RankResult]) -> CompetitiveResult:
        targets = [r for r in rank_results if r.position is None or r.position > 3][: self.max_keywords]
        if not targets:
            return CompetitiveResult(ok=True, summary=summarize_findings([]))

        gaps = []
        stats: Dict[str, List[Optional[int]]] = {}

        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=self.fetch_timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        ) as client:
            homepage = await self._fetch_metadata(client, f"https://{domain}")

            for result in targets:
                if not result.competitors:
                    continue
                top = result.competitors[0]
                theirs = await self._fetch_metadata(client, top.url)
                if theirs is None:
                    continue
                ours = await self._fetch_metadata(client, result.url) if result.url else homepage
                gaps.append(analyze_gap(result.keyword, ours, theirs, top.domain, top.position, result.position))
                stats.setdefault(top.domain, []).append(top.position)

        findings = generate_findings(gaps)

        competitors = []
        for competitor_domain, positions in stats.items():
            known = [p for p in positions if p is not None]
            competitors.append(CompetitorSummary(
                domain=competitor_domain,
                keywords=len(positions),
                avg_position=round(sum(known) / len(known), 1) if known else 0.0,
            ))
        competitors.sort(key=lambda c: c.keywords, reverse=True)

        logger.info(
            f"[CompetitiveAnalyzer] Analyzed {len(gaps)} keyword gaps, generated {len(findings)} findings"
        )
        return CompetitiveResult(
            ok=True,
            findings=tuple(findings),
            competitors=tuple(competitors[:MAX_COMPETITORS]),
            summary=summarize_findings(findings),
        )

    async def _fetch_metadata(self, client: httpx.AsyncClient, url: str) -> Optional[PageMetadata]:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"[CompetitiveAnalyzer] fetch failed {url}: {e}")
            return None
        if not response.is_success or "text/html" not in response.headers.get("content-type", ""):
            return None
        return await asyncio.to_thread(extract_page_metadata, response.text, url)
