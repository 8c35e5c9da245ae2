"""
Phase Table

Declarative description of the scan pipeline: every phase names its
dependencies, the agent it runs as (if any), the modes it is scheduled in,
and a `run_if` predicate that returns a skip reason or None.

    crawl ─┐
           ├─> phase_a ─> keywords ─> serp ─> competitive (full only)
    perf  ─┘       └────> ai_readiness
"""
import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from app.features.scan.models.scan_request import ScanMode
from app.features.scan.schemas.pipeline import (
    AIReadinessResult,
    CompetitiveResult,
    CrawlOptions,
    CrawlResult,
    KeywordPlan,
    PerformanceResult,
    PhaseAOutput,
    RankCheckReport,
    ScanContext,
)
from app.features.scan.services.keywords.keyword_builder import derive_keyword_plan
from app.features.scan.services.orchestration.collaborators import ScanCollaborators
from app.features.scan.services.ranking.rank_checker import RankChecker
from app.platform.config import Settings

ALL_MODES: FrozenSet[ScanMode] = frozenset({ScanMode.light, ScanMode.full})


@dataclass(frozen=True)
class PhaseResult:
    """Settled outcome of one phase, handed by value to dependents."""
    name: str
    state: str
    value: Any = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == "completed"


@dataclass(frozen=True)
class PhaseRunContext:
    scan: ScanContext
    inputs: Mapping[str, PhaseResult]
    collaborators: ScanCollaborators
    settings: Settings

    def value(self, name: str) -> Any:
        result = self.inputs.get(name)
        return result.value if result is not None else None


@dataclass(frozen=True)
class PhaseSpec:
    name: str
    run: Callable[[PhaseRunContext], Awaitable[Any]]
    depends_on: Tuple[str, ...] = ()
    agent_name: Optional[str] = None
    run_if: Optional[Callable[[PhaseRunContext], Optional[str]]] = None
    modes: FrozenSet[ScanMode] = field(default=ALL_MODES)
    summarize: Optional[Callable[[Any], Optional[Dict[str, Any]]]] = None


class PhaseTableError(ValueError):
    pass


def freeze_inputs(inputs: Dict[str, PhaseResult]) -> Mapping[str, PhaseResult]:
    return MappingProxyType(dict(inputs))


# ============================================================================
# Phase A: crawl + performance
# ============================================================================

async def run_crawl(ctx: PhaseRunContext) -> CrawlResult:
    options = CrawlOptions(
        max_pages=ctx.settings.crawl_max_pages(ctx.scan.mode.value),
        max_depth=1,
        concurrency=ctx.settings.CRAWL_CONCURRENCY,
    )
    return await ctx.collaborators.crawl_fetcher.crawl(ctx.scan.domain, options)


def summarize_crawl(result: CrawlResult) -> Dict[str, Any]:
    return {
        "ok": result.ok,
        "pages_crawled": result.pages_crawled,
        "findings": len(result.findings),
        "health_score": result.summary.health_score if result.summary else None,
    }


async def run_performance(ctx: PhaseRunContext) -> PerformanceResult:
    return await ctx.collaborators.performance_fetcher.fetch(ctx.scan.domain)


def summarize_performance(result: PerformanceResult) -> Dict[str, Any]:
    return {
        "performance_score": result.score,
        "lcp_ms": result.core_web_vitals.lcp_ms,
        "cls": result.core_web_vitals.cls,
        "recommendations": len(result.recommendations),
    }


async def run_phase_a(ctx: PhaseRunContext) -> PhaseAOutput:
    crawl_result = ctx.inputs.get("crawl")
    perf_result = ctx.inputs.get("performance")

    crawl: Optional[CrawlResult] = crawl_result.value if crawl_result else None
    crawl_ok = bool(crawl_result and crawl_result.completed and crawl and crawl.ok)
    perf_ok = bool(perf_result and perf_result.completed and perf_result.value is not None)

    return PhaseAOutput(
        crawl_ok=crawl_ok,
        raw_html=crawl.html if crawl_ok else "",
        crawl_findings=crawl.findings if crawl else (),
        crawl_summary=crawl.summary if crawl_ok else None,
        pages_crawled=crawl.pages_crawled if crawl else 0,
        crawl_error=None if crawl_ok else (crawl_result.error if crawl_result else "Crawl not run"),
        performance_ok=perf_ok,
        performance=perf_result.value if perf_ok else None,
        performance_error=None if perf_ok else (perf_result.error if perf_result else "Performance not run"),
    )


# ============================================================================
# Phase B: keywords
# ============================================================================

async def run_keywords(ctx: PhaseRunContext) -> KeywordPlan:
    return await asyncio.to_thread(
        derive_keyword_plan,
        ctx.value("phase_a"),
        ctx.scan.domain,
        ctx.scan.location,
        ctx.settings.keyword_cap(ctx.scan.mode.value),
    )


# ============================================================================
# Phase C: rank check
# ============================================================================

def serp_skip_reason(ctx: PhaseRunContext) -> Optional[str]:
    if not ctx.collaborators.rank_query_service.configured:
        return "SERPAPI_API_KEY not configured"
    plan: Optional[KeywordPlan] = ctx.value("keywords")
    if plan is None or not plan.keywords:
        return "No keywords derived"
    return None


async def run_serp(ctx: PhaseRunContext) -> RankCheckReport:
    plan: KeywordPlan = ctx.value("keywords")
    checker = RankChecker(
        ctx.collaborators.rank_query_service,
        ctx.scan.domain,
        per_call_timeout_s=ctx.settings.RANK_QUERY_TIMEOUT_SECONDS,
    )
    return await checker.check_all(
        plan.keywords,
        ctx.scan.location,
        deadline_ms=ctx.settings.RANK_CHECK_DEADLINE_MS,
        delay_ms=ctx.settings.RANK_CHECK_DELAY_MS,
    )


def summarize_serp(report: RankCheckReport) -> Dict[str, Any]:
    return {
        "checked": len(report.results),
        "ranking": report.ranking_count,
        "queries_issued": report.queries_issued,
        "deadline_reached": report.deadline_reached,
    }


# ============================================================================
# Phase D: competitive analysis
# ============================================================================

def competitive_skip_reason(ctx: PhaseRunContext) -> Optional[str]:
    serp = ctx.inputs.get("serp")
    if serp is None or not serp.completed or not serp.value or not serp.value.results:
        return "No SERP data available for competitive analysis"
    return None


async def run_competitive(ctx: PhaseRunContext) -> CompetitiveResult:
    report: RankCheckReport = ctx.value("serp")
    return await ctx.collaborators.competitive_analyzer.analyze(ctx.scan.domain, report.results)


def summarize_competitive(result: CompetitiveResult) -> Dict[str, Any]:
    return {
        "findings_count": result.findings_count,
        "competitors": len(result.competitors),
        **result.summary,
    }


# ============================================================================
# Phase E: AI readiness
# ============================================================================

def ai_readiness_skip_reason(ctx: PhaseRunContext) -> Optional[str]:
    if not ctx.settings.AI_READINESS_ENABLED:
        return "AI readiness analysis disabled"
    phase_a: Optional[PhaseAOutput] = ctx.value("phase_a")
    if phase_a is None or not phase_a.has_content:
        return "No HTML available (technical crawl failed)"
    return None


async def run_ai_readiness(ctx: PhaseRunContext) -> AIReadinessResult:
    phase_a: PhaseAOutput = ctx.value("phase_a")
    return await ctx.collaborators.ai_readiness_analyzer.analyze(phase_a.raw_html, ctx.scan.site_url)


def summarize_ai_readiness(result: AIReadinessResult) -> Dict[str, Any]:
    return {
        "ai_visibility_score": result.ai_visibility_score,
        "structured_data_coverage": result.structured_data_coverage,
        "entity_coverage": result.entity_coverage,
        "llm_answerability": result.llm_answerability,
        "findings": len(result.findings),
    }


PHASE_TABLE: Tuple[PhaseSpec, ...] = (
    PhaseSpec(
        name="crawl",
        agent_name="technical_crawl",
        run=run_crawl,
        summarize=summarize_crawl,
    ),
    PhaseSpec(
        name="performance",
        agent_name="cwv",
        run=run_performance,
        summarize=summarize_performance,
    ),
    PhaseSpec(
        name="phase_a",
        depends_on=("crawl", "performance"),
        run=run_phase_a,
    ),
    PhaseSpec(
        name="keywords",
        depends_on=("phase_a",),
        run=run_keywords,
    ),
    PhaseSpec(
        name="serp",
        depends_on=("keywords",),
        agent_name="serp",
        run=run_serp,
        run_if=serp_skip_reason,
        summarize=summarize_serp,
    ),
    PhaseSpec(
        name="competitive",
        depends_on=("serp",),
        agent_name="competitive",
        run=run_competitive,
        run_if=competitive_skip_reason,
        modes=frozenset({ScanMode.full}),
        summarize=summarize_competitive,
    ),
    PhaseSpec(
        name="ai_readiness",
        depends_on=("phase_a",),
        agent_name="atlas_ai",
        run=run_ai_readiness,
        run_if=ai_readiness_skip_reason,
        summarize=summarize_ai_readiness,
    ),
)


def validate_phase_table(phases: Sequence[PhaseSpec]) -> List[PhaseSpec]:
    """
    Check names are unique, dependencies exist and the graph is acyclic.

    Returns:
        The phases in a topological order (table order among ready phases).

    Raises:
        PhaseTableError: on any of the above violations.
    """
    by_name: Dict[str, PhaseSpec] = {}
    for phase in phases:
        if phase.name in by_name:
            raise PhaseTableError(f"Duplicate phase name: {phase.name}")
        by_name[phase.name] = phase

    for phase in phases:
        for dep in phase.depends_on:
            if dep not in by_name:
                raise PhaseTableError(f"Phase '{phase.name}' depends on unknown phase '{dep}'")

    ordered: List[PhaseSpec] = []
    placed = set()
    remaining = list(phases)
    while remaining:
        ready = [p for p in remaining if all(d in placed for d in p.depends_on)]
        if not ready:
            cycle = ", ".join(p.name for p in remaining)
            raise PhaseTableError(f"Dependency cycle among phases: {cycle}")
        for phase in ready:
            ordered.append(phase)
            placed.add(phase.name)
        remaining = [p for p in remaining if p.name not in placed]
    return ordered


def scheduled_agents(mode: ScanMode, phases: Sequence[PhaseSpec] = PHASE_TABLE) -> List[str]:
    return [p.agent_name for p in phases if p.agent_name and mode in p.modes]
