"""
Pipeline Schemas

Typed values exchanged between the scan agents, the phase scheduler and the
score aggregator. All of them are immutable once built: a phase receives its
inputs by value and never writes into another phase's data.
"""
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.features.scan.models.agent_run import AgentRunStatus
from app.features.scan.models.scan_request import ScanMode

Severity = Literal["critical", "high", "medium", "low"]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================================================
# Scan / agent context
# ============================================================================

class ScanContext(FrozenModel):
    scan_id: str
    domain: str
    mode: ScanMode
    location: Optional[str] = None

    @property
    def site_url(self) -> str:
        return f"https://{self.domain}"


class AgentContext(FrozenModel):
    scan_id: str
    agent_name: str
    mode: ScanMode


class AgentOutcome(BaseModel):
    """Tagged result of one agent: never an exception, always a terminal status."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    agent_name: str
    status: AgentRunStatus
    result: Any = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == AgentRunStatus.completed


# ============================================================================
# Phase A: crawl + performance
# ============================================================================

class CrawlOptions(FrozenModel):
    max_pages: int = 10
    max_depth: int = 1
    concurrency: int = 3


class CrawlFinding(FrozenModel):
    url: str
    category: str
    rule_id: str
    severity: Severity
    summary: str
    evidence: Dict[str, Any] = Field(default_factory=dict)
    suggested_action: Optional[str] = None


class CrawlSummary(FrozenModel):
    health_score: Optional[int] = None
    pages_crawled: int = 0
    indexable: int = 0
    errors: int = 0
    findings: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class CrawlResult(FrozenModel):
    ok: bool
    html: str = ""
    findings: Tuple[CrawlFinding, ...] = ()
    summary: Optional[CrawlSummary] = None
    pages_crawled: int = 0
    error: Optional[str] = None


class CoreWebVitals(FrozenModel):
    lcp_ms: Optional[float] = None
    cls: Optional[float] = None
    fcp_ms: Optional[float] = None
    tbt_ms: Optional[float] = None
    speed_index: Optional[float] = None


class AuditRecommendation(FrozenModel):
    id: str
    title: str
    score: Optional[float] = None
    display_value: Optional[str] = None


class PerformanceResult(FrozenModel):
    score: Optional[int] = None
    core_web_vitals: CoreWebVitals = Field(default_factory=CoreWebVitals)
    recommendations: Tuple[AuditRecommendation, ...] = ()


class PhaseAOutput(FrozenModel):
    """Settled result of Phase A, handed by value to Phase B and Phase E."""
    crawl_ok: bool = False
    raw_html: str = ""
    crawl_findings: Tuple[CrawlFinding, ...] = ()
    crawl_summary: Optional[CrawlSummary] = None
    pages_crawled: int = 0
    crawl_error: Optional[str] = None

    performance_ok: bool = False
    performance: Optional[PerformanceResult] = None
    performance_error: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return self.crawl_ok and bool(self.raw_html)


# ============================================================================
# Phase B: service detection + keywords
# ============================================================================

class HomepageEvidence(FrozenModel):
    headings: Tuple[str, ...] = ()
    nav: Tuple[str, ...] = ()
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    cta: Tuple[str, ...] = ()


class HomepageScanResult(FrozenModel):
    site_url: str
    business_name: Optional[str] = None
    services: Tuple[str, ...] = ()
    service_categories: Tuple[str, ...] = ()
    location_cues: Tuple[str, ...] = ()
    confidence: float = 0.0
    evidence: HomepageEvidence = Field(default_factory=HomepageEvidence)


KeywordIntent = Literal["high_intent", "informational", "local"]


class SerpKeyword(FrozenModel):
    keyword: str
    intent: KeywordIntent
    source: str


class KeywordPlan(FrozenModel):
    keywords: Tuple[SerpKeyword, ...] = ()
    service_detection_warning: bool = False
    homepage_scan: Optional[HomepageScanResult] = None
    location: Optional[str] = None


# ============================================================================
# Phase C: rank checking
# ============================================================================

class OrganicListing(FrozenModel):
    position: Optional[int] = None
    link: Optional[str] = None
    title: Optional[str] = None


class CompetitorListing(FrozenModel):
    domain: str
    url: str
    title: Optional[str] = None
    position: Optional[int] = None


class RankResult(FrozenModel):
    keyword: str
    intent: Optional[KeywordIntent] = None
    source: Optional[str] = None
    position: Optional[int] = None
    url: Optional[str] = None
    competitors: Tuple[CompetitorListing, ...] = ()


class RankCheckReport(FrozenModel):
    results: Tuple[RankResult, ...] = ()
    queries_issued: int = 0
    deadline_reached: bool = False

    @property
    def ranking_count(self) -> int:
        return sum(1 for r in self.results if r.position is not None)


# ============================================================================
# Phase D / E: competitive analysis + AI readiness
# ============================================================================

class CompetitiveFinding(FrozenModel):
    type: Literal["content_gap", "ranking_opportunity", "freshness_issue", "schema_gap"]
    severity: Severity
    keyword: str
    title: str
    description: str
    recommendation: str
    our_url: Optional[str] = None
    competitor_url: str
    competitor_domain: str
    evidence: Dict[str, Any] = Field(default_factory=dict)


class CompetitorSummary(FrozenModel):
    domain: str
    keywords: int
    avg_position: float


class CompetitiveResult(FrozenModel):
    ok: bool = True
    findings: Tuple[CompetitiveFinding, ...] = ()
    competitors: Tuple[CompetitorSummary, ...] = ()
    summary: Dict[str, int] = Field(default_factory=dict)

    @property
    def findings_count(self) -> int:
        return len(self.findings)


class ChecklistItem(FrozenModel):
    key: str
    label: str
    passed: bool


class AIReadinessFinding(FrozenModel):
    key: str
    title: str
    severity: Severity
    recommendation: str


class AIReadinessResult(FrozenModel):
    ai_visibility_score: int
    structured_data_coverage: int
    entity_coverage: int
    llm_answerability: int
    schema_types: Tuple[str, ...] = ()
    checklist: Tuple[ChecklistItem, ...] = ()
    findings: Tuple[AIReadinessFinding, ...] = ()


# ============================================================================
# Aggregation
# ============================================================================

PhaseState = Literal["completed", "failed", "skipped", "not_scheduled"]


class PhaseOutputs(FrozenModel):
    """Everything the score aggregator consumes; absent data is explicit."""
    domain: str
    mode: ScanMode
    phase_a: PhaseAOutput
    keyword_plan: KeywordPlan

    rank: Optional[RankCheckReport] = None
    rank_state: PhaseState = "not_scheduled"
    rank_note: Optional[str] = None

    competitive: Optional[CompetitiveResult] = None
    competitive_state: PhaseState = "not_scheduled"
    competitive_note: Optional[str] = None

    ai_readiness: Optional[AIReadinessResult] = None
    ai_readiness_state: PhaseState = "not_scheduled"
    ai_readiness_note: Optional[str] = None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Finding(CamelModel):
    id: str
    title: str
    severity: Severity
    impact: str
    effort: str
    summary: str
    category: Optional[str] = None
    rule_id: Optional[str] = None
    url: Optional[str] = None
    evidence: Optional[Dict[str, Any]] = None
    suggested_action: Optional[str] = None


class CostOfInaction(CamelModel):
    traffic_at_risk: int
    clicks_lost: int
    leads_min: int
    leads_max: int
    page_one_opportunities: int


class ScoreSummary(CamelModel):
    overall: int
    technical: int
    content: int
    performance: int
    serp: int
    authority: int
    cost_of_inaction: CostOfInaction


class AggregateResult(FrozenModel):
    findings: Tuple[Finding, ...]
    score_summary: ScoreSummary
    full_report: Dict[str, Any]

    def findings_payload(self) -> List[Dict[str, Any]]:
        return [f.model_dump(mode="json", by_alias=True, exclude_none=True) for f in self.findings]
