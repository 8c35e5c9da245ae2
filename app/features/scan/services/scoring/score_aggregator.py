"""
Score Aggregator

Folds the settled phase outputs (present or absent) into findings, category
scores, a weighted composite and the full report. Pure functions, no I/O.
"""
from typing import Any, Dict, List, Optional

from app.features.scan.schemas.pipeline import (
    AggregateResult,
    CostOfInaction,
    Finding,
    PhaseAOutput,
    PhaseOutputs,
    RankCheckReport,
    ScoreSummary,
)

WEIGHTS = {
    "technical": 0.25,
    "performance": 0.25,
    "content": 0.20,
    "serp": 0.15,
    "authority": 0.15,
}

# No data source yet; kept as a named placeholder.
AUTHORITY_PLACEHOLDER_SCORE = 50
NEUTRAL_SERP_SCORE = 50
PERFORMANCE_FALLBACK_SCORE = 70
MIN_PENALTY_SCORE = 20

TECHNICAL_PENALTY_PER_FINDING = 10
PENALIZED_SEVERITIES = {"critical", "high", "medium"}
CONTENT_PENALTY_PER_FINDING = 8
CONTENT_CATEGORIES = {"titles", "headings", "content"}

LCP_THRESHOLD_MS = 2500
LCP_SEVERE_MS = 4000
CLS_THRESHOLD = 0.1
CLS_SEVERE = 0.25

IMPACT_BY_SEVERITY = {"critical": "Critical", "high": "High", "medium": "Medium", "low": "Low"}
EFFORT_BY_SEVERITY = {"critical": "High", "high": "Medium", "medium": "Low", "low": "Low"}

LIMITED_VISIBILITY_STEPS = ["Allow our crawler access", "Submit your sitemap"]


def clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


# ============================================================================
# Category scores
# ============================================================================

def compute_serp_score(rank: Optional[RankCheckReport]) -> int:
    """Position-bucket weighted share of ranking keywords; neutral when no data."""
    if rank is None or not rank.results:
        return NEUTRAL_SERP_SCORE

    total = len(rank.results)
    positions = [r.position for r in rank.results if r.position is not None]
    top3 = sum(1 for p in positions if p <= 3)
    top10 = sum(1 for p in positions if p <= 10)
    top20 = sum(1 for p in positions if p <= 20)

    score = (
        top3 / total * 100 * 0.4
        + top10 / total * 100 * 0.3
        + top20 / total * 100 * 0.2
        + len(positions) / total * 100 * 0.1
    )
    return clamp_score(score)


def compute_technical_score(phase_a: PhaseAOutput, findings: List[Finding]) -> int:
    if phase_a.crawl_summary is not None and phase_a.crawl_summary.health_score is not None:
        return clamp_score(phase_a.crawl_summary.health_score)
    penalized = sum(1 for f in findings if f.severity in PENALIZED_SEVERITIES)
    return clamp_score(max(MIN_PENALTY_SCORE, 100 - penalized * TECHNICAL_PENALTY_PER_FINDING))


def compute_content_score(findings: List[Finding]) -> int:
    content = sum(1 for f in findings if f.category in CONTENT_CATEGORIES)
    return clamp_score(max(MIN_PENALTY_SCORE, 100 - content * CONTENT_PENALTY_PER_FINDING))


def compute_performance_score(phase_a: PhaseAOutput) -> int:
    if phase_a.performance_ok and phase_a.performance and phase_a.performance.score is not None:
        return clamp_score(phase_a.performance.score)
    return PERFORMANCE_FALLBACK_SCORE


def compute_overall(scores: Dict[str, int]) -> int:
    return clamp_score(sum(scores[name] * weight for name, weight in WEIGHTS.items()))


def cost_of_inaction(overall: int, findings_count: int) -> CostOfInaction:
    severity = 100 - overall
    traffic_at_risk = max(200, round(severity * 35 + findings_count * 50))
    clicks_lost = max(100, round(traffic_at_risk * 1.5))
    return CostOfInaction(
        traffic_at_risk=traffic_at_risk,
        clicks_lost=clicks_lost,
        leads_min=max(5, round(clicks_lost * 0.025 * 0.6)),
        leads_max=max(15, round(clicks_lost * 0.025 * 1.6)),
        page_one_opportunities=max(3, findings_count),
    )


# ============================================================================
# Findings
# ============================================================================

class _FindingList:

    def __init__(self):
        self.items: List[Finding] = []

    def add(self, **fields) -> None:
        self.items.append(Finding(id=f"f_{len(self.items) + 1}", **fields))


def _unavailable(findings: _FindingList, state: str, note: Optional[str], title: str, what: str) -> None:
    if state == "skipped":
        summary = f"{what} was skipped: {note}" if note else f"{what} was skipped."
    elif state == "failed":
        summary = f"{what} failed: {note}" if note else f"{what} failed."
    else:
        return
    findings.add(title=title, severity="low", impact="Medium", effort="Low", summary=summary, category="data_availability")


def build_findings(outputs: PhaseOutputs) -> List[Finding]:
    phase_a = outputs.phase_a
    findings = _FindingList()

    if phase_a.crawl_ok:
        for cf in phase_a.crawl_findings:
            findings.add(
                title=cf.summary,
                severity=cf.severity,
                impact=IMPACT_BY_SEVERITY.get(cf.severity, "Medium"),
                effort=EFFORT_BY_SEVERITY.get(cf.severity, "Low"),
                summary=cf.summary,
                category=cf.category,
                rule_id=cf.rule_id,
                url=cf.url,
                evidence=cf.evidence,
                suggested_action=cf.suggested_action,
            )
    else:
        findings.add(
            title="Site Could Not Be Fully Analyzed",
            severity="medium",
            impact="High",
            effort="Low",
            summary="Our crawler could not fully access your site.",
        )

    if phase_a.performance_ok and phase_a.performance is not None:
        vitals = phase_a.performance.core_web_vitals
        if vitals.lcp_ms is not None and vitals.lcp_ms > LCP_THRESHOLD_MS:
            severe = vitals.lcp_ms > LCP_SEVERE_MS
            findings.add(
                title="Slow Page Speed",
                severity="high" if severe else "medium",
                impact="High" if severe else "Medium",
                effort="Medium",
                summary=f"LCP is {vitals.lcp_ms / 1000:.1f}s on mobile.",
                category="performance",
            )
        if vitals.cls is not None and vitals.cls > CLS_THRESHOLD:
            severe = vitals.cls > CLS_SEVERE
            findings.add(
                title="Layout Shifts Detected",
                severity="high" if severe else "medium",
                impact="High" if severe else "Medium",
                effort="Medium",
                summary=f"CLS is {vitals.cls:.2f}.",
                category="performance",
            )
    else:
        findings.add(
            title="Performance Analysis Limited",
            severity="low",
            impact="Medium",
            effort="Low",
            summary="Core Web Vitals analysis was limited.",
            category="performance",
        )

    _unavailable(findings, outputs.rank_state, outputs.rank_note, "SERP Rankings Unavailable", "Search ranking analysis")
    _unavailable(
        findings, outputs.competitive_state, outputs.competitive_note,
        "Competitive Analysis Unavailable", "Competitive analysis",
    )
    _unavailable(
        findings, outputs.ai_readiness_state, outputs.ai_readiness_note,
        "AI Search Readiness Unavailable", "AI search readiness analysis",
    )
    return findings.items


# ============================================================================
# Report
# ============================================================================

def build_full_report(
    outputs: PhaseOutputs,
    findings: List[Finding],
    performance_score: int,
) -> Dict[str, Any]:
    phase_a = outputs.phase_a
    plan = outputs.keyword_plan
    rank = outputs.rank if outputs.rank_state == "completed" else None
    competitive = outputs.competitive if outputs.competitive_state == "completed" else None
    ai = outputs.ai_readiness if outputs.ai_readiness_state == "completed" else None
    site_url = f"https://{outputs.domain}"

    def dump(model) -> Any:
        return model.model_dump(mode="json") if model is not None else None

    serp_results = [dump(r) for r in rank.results] if rank else []

    if rank:
        quick_wins = [
            {"keyword": r.keyword, "position": r.position}
            for r in rank.results
            if r.position is not None and r.position <= 20
        ]
    else:
        quick_wins = [{"keyword": "Keyword analysis pending", "position": 0}]

    performance = None
    if phase_a.performance_ok and phase_a.performance is not None:
        vitals = phase_a.performance.core_web_vitals
        performance = {
            "ok": True,
            "performance_score": performance_score,
            "lab": {
                "lcp_ms": vitals.lcp_ms,
                "cls": vitals.cls,
                "fcp_ms": vitals.fcp_ms,
                "tbt_ms": vitals.tbt_ms,
                "speed_index": vitals.speed_index,
            },
            "recommendations": [dump(r) for r in phase_a.performance.recommendations],
            "url": site_url,
        }

    return {
        "visibilityMode": "full" if phase_a.crawl_ok else "limited",
        "scan_mode": outputs.mode.value,
        "limitedVisibilityReason": None if phase_a.crawl_ok else "Crawl was limited",
        "limitedVisibilitySteps": [] if phase_a.crawl_ok else list(LIMITED_VISIBILITY_STEPS),
        "crawlError": phase_a.crawl_error,
        "technical": {
            "ok": True,
            "pages_crawled": phase_a.pages_crawled,
            "findings": [
                f.model_dump(mode="json", by_alias=True, exclude_none=True)
                for f in findings
                if f.category and f.category not in ("performance", "data_availability")
            ],
            "summary": dump(phase_a.crawl_summary),
        } if phase_a.crawl_ok else None,
        "performance": performance,
        "serp": {
            "ok": True,
            "results": serp_results,
            "queries_issued": rank.queries_issued,
            "deadline_reached": rank.deadline_reached,
        } if rank else None,
        "competitive": {
            "ok": True,
            "findings": [dump(f) for f in competitive.findings],
            "findings_count": competitive.findings_count,
            "competitors": [dump(c) for c in competitive.competitors],
            "summary": dict(competitive.summary),
        } if competitive else None,
        "backlinks": None,
        "keywords": {"quickWins": quick_wins, "declining": []},
        "competitors": [dump(c) for c in competitive.competitors] if competitive else [],
        "contentGaps": [],
        "authority": {"domainAuthority": None, "referringDomains": None},
        "homepage_scan": dump(plan.homepage_scan),
        "serp_keywords": [dump(k) for k in plan.keywords],
        "serp_results": serp_results,
        "serviceDetectionWarning": plan.service_detection_warning,
        "ai_search": {
            "ai_visibility_score": ai.ai_visibility_score,
            "structured_data_coverage": ai.structured_data_coverage,
            "entity_coverage": ai.entity_coverage,
            "llm_answerability": ai.llm_answerability,
            "schema_types": list(ai.schema_types),
            "checklist": [dump(c) for c in ai.checklist],
            "findings": [dump(f) for f in ai.findings],
        } if ai else None,
        "phases": {
            "serp": {"state": outputs.rank_state, "note": outputs.rank_note},
            "competitive": {"state": outputs.competitive_state, "note": outputs.competitive_note},
            "ai_readiness": {"state": outputs.ai_readiness_state, "note": outputs.ai_readiness_note},
        },
    }


def aggregate(outputs: PhaseOutputs) -> AggregateResult:
    """
    Compute findings, category scores, composite score and full report.

    Args:
        outputs: settled phase outputs; absent phases are marked by state

    Returns:
        AggregateResult with every score clamped to [0, 100]
    """
    findings = build_findings(outputs)

    scores = {
        "technical": compute_technical_score(outputs.phase_a, findings),
        "performance": compute_performance_score(outputs.phase_a),
        "content": compute_content_score(findings),
        "serp": compute_serp_score(outputs.rank if outputs.rank_state == "completed" else None),
        "authority": AUTHORITY_PLACEHOLDER_SCORE,
    }
    overall = compute_overall(scores)

    summary = ScoreSummary(
        overall=overall,
        cost_of_inaction=cost_of_inaction(overall, len(findings)),
        **scores,
    )
    return AggregateResult(
        findings=tuple(findings),
        score_summary=summary,
        full_report=build_full_report(outputs, findings, scores["performance"]),
    )
