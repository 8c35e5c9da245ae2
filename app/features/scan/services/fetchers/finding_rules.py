"""
Technical SEO finding rules evaluated for every crawled page.

Each rule inspects a PageFacts snapshot and returns a CrawlFinding or None.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from app.features.scan.schemas.pipeline import CrawlFinding

TITLE_MAX_LENGTH = 60
TITLE_MIN_LENGTH = 30
META_DESCRIPTION_MAX_LENGTH = 160
THIN_CONTENT_WORDS = 200

SEVERITY_DEDUCTIONS = {"critical": 10, "high": 5, "medium": 2, "low": 1}


@dataclass
class PageFacts:
    url: str
    status_code: int = 0
    indexability: str = "indexable"
    canonical_url: Optional[str] = None
    title: Optional[str] = None
    title_len: int = 0
    meta_description: Optional[str] = None
    meta_description_len: int = 0
    h1_texts: List[str] = field(default_factory=list)
    word_count: Optional[int] = None
    outlinks_count: Optional[int] = None
    images_missing_alt: int = 0
    images_missing_size: int = 0

    @property
    def indexable(self) -> bool:
        return self.indexability == "indexable"

    @property
    def h1_count(self) -> int:
        return len(self.h1_texts)


def _finding(facts: PageFacts, category: str, rule_id: str, severity: str, summary: str,
             action: str, evidence: Dict = None) -> CrawlFinding:
    return CrawlFinding(
        url=facts.url,
        category=category,
        rule_id=rule_id,
        severity=severity,
        summary=summary,
        evidence=evidence or {},
        suggested_action=action,
    )


def rule_status_4xx(facts: PageFacts) -> Optional[CrawlFinding]:
    if 400 <= facts.status_code < 500:
        not_found = facts.status_code == 404
        return _finding(
            facts, "response_codes", "RULE_STATUS_4XX", "high" if not_found else "medium",
            f"Page returns {facts.status_code} error",
            "Page not found - update or remove links" if not_found else f"Fix {facts.status_code} error",
            {"statusCode": facts.status_code},
        )
    return None


def rule_status_5xx(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.status_code >= 500:
        return _finding(
            facts, "response_codes", "RULE_STATUS_5XX", "critical",
            f"Server error {facts.status_code}",
            "Server error - investigate server logs",
            {"statusCode": facts.status_code},
        )
    return None


def rule_canonical_missing(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and not facts.canonical_url:
        return _finding(
            facts, "canonicals", "RULE_CANONICAL_MISSING", "medium",
            "Missing canonical tag", "Add self-referencing canonical",
        )
    return None


def rule_title_missing(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and not (facts.title or "").strip():
        return _finding(
            facts, "titles", "RULE_TITLE_MISSING", "high",
            "Missing title tag", "Add a descriptive title tag",
        )
    return None


def rule_title_too_long(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.title_len > TITLE_MAX_LENGTH:
        return _finding(
            facts, "titles", "RULE_TITLE_TOO_LONG", "low",
            f"Title too long ({facts.title_len} chars)",
            f"Shorten title to under {TITLE_MAX_LENGTH} characters",
            {"titleLen": facts.title_len, "title": facts.title},
        )
    return None


def rule_title_too_short(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.title and 0 < facts.title_len < TITLE_MIN_LENGTH:
        return _finding(
            facts, "titles", "RULE_TITLE_TOO_SHORT", "low",
            f"Title too short ({facts.title_len} chars)",
            "Expand title to be more descriptive",
            {"titleLen": facts.title_len, "title": facts.title},
        )
    return None


def rule_meta_description_missing(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and not (facts.meta_description or "").strip():
        return _finding(
            facts, "titles", "RULE_META_DESC_MISSING", "medium",
            "Missing meta description", "Add a compelling meta description",
        )
    return None


def rule_meta_description_too_long(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.meta_description_len > META_DESCRIPTION_MAX_LENGTH:
        return _finding(
            facts, "titles", "RULE_META_DESC_TOO_LONG", "low",
            f"Meta description too long ({facts.meta_description_len} chars)",
            f"Shorten to under {META_DESCRIPTION_MAX_LENGTH} characters",
            {"metaDescriptionLen": facts.meta_description_len},
        )
    return None


def rule_h1_missing(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and facts.h1_count == 0:
        return _finding(
            facts, "headings", "RULE_H1_MISSING", "high",
            "Missing H1 heading", "Add a single H1 heading",
        )
    return None


def rule_h1_multiple(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.h1_count > 1:
        return _finding(
            facts, "headings", "RULE_H1_MULTIPLE", "medium",
            f"Multiple H1 headings ({facts.h1_count})",
            "Use only one H1 heading per page",
            {"h1Count": facts.h1_count, "h1Texts": facts.h1_texts},
        )
    return None


def rule_thin_content(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and facts.word_count is not None and facts.word_count < THIN_CONTENT_WORDS:
        return _finding(
            facts, "content", "RULE_THIN_CONTENT", "medium",
            f"Thin content ({facts.word_count} words)", "Add more valuable content",
            {"wordCount": facts.word_count},
        )
    return None


def rule_no_outlinks(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.indexable and facts.outlinks_count == 0:
        return _finding(
            facts, "links", "RULE_NO_OUTLINKS", "low",
            "Page has no outgoing links", "Add relevant internal links",
            {"outlinksCount": 0},
        )
    return None


def rule_images_missing_alt(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.images_missing_alt > 0:
        return _finding(
            facts, "images", "RULE_IMG_MISSING_ALT", "medium",
            f"{facts.images_missing_alt} images missing alt text",
            "Add descriptive alt text to images",
            {"imagesMissingAlt": facts.images_missing_alt},
        )
    return None


def rule_images_missing_size(facts: PageFacts) -> Optional[CrawlFinding]:
    if facts.images_missing_size > 0:
        return _finding(
            facts, "images", "RULE_IMG_MISSING_SIZE", "low",
            f"{facts.images_missing_size} images missing width/height",
            "Add width/height to prevent layout shifts",
            {"imagesMissingSize": facts.images_missing_size},
        )
    return None


FINDING_RULES: List[Callable[[PageFacts], Optional[CrawlFinding]]] = [
    rule_status_4xx,
    rule_status_5xx,
    rule_canonical_missing,
    rule_title_missing,
    rule_title_too_long,
    rule_title_too_short,
    rule_meta_description_missing,
    rule_meta_description_too_long,
    rule_h1_missing,
    rule_h1_multiple,
    rule_thin_content,
    rule_no_outlinks,
    rule_images_missing_alt,
    rule_images_missing_size,
]


def run_finding_rules(facts: PageFacts) -> List[CrawlFinding]:
    findings = []
    for rule in FINDING_RULES:
        finding = rule(facts)
        if finding is not None:
            findings.append(finding)
    return findings


def calculate_health_score(pages_crawled: int, findings: List[CrawlFinding]) -> int:
    """Start at 100 and deduct per finding severity; 0 when nothing was crawled."""
    if pages_crawled == 0:
        return 0
    score = 100 - sum(SEVERITY_DEDUCTIONS.get(f.severity, 0) for f in findings)
    return max(0, min(100, score))
