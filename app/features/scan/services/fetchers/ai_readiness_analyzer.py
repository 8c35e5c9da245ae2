"""
AI Readiness Analyzer

Scores how well a homepage can be understood and quoted by AI search
engines: structured data coverage, entity coverage and LLM answerability.
"""
import asyncio
import re
from typing import Any, Dict, List, Set

from bs4 import BeautifulSoup

from app.features.scan.schemas.pipeline import AIReadinessFinding, AIReadinessResult, ChecklistItem
from app.features.scan.services.fetchers.html_parser import (
    jsonld_nodes,
    meta_content,
    schema_types,
    soup_of,
)

# Each group counts once toward structured data coverage
EXPECTED_SCHEMA_GROUPS: Dict[str, Set[str]] = {
    "organization": {"Organization", "LocalBusiness", "ProfessionalService", "Corporation"},
    "website": {"WebSite"},
    "faq": {"FAQPage"},
    "breadcrumb": {"BreadcrumbList"},
    "offering": {"Service", "Product", "Offer"},
}

ANSWER_MIN_WORDS = 40
ANSWER_MAX_WORDS = 220

_TOKEN_RE = re.compile(r"[a-z0-9']+")
_PHONE_RE = re.compile(r"\(?\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}")

CHECKS = [
    # key, label, severity, recommendation
    ("organization_schema", "Organization or LocalBusiness schema", "high",
     "Add Organization or LocalBusiness JSON-LD describing the business."),
    ("faq_schema", "FAQPage schema", "medium",
     "Mark up common customer questions with FAQPage structured data."),
    ("business_name", "Business name is machine-readable", "medium",
     "Expose the business name via og:site_name or the Organization schema name."),
    ("contact_details", "Contact details are present", "medium",
     "Publish a phone number or email address as text or in structured data."),
    ("address", "Address is marked up", "low",
     "Add a PostalAddress to the business schema or an <address> element."),
    ("same_as_profiles", "sameAs profile links", "low",
     "List official social and directory profiles in the schema sameAs property."),
    ("question_headings", "Question-style headings", "medium",
     "Phrase some section headings as the questions customers ask."),
    ("answer_passages", "Answer-sized passages", "medium",
     "Write short, self-contained paragraphs that directly answer one question each."),
    ("lists", "Lists for scannable answers", "low",
     "Use bulleted or numbered lists for steps, features and pricing."),
]


def _tokens(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def _percent(passed: int, total: int) -> int:
    return round(passed / total * 100) if total else 0


def same_as_links(nodes: List[Dict[str, Any]]) -> List[str]:
    links = []
    for node in nodes:
        value = node.get("sameAs")
        values = value if isinstance(value, list) else [value]
        links.extend(v.strip() for v in values if isinstance(v, str) and v.strip())
    return links


def answer_passages(soup: BeautifulSoup) -> List[str]:
    root = soup.find("main") or soup.find("article") or soup.body or soup
    passages = []
    for node in root.find_all(["p", "li", "dd"]):
        text = node.get_text(" ", strip=True)
        if ANSWER_MIN_WORDS <= len(_tokens(text)) <= ANSWER_MAX_WORDS:
            passages.append(text)
    return passages


def _has_type(nodes: List[Dict[str, Any]], wanted: Set[str]) -> bool:
    for node in nodes:
        value = node.get("@type")
        values = value if isinstance(value, list) else [value]
        if any(str(v) in wanted for v in values if v):
            return True
    return False


def analyze_page(html: str, url: str) -> AIReadinessResult:
    soup = soup_of(html)
    nodes = jsonld_nodes(soup)
    types = schema_types(soup)
    found = set(types)

    groups_present = sum(1 for group in EXPECTED_SCHEMA_GROUPS.values() if found & group)
    structured = _percent(groups_present, len(EXPECTED_SCHEMA_GROUPS))

    org_names = [
        n.get("name") for n in nodes
        if _has_type([n], EXPECTED_SCHEMA_GROUPS["organization"]) and n.get("name")
    ]
    text = soup.get_text(" ", strip=True)
    has_contact = (
        bool(soup.find("a", href=re.compile(r"^(tel|mailto):", re.I)))
        or any(n.get("telephone") or n.get("email") for n in nodes)
        or bool(_PHONE_RE.search(text))
    )
    has_address = _has_type(nodes, {"PostalAddress"}) or any(
        isinstance(n.get("address"), (dict, str)) and n.get("address") for n in nodes
    ) or bool(soup.find("address"))

    headings = soup.find_all(re.compile(r"^h[1-6]$"))
    checks = {
        "organization_schema": bool(found & EXPECTED_SCHEMA_GROUPS["organization"]),
        "faq_schema": "FAQPage" in found,
        "business_name": bool(meta_content(soup, prop="og:site_name") or org_names),
        "contact_details": has_contact,
        "address": has_address,
        "same_as_profiles": bool(same_as_links(nodes)),
        "question_headings": any(h.get_text(" ", strip=True).endswith("?") for h in headings),
        "answer_passages": bool(answer_passages(soup)),
        "lists": bool(soup.find(["ul", "ol"])),
    }

    entity_keys = ("business_name", "contact_details", "address", "same_as_profiles")
    answer_keys = ("question_headings", "faq_schema", "answer_passages", "lists")
    entity = _percent(sum(checks[k] for k in entity_keys), len(entity_keys))
    answerability = _percent(sum(checks[k] for k in answer_keys), len(answer_keys))

    checklist = []
    findings = []
    for key, label, severity, recommendation in CHECKS:
        passed = checks[key]
        checklist.append(ChecklistItem(key=key, label=label, passed=passed))
        if not passed:
            findings.append(
                AIReadinessFinding(
                    key=key,
                    title=f"Missing: {label}",
                    severity=severity,
                    recommendation=recommendation,
                )
            )

    return AIReadinessResult(
        ai_visibility_score=round(0.4 * structured + 0.3 * entity + 0.3 * answerability),
        structured_data_coverage=structured,
        entity_coverage=entity,
        llm_answerability=answerability,
        schema_types=tuple(types),
        checklist=tuple(checklist),
        findings=tuple(findings),
    )


class HtmlAIReadinessAnalyzer:
    """Works on the homepage HTML captured by the crawl; performs no I/O."""

    async def analyze(self, html: str, url: str) -> AIReadinessResult:
        return await asyncio.to_thread(analyze_page, html, url)
