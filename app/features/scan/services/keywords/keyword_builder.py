"""
SERP Keyword Builder

Turns detected services (or generic page signals when detection fails) into
a de-duplicated, capped keyword list for rank checking.
"""
import re
from typing import List, Optional, Sequence

from app.features.scan.schemas.pipeline import KeywordPlan, PhaseAOutput, SerpKeyword
from app.features.scan.services.fetchers.html_parser import soup_of, visible_text
from app.features.scan.services.keywords.service_detection import TITLE_SPLIT_RE, scan_homepage_services
from app.platform.logger import get_logger

logger = get_logger(__name__)

DEFAULT_KEYWORD_CAP = 15
MIN_KEYWORDS_BEFORE_FALLBACK = 5
VARIANT_SUFFIXES = ["company", "services", "cost", "reviews", "pricing"]

DESCRIPTION_SPLIT_RE = re.compile(r"[,.|;]")
CAPITALIZED_PHRASE_RE = re.compile(r"(?:[A-Z][a-z]+(?:\s+(?:&|and)\s+|\s+)?){2,4}")


def domain_base_name(domain: str) -> str:
    host = domain.lower()
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0]


def city_of(location: Optional[str]) -> Optional[str]:
    """City part of a location label, e.g. 'Sacramento, CA' -> 'Sacramento'."""
    if not location:
        return None
    city = location.split(",")[0].strip()
    return city or None


class _KeywordList:

    def __init__(self):
        self.keywords: List[SerpKeyword] = []
        self._seen = set()

    def add(self, keyword: str, intent: str, source: str) -> None:
        key = keyword.lower().strip()
        if len(key) < 3 or key in self._seen:
            return
        self._seen.add(key)
        self.keywords.append(SerpKeyword(keyword=key, intent=intent, source=source))


def build_serp_keywords(
    services: Sequence[str],
    location: Optional[str],
    domain: str,
    cap: int = DEFAULT_KEYWORD_CAP,
) -> List[SerpKeyword]:
    """
    Build keyword variants per service, in priority order.

    Args:
        services: service phrases from homepage detection
        location: "City, Region" string or None
        domain: target domain, used for branded fallback variants
        cap: maximum number of keywords returned

    Returns:
        Lower-cased, de-duplicated keywords, at most `cap` of them
    """
    city = city_of(location)
    out = _KeywordList()

    for service in services:
        svc = service.strip()
        if not svc:
            continue
        if city:
            out.add(f"{svc} {city}", "local", svc)
        out.add(f"{svc} near me", "local", svc)
        for suffix in VARIANT_SUFFIXES:
            # no "plumbing services services"
            if svc.lower().endswith(suffix):
                continue
            out.add(f"{svc} {suffix}", "high_intent", svc)
        out.add(svc, "informational", svc)

    if len(out.keywords) < MIN_KEYWORDS_BEFORE_FALLBACK:
        base = domain_base_name(domain)
        if city:
            out.add(f"{base} {city}", "local", "domain_fallback")
        out.add(f"{base} near me", "local", "domain_fallback")
        out.add(f"{base} services", "high_intent", "domain_fallback")
        out.add(f"best {base}", "informational", "domain_fallback")

    return out.keywords[:cap]


def build_fallback_keywords(
    meta_title: Optional[str],
    meta_description: Optional[str],
    location: Optional[str],
    domain: str,
    body_text: Optional[str] = None,
    cap: int = DEFAULT_KEYWORD_CAP,
) -> List[SerpKeyword]:
    """Keywords from title/description fragments, body phrases, then the domain name."""
    phrases: List[str] = []

    if meta_title:
        segments = [s.strip() for s in TITLE_SPLIT_RE.split(meta_title)]
        phrases.extend(s for s in segments if 4 <= len(s) <= 60)

    if meta_description:
        segments = [s.strip() for s in DESCRIPTION_SPLIT_RE.split(meta_description)]
        phrases.extend([s for s in segments if 4 <= len(s) <= 60][:5])

    if len(phrases) < 3 and body_text:
        text = " ".join(body_text.split()[:500])
        for match in CAPITALIZED_PHRASE_RE.findall(text)[:5]:
            candidate = match.strip()
            if 6 <= len(candidate) <= 50:
                phrases.append(candidate)

    if not phrases:
        phrases.append(domain_base_name(domain))

    return build_serp_keywords(phrases, location, domain, cap)


def derive_keyword_plan(
    phase_a: PhaseAOutput,
    domain: str,
    location: Optional[str],
    cap: int = DEFAULT_KEYWORD_CAP,
) -> KeywordPlan:
    """
    Phase B: services and keywords from the crawled homepage.

    Falls back to generic keywords (flagged with service_detection_warning)
    when the crawl failed, no services were found, or detection raised.
    """
    site_url = f"https://{domain}"

    if not phase_a.has_content:
        logger.info(f"[Keywords] no crawl content for {domain}, using domain fallback keywords")
        return KeywordPlan(
            keywords=tuple(build_fallback_keywords(None, None, location, domain, cap=cap)),
            service_detection_warning=True,
            location=location,
        )

    try:
        scan = scan_homepage_services(phase_a.raw_html, site_url)
    except Exception as e:
        logger.warning(f"[Keywords] service detection failed for {domain}: {e}")
        return KeywordPlan(
            keywords=tuple(build_fallback_keywords(None, None, location, domain, cap=cap)),
            service_detection_warning=True,
            location=location,
        )

    if scan.services:
        effective_location = location or (", ".join(scan.location_cues) if scan.location_cues else None)
        keywords = build_serp_keywords(scan.services, effective_location, domain, cap)
        logger.info(f"[Keywords] {len(keywords)} keywords from {len(scan.services)} services for {domain}")
        return KeywordPlan(
            keywords=tuple(keywords),
            homepage_scan=scan,
            location=effective_location,
        )

    body = visible_text(soup_of(phase_a.raw_html))
    keywords = build_fallback_keywords(
        scan.evidence.meta_title,
        scan.evidence.meta_description,
        location,
        domain,
        body_text=body,
        cap=cap,
    )
    logger.info(f"[Keywords] no services detected for {domain}, {len(keywords)} fallback keywords")
    return KeywordPlan(
        keywords=tuple(keywords),
        service_detection_warning=True,
        homepage_scan=scan,
        location=location,
    )
