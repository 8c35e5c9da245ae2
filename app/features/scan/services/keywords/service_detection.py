"""
Homepage Service Detection

Extracts the business name, primary services and location cues from homepage
HTML using meta, heading, nav, CTA and "services" section signals.
"""
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from app.features.scan.schemas.pipeline import HomepageEvidence, HomepageScanResult
from app.features.scan.services.fetchers.html_parser import (
    clean_text,
    jsonld_nodes,
    meta_content,
    page_title,
    soup_of,
)

STOP_PHRASES = {
    "home", "about", "about us", "contact", "contact us", "blog", "news",
    "careers", "jobs", "login", "sign in", "sign up", "register", "faq",
    "privacy", "privacy policy", "terms", "terms of service", "sitemap",
    "menu", "close", "open", "search", "more", "learn more", "read more",
    "get started", "view all", "see all", "back to top", "skip to content",
    "copyright", "all rights reserved", "follow us", "subscribe",
    "toggle navigation", "main menu", "footer", "header",
}

MIN_SERVICE_LENGTH = 4
MAX_SERVICE_LENGTH = 80
TARGET_SERVICE_COUNT = 12
SIGNAL_SOURCES = 5

TITLE_SPLIT_RE = re.compile(r"\s*[|–—\-:]\s*")
META_SPLIT_RE = re.compile(r"[,.|;]")
CTA_CLASS_RE = re.compile(r"cta|btn|button|primary|action|hero", re.I)
SERVICE_SECTION_RE = re.compile(r"service", re.I)
LOCATION_TEXT_RE = re.compile(
    r"(?:in|serving|located in|based in)\s+([A-Z][a-z]+(?:\s[A-Z][a-z]+)*),?\s*([A-Z]{2})\b"
)

SERVICE_CATEGORIES: Dict[str, List[str]] = {
    "plumbing": ["plumb", "drain", "pipe", "sewer", "water heater", "faucet"],
    "hvac": ["hvac", "air condition", "heating", "cooling", "furnace", "duct"],
    "electrical": ["electric", "wiring", "panel", "outlet", "lighting"],
    "roofing": ["roof", "shingle", "gutter"],
    "landscaping": ["landscap", "lawn", "garden", "tree", "irrigation"],
    "dental": ["dental", "dentist", "orthodont", "teeth", "oral"],
    "legal": ["law", "attorney", "legal", "lawyer", "litigation"],
    "medical": ["medical", "doctor", "clinic", "health", "patient"],
    "automotive": ["auto", "car", "vehicle", "mechanic", "repair shop"],
    "remodeling": ["remodel", "renovation", "kitchen", "bathroom", "flooring"],
    "cleaning": ["clean", "janitorial", "maid", "pressure wash"],
    "pest": ["pest", "termite", "exterminator", "rodent"],
    "marketing": ["marketing", "seo", "digital", "advertising", "branding"],
    "construction": ["construct", "build", "contractor", "framing"],
    "insurance": ["insurance", "coverage", "policy", "claim"],
    "realestate": ["real estate", "realtor", "property", "home sale"],
    "restaurant": ["restaurant", "catering", "food", "dining", "menu"],
    "fitness": ["fitness", "gym", "personal train", "yoga", "workout"],
}


def is_service_phrase(phrase: str) -> bool:
    lower = phrase.lower().strip()
    if not MIN_SERVICE_LENGTH <= len(lower) <= MAX_SERVICE_LENGTH:
        return False
    if lower in STOP_PHRASES:
        return False
    if lower.isdigit() or re.match(r"^https?://", lower):
        return False
    # mostly punctuation or digits
    if len(re.sub(r"[^a-z]", "", lower)) < 3:
        return False
    return True


def normalize_phrase(phrase: str) -> str:
    lowered = re.sub(r"[^a-z0-9\s&-]", "", phrase.lower())
    return re.sub(r"\s+", " ", lowered).strip()


def deduplicate(phrases: List[str]) -> List[str]:
    """Keep the first spelling of each normalized phrase."""
    seen: Dict[str, str] = {}
    for phrase in phrases:
        key = normalize_phrase(phrase)
        if key and key not in seen:
            seen[key] = phrase
    return list(seen.values())


def _texts(elements) -> List[str]:
    texts = []
    for element in elements:
        text = clean_text(element.get_text(" "))
        if text and MIN_SERVICE_LENGTH <= len(text) <= MAX_SERVICE_LENGTH:
            texts.append(text)
    return texts


def extract_business_name(soup: BeautifulSoup) -> Optional[str]:
    site_name = meta_content(soup, prop="og:site_name")
    if site_name:
        return clean_text(site_name)

    title = page_title(soup)
    if title:
        segment = TITLE_SPLIT_RE.split(title)[0].strip()
        if 2 <= len(segment) <= 60:
            return segment
    return None


def extract_location_cues(soup: BeautifulSoup) -> List[str]:
    cues = []
    for name in ("geo.region", "geo.placename"):
        value = meta_content(soup, name=name)
        if value:
            cues.append(value)

    for node in jsonld_nodes(soup):
        address = node.get("address")
        if address is None and isinstance(node.get("location"), dict):
            address = node["location"].get("address")
        if isinstance(address, dict):
            for field in ("addressLocality", "addressRegion"):
                if isinstance(address.get(field), str):
                    cues.append(address[field])

    text = soup.get_text(" ")
    for city, region in LOCATION_TEXT_RE.findall(text):
        cues.extend([city, region])

    unique = []
    for cue in cues:
        cue = cue.strip()
        if len(cue) >= 2 and cue not in unique:
            unique.append(cue)
    return unique


def categorize(services: List[str]) -> List[str]:
    joined = " ".join(s.lower() for s in services)
    return [
        category for category, needles in SERVICE_CATEGORIES.items()
        if any(needle in joined for needle in needles)
    ]


def scan_homepage_services(html: str, site_url: str) -> HomepageScanResult:
    soup = soup_of(html)
    signal_sources = 0
    candidates: List[str] = []

    meta_title = page_title(soup)
    meta_description = meta_content(soup, name="description")

    # 1. meta description fragments
    if meta_description:
        phrases = [p.strip() for p in META_SPLIT_RE.split(meta_description)]
        phrases = [p for p in phrases if is_service_phrase(p)]
        if phrases:
            signal_sources += 1
            candidates.extend(phrases)

    # 2. headings
    headings = [h for h in _texts(soup.find_all(["h1", "h2", "h3"])) if is_service_phrase(h)]
    if headings:
        signal_sources += 1
        candidates.extend(headings)

    # 3. navigation links
    nav = [t for n in soup.find_all("nav") for t in _texts(n.find_all("a")) if is_service_phrase(t)]
    if nav:
        signal_sources += 1
        candidates.extend(nav)

    # 4. call-to-action buttons
    cta = [t for t in _texts(soup.find_all(["button", "a"], class_=CTA_CLASS_RE)) if is_service_phrase(t)]
    if cta:
        signal_sources += 1
        candidates.extend(cta)

    # 5. "services" sections, each counted as a source
    for section in soup.find_all(["section", "div"], id=SERVICE_SECTION_RE) + soup.find_all(
        ["section", "div"], class_=SERVICE_SECTION_RE
    ):
        phrases = _texts(section.find_all(["h2", "h3", "h4"])) + _texts(section.find_all("a"))
        phrases = [p for p in phrases if is_service_phrase(p)]
        if phrases:
            signal_sources += 1
            candidates.extend(phrases)

    evidence = HomepageEvidence(
        headings=tuple(headings[:20]),
        nav=tuple(nav[:15]),
        meta_title=meta_title,
        meta_description=meta_description,
        cta=tuple(cta[:10]),
    )

    heading_keys = {normalize_phrase(h) for h in evidence.headings}
    nav_keys = {normalize_phrase(n) for n in evidence.nav}

    def score(phrase: str) -> int:
        key = normalize_phrase(phrase)
        points = 0
        if key in heading_keys:
            points += 3
        if key in nav_keys:
            points += 2
        if meta_description and key in meta_description.lower():
            points += 2
        if meta_title and key in meta_title.lower():
            points += 1
        if len(phrase) > 40:
            points -= 1
        if 2 <= len(phrase.split()) <= 4:
            points += 1
        return points

    ranked = sorted(deduplicate(candidates), key=score, reverse=True)
    services = ranked[:TARGET_SERVICE_COUNT]

    bonus = 0.2 if len(services) >= 5 else 0.0
    confidence = min(1.0, max(0.0, signal_sources / SIGNAL_SOURCES + bonus))

    return HomepageScanResult(
        site_url=site_url,
        business_name=extract_business_name(soup),
        services=tuple(services),
        service_categories=tuple(categorize(services)),
        location_cues=tuple(extract_location_cues(soup)),
        confidence=confidence,
        evidence=evidence,
    )
