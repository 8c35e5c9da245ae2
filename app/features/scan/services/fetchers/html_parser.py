"""
HTML parsing helpers shared by the crawler, keyword derivation, competitive
analysis and AI readiness analysis.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from app.platform.utils.url_validator import canonical_host

_WS_RE = re.compile(r"\s+")
NON_CONTENT_TAGS = ["script", "style", "noscript", "svg", "nav", "footer", "header", "aside"]


@dataclass
class ParsedLink:
    href: str
    text: Optional[str]
    is_internal: bool


@dataclass
class ParsedImage:
    src: Optional[str]
    alt: Optional[str]
    has_width: bool
    has_height: bool


@dataclass
class ParsedPage:
    title: Optional[str] = None
    meta_description: Optional[str] = None
    canonical_url: Optional[str] = None
    robots_meta: Optional[str] = None
    h1_texts: List[str] = field(default_factory=list)
    h2_texts: List[str] = field(default_factory=list)
    word_count: int = 0
    links: List[ParsedLink] = field(default_factory=list)
    images: List[ParsedImage] = field(default_factory=list)

    @property
    def title_len(self) -> int:
        return len(self.title) if self.title else 0

    @property
    def meta_description_len(self) -> int:
        return len(self.meta_description) if self.meta_description else 0

    @property
    def internal_links(self) -> List[ParsedLink]:
        return [link for link in self.links if link.is_internal]


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def clean_text(value: Optional[str]) -> str:
    return _WS_RE.sub(" ", value or "").strip()


def meta_content(soup: BeautifulSoup, name: str = None, prop: str = None) -> Optional[str]:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return str(tag.get("content")).strip() or None
    return None


def page_title(soup: BeautifulSoup) -> Optional[str]:
    tag = soup.find("title")
    if tag is None:
        return None
    return clean_text(tag.get_text()) or None


def heading_texts(soup: BeautifulSoup, *levels: str) -> List[str]:
    texts = []
    for tag in soup.find_all(list(levels) or ["h1", "h2", "h3"]):
        text = clean_text(tag.get_text(" "))
        if text:
            texts.append(text)
    return texts


def visible_text(soup: BeautifulSoup) -> str:
    """Body text without scripts, styles and page chrome (nav, header, footer, aside)."""
    region = soup.body or soup
    clone = BeautifulSoup(str(region), "html.parser")
    for node in clone(NON_CONTENT_TAGS):
        node.decompose()
    return clean_text(clone.get_text(" "))


def word_count(text: str) -> int:
    return len([w for w in text.split(" ") if w])


def resolve_url(href: str, base_url: str) -> Optional[str]:
    try:
        resolved, _ = urldefrag(urljoin(base_url, href.strip()))
    except ValueError:
        return None
    return resolved or None


def is_internal_url(url: str, base_domain: str) -> bool:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return False
    return bool(host) and canonical_host(host) == canonical_host(base_domain)


def jsonld_blocks(soup: BeautifulSoup) -> List[Any]:
    blocks = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            blocks.append(json.loads(raw))
        except json.JSONDecodeError:
            continue
    return blocks


def jsonld_nodes(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Flatten JSON-LD payloads (lists and @graph) into a list of typed nodes."""
    nodes = []
    stack = list(jsonld_blocks(soup))
    while stack:
        item = stack.pop()
        if isinstance(item, list):
            stack.extend(item)
        elif isinstance(item, dict):
            if "@type" in item:
                nodes.append(item)
            if "@graph" in item:
                stack.append(item["@graph"])
    return nodes


def schema_types(soup: BeautifulSoup) -> List[str]:
    types = []
    for node in jsonld_nodes(soup):
        value = node.get("@type")
        values = value if isinstance(value, list) else [value]
        types.extend(str(v).strip() for v in values if v)
    return sorted(set(t for t in types if t))


def parse_page(html: str, page_url: str, base_domain: str) -> ParsedPage:
    soup = soup_of(html)

    canonical_tag = soup.find("link", rel="canonical")
    canonical_href = canonical_tag.get("href") if canonical_tag else None

    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href") or ""
        if href.startswith(("javascript:", "mailto:", "tel:", "#")):
            continue
        resolved = resolve_url(href, page_url)
        if not resolved or not resolved.startswith(("http://", "https://")):
            continue
        links.append(
            ParsedLink(
                href=resolved,
                text=clean_text(anchor.get_text(" ")) or None,
                is_internal=is_internal_url(resolved, base_domain),
            )
        )

    images = [
        ParsedImage(
            src=img.get("src"),
            alt=img.get("alt"),
            has_width=bool(img.get("width")),
            has_height=bool(img.get("height")),
        )
        for img in soup.find_all("img")
    ]

    return ParsedPage(
        title=page_title(soup),
        meta_description=meta_content(soup, name="description"),
        canonical_url=resolve_url(canonical_href, page_url) if canonical_href else None,
        robots_meta=meta_content(soup, name="robots"),
        h1_texts=heading_texts(soup, "h1"),
        h2_texts=heading_texts(soup, "h2")[:20],
        word_count=word_count(visible_text(soup)),
        links=links,
        images=images,
    )


def determine_indexability(
    status_code: int,
    content_type: Optional[str],
    robots_meta: Optional[str],
    x_robots_tag: Optional[str],
    canonical_url: Optional[str],
    page_url: str,
) -> str:
    if status_code < 200 or status_code >= 300:
        return "non_html"
    if content_type and "text/html" not in content_type:
        return "non_html"
    if robots_meta and "noindex" in robots_meta.lower():
        return "noindex"
    if x_robots_tag and "noindex" in x_robots_tag.lower():
        return "noindex"
    if canonical_url and urldefrag(canonical_url)[0].rstrip("/") != urldefrag(page_url)[0].rstrip("/"):
        return "canonicalized_away"
    return "indexable"
