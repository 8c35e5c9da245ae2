from typing import Optional, Tuple
from urllib.parse import urlparse


def normalize_url(url: str) -> Tuple[str, bool]:

    url = url.strip()

    if not url.startswith(("http://", "https://")) and "://" not in url:
        return f"https://{url}", True

    return url, False


def validate_url(url: str) -> Tuple[bool, str, str]:
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, _ = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if parsed.scheme not in ['http', 'https']:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        if not parsed.hostname:
            return False, normalized_url, "Invalid URL format: missing domain"

        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"


def canonical_host(host: Optional[str]) -> str:
    """Lower-case host with any trailing dot and leading `www.` removed."""
    h = (host or "").strip().lower().rstrip(".")
    return h[4:] if h.startswith("www.") else h


def extract_domain(normalized_url: str) -> str:
    """Apex domain of a normalized URL, e.g. https://www.Example.com/a -> example.com"""
    try:
        host = urlparse(normalized_url).hostname
    except ValueError:
        host = None
    if host:
        return canonical_host(host)
    stripped = normalized_url.split("://", 1)[-1]
    return canonical_host(stripped.split("/")[0])


def host_of(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return canonical_host(host) if host else None
