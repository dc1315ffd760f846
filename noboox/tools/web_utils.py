from __future__ import annotations

from urllib.parse import urlparse, urlunparse

FAVICON_SERVICE_URL = "https://icons.duckduckgo.com/ip3/{hostname}.ico"


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def extract_hostname(url: str) -> str:
    """Hostname for display, without a leading ``www.``."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize_url(url: str) -> str:
    """Dedup key: lowercase scheme and host, no ``www.``, no trailing slash.

    Path and query keep their case; the fragment is dropped.
    """
    raw = url.strip()
    try:
        parsed = urlparse(raw)
    except ValueError:
        return raw
    if not parsed.netloc:
        return raw.rstrip("/")
    host = parsed.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), host, path, parsed.params, parsed.query, ""))


def favicon_url(url: str) -> str | None:
    hostname = extract_hostname(url)
    if not hostname:
        return None
    return FAVICON_SERVICE_URL.format(hostname=hostname)
