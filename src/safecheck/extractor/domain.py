"""Address, URL and host helpers used by the phishing heuristics."""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

URL_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)
TRAILING_PUNCTUATION = ".,;:!?)]}"


def domain_from_address(address: str) -> str:
    """Return the lower-cased domain of an address field, or '' when absent.

    ``"Alice <alice@Example.com>"`` and ``"alice@example.com"`` both yield
    ``"example.com"``. Anything without an ``@`` yields ``""``.
    """

    if not isinstance(address, str) or "@" not in address:
        return ""
    domain = address.split("@", 1)[1].split(">", 1)[0]
    return domain.strip().lower()


def find_urls(text: str) -> list[str]:
    """Return every http(s) URL found in free text, in order of appearance."""

    if not isinstance(text, str) or not text:
        return []
    urls: list[str] = []
    for match in URL_RE.finditer(text):
        url = match.group(0).rstrip(TRAILING_PUNCTUATION)
        if url:
            urls.append(url)
    return urls


def url_host(url: str) -> str:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    if host:
        return host.lower().rstrip(".")
    # Unparseable authority; fall back to everything between :// and the next /.
    remainder = url.split("://", 1)[-1]
    return remainder.split("/", 1)[0].lower()


def is_suspicious_url(url: str, markers: Iterable[str]) -> bool:
    """True when the URL host contains any of the low-trust markers."""

    host = url_host(url)
    if not host:
        return False
    return any(marker and marker.lower() in host for marker in markers)


__all__ = ["domain_from_address", "find_urls", "url_host", "is_suspicious_url"]
