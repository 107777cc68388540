"""Visible-text rendering of HTML email bodies."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

HTML_HINT_RE = re.compile(r"<\s*(html|body|div|p|a|table|br|span|img)\b", re.IGNORECASE)
HIDDEN_TAGS = ("script", "style", "head", "title")


def looks_like_html(body: str) -> bool:
    return bool(body) and HTML_HINT_RE.search(body) is not None


def html_text(html: str) -> str:
    """Return the text a reader would see, with scripts and styles removed.

    Only used for keyword matching; URLs are counted from the raw markup.
    """

    soup = BeautifulSoup(html, "lxml")
    for tag in soup(HIDDEN_TAGS):
        tag.decompose()
    return soup.get_text(" ", strip=True)


__all__ = ["html_text", "looks_like_html"]
