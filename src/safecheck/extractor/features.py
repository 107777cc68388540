"""Feature extraction from materialised email records."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import PurePosixPath
from typing import Any

from ..config import ExtractionConfig
from ..types import EmailRecord, ExtractedFeatures
from .domain import domain_from_address, find_urls, is_suspicious_url
from .html import html_text, looks_like_html

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTRACTION = ExtractionConfig()


def extract_features(
    record: EmailRecord,
    config: ExtractionConfig = DEFAULT_EXTRACTION,
) -> ExtractedFeatures:
    """Derive threat signals from an email record.

    Never raises: missing or malformed fields read as empty, and an absent
    authentication result counts as a failed check.
    """

    sender = _text(getattr(record, "sender", ""))
    subject = _text(getattr(record, "subject", ""))
    body = _text(getattr(record, "body", ""))
    headers = getattr(record, "headers", None)

    from_domain = domain_from_address(sender)
    return_path_domain = domain_from_address(header_value(headers, "return-path"))
    auth_results = header_value(headers, "authentication-results")

    urls = find_urls(body)
    visible_text = _visible_text(body)
    suspicious = [url for url in urls if is_suspicious_url(url, config.suspicious_link_markers)]
    attachment_names = _attachment_names(getattr(record, "attachments", ()))

    return ExtractedFeatures(
        from_domain=from_domain,
        return_path_domain=return_path_domain,
        domain_mismatch=bool(return_path_domain) and from_domain != return_path_domain,
        spf_pass=auth_passed(auth_results, "spf"),
        dkim_pass=auth_passed(auth_results, "dkim"),
        dmarc_pass=auth_passed(auth_results, "dmarc"),
        urgency_keywords=match_keywords(f"{subject}\n{visible_text}", config.urgency_keywords),
        link_count=len(urls),
        suspicious_link_count=len(suspicious),
        has_attachments=bool(attachment_names),
        attachment_types=tuple(
            ext for ext in (_extension(name) for name in attachment_names) if ext
        ),
    )


def header_value(headers: Any, name: str) -> str:
    """Case-insensitive header lookup returning '' for anything missing."""

    if not isinstance(headers, Mapping):
        return ""
    wanted = name.lower()
    value = headers.get(wanted)
    if value is None:
        for key, candidate in headers.items():
            if isinstance(key, str) and key.strip().lower() == wanted:
                value = candidate
                break
    return value if isinstance(value, str) else ""


def auth_passed(auth_results: str, mechanism: str) -> bool:
    """Return True when ``<mechanism>=pass`` appears in Authentication-Results."""

    if not auth_results:
        return False
    pattern = rf"(?<![\w.-]){re.escape(mechanism)}\s*=\s*pass\b"
    return re.search(pattern, auth_results, re.IGNORECASE) is not None


def match_keywords(text: str, vocabulary: Iterable[str]) -> frozenset[str]:
    """Case-insensitive substring match of each vocabulary entry."""

    haystack = text.lower()
    return frozenset(
        keyword for keyword in (word.lower() for word in vocabulary) if keyword in haystack
    )


def _visible_text(body: str) -> str:
    if not looks_like_html(body):
        return body
    try:
        return html_text(body)
    except Exception:
        LOGGER.debug("HTML body could not be parsed; matching on raw text", exc_info=True)
        return body


def _attachment_names(value: Any) -> list[str]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        return []
    return [name.strip() for name in value if isinstance(name, str) and name.strip()]


def _extension(filename: str) -> str:
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix
    return suffix.lower()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


__all__ = ["extract_features", "header_value", "auth_passed", "match_keywords"]
