"""Email feature extraction utilities."""

from .domain import domain_from_address, find_urls, is_suspicious_url
from .features import extract_features
from .html import html_text, looks_like_html

__all__ = [
    "extract_features",
    "domain_from_address",
    "find_urls",
    "is_suspicious_url",
    "html_text",
    "looks_like_html",
]
