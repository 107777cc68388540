"""Core immutable data structures used throughout SafeCheck."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

REQUIRED_HEADERS = (
    "return-path",
    "reply-to",
    "received-spf",
    "authentication-results",
    "dkim-signature",
    "x-originating-ip",
    "message-id",
)


class Verdict(str, Enum):
    """Triage verdicts, declared in order of increasing suspicion."""

    LEGIT = "legit"
    PREDICTED_LEGIT = "predicted_legit"
    PREDICTED_FRAUD = "predicted_fraud"
    PREDICTED_PHISHING = "predicted_phishing"

    @property
    def severity(self) -> int:
        return _VERDICT_ORDER.index(self)

    @property
    def is_threat(self) -> bool:
        return self in (Verdict.PREDICTED_FRAUD, Verdict.PREDICTED_PHISHING)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Verdict):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Verdict):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Verdict):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Verdict):
            return NotImplemented
        return self.severity >= other.severity


_VERDICT_ORDER = tuple(Verdict)


class UrgencyLevel(str, Enum):
    """Coarse urgency bucket derived from matched urgency keywords."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LatencyStatus(str, Enum):
    """Latency health relative to the configured target."""

    GOOD = "good"
    WARNING = "warning"
    BAD = "bad"


@dataclass(frozen=True)
class EmailRecord:
    """A fully materialised email handed to the triage core."""

    sender: str
    recipient: str
    subject: str
    body: str
    headers: Mapping[str, str]
    received_at: datetime | None = None
    attachments: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        sender: Any = "",
        recipient: Any = "",
        subject: Any = "",
        body: Any = "",
        headers: Mapping[Any, Any] | None = None,
        received_at: datetime | None = None,
        attachments: Iterable[Any] | None = None,
    ) -> EmailRecord:
        """Create a record, degrading malformed fields to empty values."""

        return cls(
            sender=_text(sender),
            recipient=_text(recipient),
            subject=_text(subject),
            body=_text(body),
            headers=normalize_headers(headers),
            received_at=received_at if isinstance(received_at, datetime) else None,
            attachments=tuple(_text(name) for name in (attachments or ()) if _text(name)),
        )

    def header(self, name: str) -> str:
        """Case-insensitive header lookup; absent headers read as ''."""

        return self.headers.get(name.strip().lower(), "")

    @property
    def message_id(self) -> str:
        return self.header("message-id").strip()


def normalize_headers(headers: Mapping[Any, Any] | None) -> Mapping[str, str]:
    """Lower-case header names and make sure every required header is present."""

    normalized: dict[str, str] = {name: "" for name in REQUIRED_HEADERS}
    if isinstance(headers, Mapping):
        for name, value in headers.items():
            if not isinstance(name, str):
                continue
            normalized[name.strip().lower()] = _text(value)
    return MappingProxyType(normalized)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass(frozen=True)
class ExtractedFeatures:
    """Signals derived from a single EmailRecord."""

    from_domain: str = ""
    return_path_domain: str = ""
    domain_mismatch: bool = False
    spf_pass: bool = False
    dkim_pass: bool = False
    dmarc_pass: bool = False
    urgency_keywords: frozenset[str] = frozenset()
    link_count: int = 0
    suspicious_link_count: int = 0
    has_attachments: bool = False
    attachment_types: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.suspicious_link_count > self.link_count:
            raise ValueError("suspicious_link_count cannot exceed link_count")

    @property
    def urgency_level(self) -> UrgencyLevel:
        matched = len(self.urgency_keywords)
        if matched >= 3:
            return UrgencyLevel.CRITICAL
        if matched == 2:
            return UrgencyLevel.HIGH
        if matched == 1:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of scoring one email."""

    threat_score: int
    verdict: Verdict
    confidence: float
    latency_ms: float
    threat_probability: float
    contributions: Mapping[str, int]
    analyzed_at: datetime
    message_id: str = ""
    sender: str = ""
    subject: str = ""


@dataclass(frozen=True)
class SyntheticRecord:
    """A labelled, generated training record."""

    label: int
    subject: str
    body: str
    from_domain: str
    return_path_domain: str
    domain_mismatch_flag: bool
    sender_reputation_score: float
    time_anomaly_score: float
    attachment_type: str
    urgency_keywords: frozenset[str]
    has_links: bool
    link_count: int

    @property
    def is_fraud(self) -> bool:
        return self.label == 1


@dataclass(frozen=True)
class DetectionQuality:
    """Detection-quality rates measured against ground truth."""

    precision: float
    recall: float
    false_positive_rate: float


@dataclass(frozen=True)
class RunningMetrics:
    """Aggregate statistics over the current result window."""

    total_analyzed: int
    threats_detected: int
    average_latency_ms: float
    p95_latency_ms: float
    false_positive_rate: float
    recall: float
    precision: float
    latency_status: LatencyStatus
    verdict_counts: Mapping[Verdict, int] = field(default_factory=dict)


__all__ = [
    "REQUIRED_HEADERS",
    "Verdict",
    "UrgencyLevel",
    "LatencyStatus",
    "EmailRecord",
    "normalize_headers",
    "ExtractedFeatures",
    "ScoreResult",
    "SyntheticRecord",
    "DetectionQuality",
    "RunningMetrics",
]
