"""Additive threat scoring and verdict classification."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType

from .config import ScoringConfig, Thresholds
from .types import ExtractedFeatures, ScoreResult, Verdict

LOGGER = logging.getLogger(__name__)

MAX_CONFIDENCE = 0.999


class ThreatScorer:
    """Turns extracted features into a score, verdict and confidence.

    Every signal adds a fixed, non-negative number of points; nothing ever
    lowers the score, so adding a signal can only keep or raise the verdict.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()
        self._weights = MappingProxyType(dict(self._config.weights))
        self._thresholds = self._config.thresholds

    @property
    def weights(self) -> Mapping[str, int]:
        return self._weights

    @property
    def thresholds(self) -> Thresholds:
        return self._thresholds

    def score(
        self,
        features: ExtractedFeatures,
        *,
        started: float | None = None,
        message_id: str = "",
        sender: str = "",
        subject: str = "",
    ) -> ScoreResult:
        """Score a feature set.

        ``started`` is a ``time.perf_counter()`` reading taken before
        extraction so the reported latency covers extraction and scoring.
        """

        begin = time.perf_counter() if started is None else started
        contributions = self.contributions(features)
        total = sum(contributions.values())
        verdict = self.classify(total)
        probability = self.threat_probability(total)
        confidence = min(max(probability, 1.0 - probability), MAX_CONFIDENCE)
        latency_ms = max((time.perf_counter() - begin) * 1000.0, self._config.min_latency_ms)
        return ScoreResult(
            threat_score=total,
            verdict=verdict,
            confidence=confidence,
            latency_ms=latency_ms,
            threat_probability=probability,
            contributions=MappingProxyType(contributions),
            analyzed_at=datetime.now(timezone.utc),
            message_id=message_id,
            sender=sender,
            subject=subject,
        )

    def contributions(self, features: ExtractedFeatures) -> dict[str, int]:
        """Return the points contributed by each signal present in ``features``."""

        active = {
            "domain_mismatch": bool(features.domain_mismatch),
            "urgency_keywords": bool(features.urgency_keywords),
            "suspicious_links": features.suspicious_link_count > 0,
            "spf_fail": not features.spf_pass,
            "dkim_fail": not features.dkim_pass,
            "dmarc_fail": not features.dmarc_pass,
        }
        return {
            signal: self._weights.get(signal, 0)
            for signal, present in active.items()
            if present and self._weights.get(signal, 0) > 0
        }

    def classify(self, threat_score: int) -> Verdict:
        """Map a score to the most severe verdict whose threshold it reaches."""

        thresholds = self._thresholds
        if threat_score >= thresholds.phishing:
            return Verdict.PREDICTED_PHISHING
        if threat_score >= thresholds.fraud:
            return Verdict.PREDICTED_FRAUD
        if threat_score >= thresholds.suspicious:
            return Verdict.PREDICTED_LEGIT
        return Verdict.LEGIT

    def threat_probability(self, threat_score: int) -> float:
        # Logistic curve centred on the midpoint; monotone in the score.
        exponent = -(threat_score - self._config.confidence_midpoint) / self._config.confidence_scale
        if exponent > 700:
            return 0.0
        return 1.0 / (1.0 + math.exp(exponent))


__all__ = ["ThreatScorer", "MAX_CONFIDENCE"]
