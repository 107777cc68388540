from __future__ import annotations

import math
import time

import pytest

from safecheck.config import DEFAULT_WEIGHTS, ScoringConfig
from safecheck.scorer import MAX_CONFIDENCE, ThreatScorer
from safecheck.types import ExtractedFeatures, Verdict

CLEAN = ExtractedFeatures(spf_pass=True, dkim_pass=True, dmarc_pass=True)


def _scorer_with(**weights: int) -> ThreatScorer:
    merged = {name: 0 for name in DEFAULT_WEIGHTS}
    merged.update(weights)
    return ThreatScorer(ScoringConfig(weights=merged))


def test_clean_features_score_zero() -> None:
    result = ThreatScorer().score(CLEAN)

    assert result.threat_score == 0
    assert result.verdict is Verdict.LEGIT
    assert result.contributions == {}


def test_ceo_fraud_example_reaches_phishing() -> None:
    features = ExtractedFeatures(
        from_domain="corp.com",
        return_path_domain="corp-secure.net",
        domain_mismatch=True,
        urgency_keywords=frozenset({"urgent"}),
        link_count=1,
        suspicious_link_count=1,
    )

    result = ThreatScorer().score(features, sender="ceo@corp.com", subject="URGENT wire")

    assert result.threat_score == 80
    assert result.verdict is Verdict.PREDICTED_PHISHING
    assert dict(result.contributions) == {
        "domain_mismatch": 30,
        "urgency_keywords": 15,
        "suspicious_links": 25,
        "spf_fail": 5,
        "dkim_fail": 5,
    }
    assert result.sender == "ceo@corp.com"
    assert result.confidence == pytest.approx(1 / (1 + math.exp(-3)))
    assert result.threat_probability == pytest.approx(result.confidence)


@pytest.mark.parametrize(
    "points, verdict",
    [
        (19, Verdict.LEGIT),
        (20, Verdict.PREDICTED_LEGIT),
        (49, Verdict.PREDICTED_LEGIT),
        (50, Verdict.PREDICTED_FRAUD),
        (69, Verdict.PREDICTED_FRAUD),
        (70, Verdict.PREDICTED_PHISHING),
    ],
)
def test_threshold_boundaries(points: int, verdict: Verdict) -> None:
    scorer = _scorer_with(domain_mismatch=points)

    result = scorer.score(ExtractedFeatures(domain_mismatch=True, spf_pass=True, dkim_pass=True))

    assert result.threat_score == points
    assert result.verdict is verdict


def test_adding_a_signal_never_lowers_the_verdict() -> None:
    scorer = ThreatScorer()
    base = ExtractedFeatures(spf_pass=True, dkim_pass=True, dmarc_pass=True)
    steps = [
        base,
        ExtractedFeatures(spf_pass=False, dkim_pass=True, dmarc_pass=True),
        ExtractedFeatures(urgency_keywords=frozenset({"asap"})),
        ExtractedFeatures(urgency_keywords=frozenset({"asap"}), domain_mismatch=True),
        ExtractedFeatures(
            urgency_keywords=frozenset({"asap"}),
            domain_mismatch=True,
            link_count=2,
            suspicious_link_count=1,
        ),
    ]

    results = [scorer.score(features) for features in steps]

    scores = [result.threat_score for result in results]
    verdicts = [result.verdict for result in results]
    assert scores == sorted(scores)
    assert verdicts == sorted(verdicts)


def test_confidence_is_bounded_and_highest_far_from_midpoint() -> None:
    scorer = ThreatScorer()

    at_midpoint = scorer.threat_probability(50)
    confidences = [scorer.score(_features_worth(points)).confidence for points in (0, 50, 80)]

    assert at_midpoint == pytest.approx(0.5)
    assert all(0.5 <= value <= MAX_CONFIDENCE for value in confidences)
    assert confidences[1] < confidences[0]
    assert confidences[1] < confidences[2]


def test_threat_probability_is_monotone() -> None:
    scorer = ThreatScorer()

    values = [scorer.threat_probability(points) for points in range(0, 101, 5)]

    assert values == sorted(values)
    assert 0.0 <= values[0] < 0.01
    assert 0.99 < values[-1] <= 1.0


def test_latency_covers_work_since_start_and_is_positive() -> None:
    scorer = ThreatScorer()

    quick = scorer.score(CLEAN)
    slow = scorer.score(CLEAN, started=time.perf_counter() - 0.05)

    assert quick.latency_ms >= 1.0
    assert slow.latency_ms >= 50.0


def test_zero_weight_signals_do_not_contribute() -> None:
    contributions = ThreatScorer().contributions(ExtractedFeatures())

    assert "dmarc_fail" not in contributions
    assert contributions == {"spf_fail": 5, "dkim_fail": 5}


def _features_worth(points: int) -> ExtractedFeatures:
    if points == 0:
        return CLEAN
    if points == 50:
        # 30 + 15 + 5 = 50
        return ExtractedFeatures(
            domain_mismatch=True,
            urgency_keywords=frozenset({"urgent"}),
            dkim_pass=True,
        )
    return ExtractedFeatures(
        domain_mismatch=True,
        urgency_keywords=frozenset({"urgent"}),
        link_count=1,
        suspicious_link_count=1,
    )
