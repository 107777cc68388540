from dataclasses import FrozenInstanceError

import pytest

from safecheck import types as safecheck_types
from safecheck.types import EmailRecord, ExtractedFeatures, UrgencyLevel, Verdict


def test_verdicts_are_ordered_by_severity() -> None:
    ordered = sorted(Verdict, reverse=True)
    assert ordered[0] is Verdict.PREDICTED_PHISHING
    assert Verdict.LEGIT < Verdict.PREDICTED_LEGIT < Verdict.PREDICTED_FRAUD
    assert Verdict.PREDICTED_FRAUD <= Verdict.PREDICTED_PHISHING
    assert [verdict.severity for verdict in Verdict] == [0, 1, 2, 3]


def test_only_fraud_and_phishing_are_threats() -> None:
    assert {verdict for verdict in Verdict if verdict.is_threat} == {
        Verdict.PREDICTED_FRAUD,
        Verdict.PREDICTED_PHISHING,
    }


def test_build_degrades_malformed_fields_and_fills_headers() -> None:
    record = EmailRecord.build(
        sender=None,
        subject=42,
        body=b"bytes are not text",
        headers={"Return-Path": "<bounce@example.com>", 3: "ignored", "X-Custom": None},
        attachments=["invoice.pdf", None, ""],
    )

    assert record.sender == ""
    assert record.subject == ""
    assert record.body == ""
    assert record.header("return-path") == "<bounce@example.com>"
    assert record.header("RETURN-PATH") == "<bounce@example.com>"
    assert record.header("x-custom") == ""
    for name in safecheck_types.REQUIRED_HEADERS:
        assert name in record.headers
    assert record.header("authentication-results") == ""
    assert record.attachments == ("invoice.pdf",)


def test_message_id_is_read_from_headers() -> None:
    record = EmailRecord.build(headers={"Message-ID": "  <abc@example.com> "})
    assert record.message_id == "<abc@example.com>"


def test_features_are_immutable() -> None:
    features = ExtractedFeatures(link_count=1)
    with pytest.raises(FrozenInstanceError):
        features.link_count = 2  # type: ignore[misc]


def test_suspicious_links_cannot_exceed_links() -> None:
    with pytest.raises(ValueError):
        ExtractedFeatures(link_count=1, suspicious_link_count=2)


@pytest.mark.parametrize(
    "keywords, expected",
    [
        (frozenset(), UrgencyLevel.LOW),
        (frozenset({"urgent"}), UrgencyLevel.MEDIUM),
        (frozenset({"urgent", "asap"}), UrgencyLevel.HIGH),
        (frozenset({"urgent", "asap", "expires"}), UrgencyLevel.CRITICAL),
    ],
)
def test_urgency_level_buckets(keywords, expected) -> None:
    assert ExtractedFeatures(urgency_keywords=keywords).urgency_level is expected
