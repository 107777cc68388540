"""JSON export/import of synthetic datasets and rendering records as mail."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .types import EmailRecord, SyntheticRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_EXPORT_NAME = "safecheck_synthetic_dataset.json"
SHORTENER_HOST = "bit.ly"
PASSING_REPUTATION = 50.0
RENDERED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)

# Export keys, in document order.
FIELD_NAMES = (
    "label",
    "subject",
    "body",
    "fromDomain",
    "returnPathDomain",
    "domainMismatchFlag",
    "senderReputationScore",
    "timeAnomalyScore",
    "attachmentType",
    "urgencyKeywords",
    "hasLinks",
    "linkCount",
)


class DatasetFormatError(ValueError):
    """Raised when a dataset document cannot be parsed into records."""


def record_to_dict(record: SyntheticRecord) -> dict[str, Any]:
    return {
        "label": record.label,
        "subject": record.subject,
        "body": record.body,
        "fromDomain": record.from_domain,
        "returnPathDomain": record.return_path_domain,
        "domainMismatchFlag": record.domain_mismatch_flag,
        "senderReputationScore": record.sender_reputation_score,
        "timeAnomalyScore": record.time_anomaly_score,
        "attachmentType": record.attachment_type,
        "urgencyKeywords": sorted(record.urgency_keywords),
        "hasLinks": record.has_links,
        "linkCount": record.link_count,
    }


def record_from_dict(raw: Any, *, index: int = 0) -> SyntheticRecord:
    """Validate one flat mapping and turn it back into a record."""

    if not isinstance(raw, Mapping):
        raise DatasetFormatError(f"records[{index}] must be an object.")
    missing = [name for name in FIELD_NAMES if name not in raw]
    if missing:
        raise DatasetFormatError(f"records[{index}] is missing {', '.join(missing)}.")

    label = raw["label"]
    if label not in (0, 1) or isinstance(label, bool):
        raise DatasetFormatError(f"records[{index}].label must be 0 or 1.")
    keywords = raw["urgencyKeywords"]
    if not isinstance(keywords, list) or not all(isinstance(word, str) for word in keywords):
        raise DatasetFormatError(f"records[{index}].urgencyKeywords must be a list of strings.")

    return SyntheticRecord(
        label=int(label),
        subject=_expect(raw, "subject", str, index),
        body=_expect(raw, "body", str, index),
        from_domain=_expect(raw, "fromDomain", str, index),
        return_path_domain=_expect(raw, "returnPathDomain", str, index),
        domain_mismatch_flag=_expect(raw, "domainMismatchFlag", bool, index),
        sender_reputation_score=float(_expect(raw, "senderReputationScore", (int, float), index)),
        time_anomaly_score=float(_expect(raw, "timeAnomalyScore", (int, float), index)),
        attachment_type=_expect(raw, "attachmentType", str, index),
        urgency_keywords=frozenset(keywords),
        has_links=_expect(raw, "hasLinks", bool, index),
        link_count=int(_expect(raw, "linkCount", int, index)),
    )


def dump_records(records: Iterable[SyntheticRecord]) -> str:
    """Serialise records as one pretty-printed JSON array."""

    return json.dumps([record_to_dict(record) for record in records], indent=2)


def load_records(document: str) -> list[SyntheticRecord]:
    try:
        payload = json.loads(document)
    except json.JSONDecodeError as exc:
        raise DatasetFormatError(f"Dataset is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise DatasetFormatError("Dataset root must be a JSON array.")
    return [record_from_dict(entry, index=idx) for idx, entry in enumerate(payload)]


def export_dataset(records: Iterable[SyntheticRecord], path: Path) -> Path:
    """Write the dataset atomically (temp file, then rename)."""

    document = dump_records(records)
    target = Path(path).expanduser()

    def _write(tmp_path: Path) -> None:
        tmp_path.write_text(document + "\n", encoding="utf-8")

    _atomic_write(target, _write)
    LOGGER.info("Exported synthetic dataset to %s", target)
    return target


def load_dataset(path: Path) -> list[SyntheticRecord]:
    source = Path(path).expanduser()
    try:
        document = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise DatasetFormatError(f"Cannot read dataset {source}: {exc}") from exc
    return load_records(document)


def render_email(record: SyntheticRecord, *, index: int = 0) -> EmailRecord:
    """Render a synthetic record as an email the extractor can analyse.

    Authentication passes for reputable senders. Fraud links alternate between
    a URL shortener and the return-path domain; legitimate links stay on the
    sender's own domain.
    """

    links: list[str] = []
    for position in range(record.link_count):
        if record.is_fraud and position % 2 == 0:
            links.append(f"https://{SHORTENER_HOST}/{index:x}{position}")
        elif record.is_fraud:
            links.append(f"https://{record.return_path_domain}/verify/{position}")
        else:
            links.append(f"https://{record.from_domain}/docs/{position}")

    body_parts = [record.body]
    if record.urgency_keywords:
        body_parts.append(" ".join(sorted(record.urgency_keywords)))
    body_parts.extend(links)

    verdict = "pass" if record.sender_reputation_score >= PASSING_REPUTATION else "fail"
    auth_results = (
        f"mx.safecheck.local; spf={verdict} smtp.mailfrom={record.return_path_domain}; "
        f"dkim={verdict} header.d={record.from_domain}; dmarc={verdict}"
    )
    return EmailRecord.build(
        sender=f"noreply@{record.from_domain}",
        recipient="inbox@safecheck.local",
        subject=record.subject,
        body="\n".join(body_parts),
        headers={
            "return-path": f"<bounce@{record.return_path_domain}>",
            "authentication-results": auth_results,
            "message-id": f"<synthetic-{index}@safecheck.local>",
        },
        received_at=RENDERED_AT,
        attachments=[f"document{record.attachment_type}"] if record.attachment_type else [],
    )


def _expect(raw: Mapping[str, Any], name: str, kind: Any, index: int) -> Any:
    value = raw[name]
    if kind is not bool and isinstance(value, bool):
        raise DatasetFormatError(f"records[{index}].{name} has the wrong type.")
    if not isinstance(value, kind):
        raise DatasetFormatError(f"records[{index}].{name} has the wrong type.")
    return value


def _atomic_write(target: Path, writer: Callable[[Path], None]) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
    try:
        writer(tmp_path)
        tmp_path.replace(target)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


__all__ = [
    "DEFAULT_EXPORT_NAME",
    "FIELD_NAMES",
    "DatasetFormatError",
    "dump_records",
    "export_dataset",
    "load_dataset",
    "load_records",
    "record_from_dict",
    "record_to_dict",
    "render_email",
]
