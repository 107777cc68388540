"""Turning raw mail into EmailRecords, and simple local mail sources."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from email import policy
from email.header import decode_header, make_header
from email.message import EmailMessage, Message
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .types import REQUIRED_HEADERS, EmailRecord

LOGGER = logging.getLogger(__name__)

MESSAGE_SUFFIX = ".eml"


class SourceUnavailable(RuntimeError):
    """Raised when a mail source cannot supply records (auth, network, disk)."""


@runtime_checkable
class MailSource(Protocol):
    """Anything that can hand over fully materialised email records."""

    def fetch(self, limit: int | None = None) -> Sequence[EmailRecord]: ...


def coerce_record(raw: Any) -> EmailRecord:
    """Accept an EmailRecord, a provider-style mapping, or RFC822 data."""

    if isinstance(raw, EmailRecord):
        return raw
    if isinstance(raw, Message):
        return record_from_message(raw)
    if isinstance(raw, (bytes, bytearray)):
        return record_from_bytes(bytes(raw))
    if isinstance(raw, Mapping):
        return record_from_mapping(raw)
    if isinstance(raw, str):
        return record_from_bytes(raw.encode("utf-8", errors="ignore"))
    LOGGER.debug("Unsupported raw email type %s; treating as empty", type(raw).__name__)
    return EmailRecord.build()


def record_from_mapping(raw: Mapping[str, Any]) -> EmailRecord:
    """Build a record from a provider payload (from/to/subject/body/date/headers)."""

    headers = raw.get("headers")
    return EmailRecord.build(
        sender=raw.get("from", ""),
        recipient=raw.get("to", ""),
        subject=raw.get("subject", ""),
        body=raw.get("body", ""),
        headers=headers if isinstance(headers, Mapping) else None,
        received_at=parse_date(raw.get("date")),
        attachments=_attachment_list(raw.get("attachments")),
    )


def record_from_bytes(data: bytes) -> EmailRecord:
    try:
        message = BytesParser(policy=policy.default).parsebytes(data)
    except Exception:
        LOGGER.debug("Failed to parse RFC822 payload", exc_info=True)
        return EmailRecord.build()
    return record_from_message(message)


def record_from_message(message: Message) -> EmailRecord:
    """Flatten an RFC822 message into an EmailRecord."""

    headers: dict[str, str] = {}
    for name in REQUIRED_HEADERS:
        headers[name] = _header(message, name)
    body, attachments = _body_and_attachments(message)
    return EmailRecord.build(
        sender=_header(message, "From"),
        recipient=_header(message, "To"),
        subject=_header(message, "Subject"),
        body=body,
        headers=headers,
        received_at=parse_date(_header(message, "Date")),
        attachments=attachments,
    )


def read_message(path: Path) -> EmailMessage:
    """Parse a message file into an EmailMessage instance."""

    file_path = Path(path)
    if not file_path.is_file():
        raise SourceUnavailable(f"Message file does not exist: {file_path}")
    parser = BytesParser(policy=policy.default)
    try:
        with file_path.open("rb") as handle:
            return parser.parse(handle)
    except OSError as exc:
        raise SourceUnavailable(f"Cannot read message file {file_path}: {exc}") from exc


def parse_date(value: Any) -> datetime | None:
    """Parse RFC 2822 or ISO-8601 dates; anything else yields None."""

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


class EmlDirectorySource:
    """Reads ``*.eml`` files from a directory, oldest first."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def fetch(self, limit: int | None = None) -> list[EmailRecord]:
        paths = self.message_paths()
        if limit is not None:
            paths = paths[:limit]
        return [record_from_message(read_message(path)) for path in paths]

    def message_paths(self) -> list[Path]:
        if not self._directory.is_dir():
            raise SourceUnavailable(f"Mail directory not found: {self._directory}")
        try:
            candidates = [
                path
                for path in self._directory.iterdir()
                if path.is_file() and path.suffix.lower() == MESSAGE_SUFFIX
            ]
        except OSError as exc:
            raise SourceUnavailable(f"Cannot list {self._directory}: {exc}") from exc
        stamped: list[tuple[float, str, Path]] = []
        for path in candidates:
            try:
                stamped.append((path.stat().st_mtime, path.name, path))
            except FileNotFoundError:
                LOGGER.debug("Message %s vanished before it could be read", path)
            except OSError as exc:
                raise SourceUnavailable(f"Cannot stat {path}: {exc}") from exc
        return [path for _, _, path in sorted(stamped)]


def _header(message: Message, name: str) -> str:
    try:
        raw = message.get(name)
    except Exception:
        LOGGER.debug("Malformed %s header", name, exc_info=True)
        return ""
    if raw is None:
        return ""
    return _decode_header_value(str(raw))


def _decode_header_value(value: str) -> str:
    try:
        decoded = str(make_header(decode_header(value)))
    except Exception:
        decoded = value
    return decoded.strip()


def _body_and_attachments(message: Message) -> tuple[str, list[str]]:
    plain: list[str] = []
    html: list[str] = []
    attachments: list[str] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        disposition = (part.get_content_disposition() or "").lower()
        filename = part.get_filename()
        if disposition == "attachment" or (filename and disposition != "inline"):
            attachments.append(filename or "")
            continue
        payload = part.get_payload(decode=True)
        if not isinstance(payload, (bytes, bytearray)):
            continue
        decoded = _decode_bytes(bytes(payload), part.get_content_charset())
        content_type = part.get_content_type().lower()
        if content_type == "text/plain":
            plain.append(decoded)
        elif content_type == "text/html":
            html.append(decoded)
    if plain:
        body = "\n".join(text.strip() for text in plain if text.strip())
    else:
        # Keep the markup so URLs inside tag attributes are still counted.
        body = "\n".join(html)
    return body, [name for name in attachments if name]


def _decode_bytes(data: bytes, charset: str | None) -> str:
    candidates = ([charset] if charset else []) + ["utf-8", "latin-1"]
    for encoding in candidates:
        try:
            return data.decode(encoding, errors="replace")
        except LookupError:
            continue
    return data.decode("utf-8", errors="ignore")


def _attachment_list(value: Any) -> list[str]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        return []
    names: list[str] = []
    for entry in value:
        if isinstance(entry, str):
            names.append(entry)
        elif isinstance(entry, Mapping) and isinstance(entry.get("filename"), str):
            names.append(entry["filename"])
    return names


__all__ = [
    "EmlDirectorySource",
    "MailSource",
    "SourceUnavailable",
    "coerce_record",
    "parse_date",
    "read_message",
    "record_from_bytes",
    "record_from_mapping",
    "record_from_message",
]
