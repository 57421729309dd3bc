"""Typed view of a record's data.json descriptor.

Each builder validates one part of the raw JSON and raises ValidationError with
a message meant for the person who authored the descriptor.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from app.processor.exceptions import ValidationError

DOCUMENT_TYPES = frozenset({"File", "Message", "Attachment"})
_MESSAGE_FIELDS = ("from", "to", "date", "subject")


@dataclass(frozen=True)
class DescriptorHeader:
    """Fiche-level fields of a descriptor."""

    dump: str
    source: str
    object: str
    summary: str
    date: date


@dataclass(frozen=True)
class MessageMetadata:
    sender: str
    recipients: list[str]
    date: str
    subject: str


@dataclass(frozen=True)
class FileEntry:
    """One declared document of a descriptor."""

    type: str
    name: str
    original_name: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    path: str | None = None
    message: MessageMetadata | None = None


def load_descriptor(raw: bytes) -> dict[str, Any]:
    """Decode descriptor bytes into a JSON object."""
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"data.json is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("data.json must contain a JSON object")
    return data


def build_header(data: dict[str, Any]) -> DescriptorHeader:
    return DescriptorHeader(
        dump=_require_text(data, "dump"),
        source=_require_text(data, "source"),
        object=_require_text(data, "object"),
        summary=_require_text(data, "summary"),
        date=_build_date(data.get("date")),
    )


def declared_files(data: dict[str, Any]) -> list[Any]:
    files = data.get("files")
    if not isinstance(files, list):
        raise ValidationError("'files' must be a list")
    return files


def build_file_entry(raw: Any, index: int) -> FileEntry:
    """Validate the declared file at ``index`` (0-based)."""
    label = f"File {index + 1}"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")

    name = _require_file_name(raw, "name", label)
    original_name = _require_file_name(raw, "original_name", label)
    doc_type = raw.get("type")
    if doc_type not in DOCUMENT_TYPES:
        raise ValidationError(
            f"{label}: 'type' must be one of {sorted(DOCUMENT_TYPES)}, got {doc_type!r}"
        )
    content = raw.get("content")
    if not isinstance(content, str):
        raise ValidationError(f"{label}: 'content' must be a string")

    path = raw.get("path")
    if path is not None and not isinstance(path, str):
        raise ValidationError(f"{label}: 'path' must be a string or null")

    metadata = raw.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ValidationError(f"{label}: 'metadata' must be an object")

    message = _build_message(metadata, label) if doc_type == "Message" else None

    return FileEntry(
        type=doc_type,
        name=name,
        original_name=original_name,
        content=content,
        metadata=dict(metadata),
        path=path,
        message=message,
    )


def _build_message(metadata: dict[str, Any], label: str) -> MessageMetadata:
    missing = [key for key in _MESSAGE_FIELDS if not metadata.get(key)]
    if missing:
        raise ValidationError(f"{label}: message metadata is missing {', '.join(missing)}")

    recipients = metadata["to"]
    if not isinstance(recipients, list) or not all(
        isinstance(r, str) and r.strip() for r in recipients
    ):
        raise ValidationError(f"{label}: 'metadata.to' must be a list of recipients")
    for key in ("from", "date", "subject"):
        if not isinstance(metadata[key], str):
            raise ValidationError(f"{label}: 'metadata.{key}' must be a string")

    return MessageMetadata(
        sender=metadata["from"],
        recipients=list(recipients),
        date=metadata["date"],
        subject=metadata["subject"],
    )


def _require_text(data: dict[str, Any], key: str, label: str = "data.json") -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label}: '{key}' is required")
    return value.strip()


def _build_date(raw: Any) -> date:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("data.json: 'date' is required")
    value = raw.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as exc:
        raise ValidationError(f"data.json: 'date' is not a valid date: {raw!r}") from exc


def _require_file_name(data: dict[str, Any], key: str, label: str) -> str:
    value = _require_text(data, key, label)
    if "/" in value or "\\" in value or value in {".", ".."}:
        raise ValidationError(f"{label}: '{key}' must be a plain file name, got {value!r}")
    return value
