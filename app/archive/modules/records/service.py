from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from app.archive.errors import ValidationFailure
from app.archive.modules.records.models import Document

ACCEPTED_MIME_TYPE = "application/pdf"
DOC_TYPE_MAX_LENGTH = 48
DEFAULT_DOC_TYPE = "GENERAL"
DEFAULT_CLASSIFICATION = "INTERNAL"
DEFAULT_RETENTION_CLASS = "DEFAULT_7Y"
DEFAULT_DISPOSAL_DAYS = 365

_EXT_BY_MIME = {ACCEPTED_MIME_TYPE: "pdf"}


def normalize_doc_type(raw: str | None) -> str:
    """Uppercase, non [A-Z0-9_] characters become '_', capped at 48 chars."""
    return re.sub(r"[^A-Z0-9_]", "_", (raw or "").strip().upper())[:DOC_TYPE_MAX_LENGTH]


def generate_doc_uid() -> str:
    return uuid.uuid4().hex


def storage_path_for(doc_uid: str, version: int, *, year: int, mime_type: str = ACCEPTED_MIME_TYPE) -> str:
    ext = _EXT_BY_MIME.get(mime_type, "bin")
    return f"{year}/{doc_uid}/v{version}.{ext}"


def split_storage_path(path: str) -> tuple[str, str] | None:
    """'2026/<uid>/v1.pdf' -> ('2026/<uid>', 'v1.pdf'); anything else -> None."""
    parts = (path or "").split("/")
    if len(parts) != 3 or not all(parts):
        return None
    return f"{parts[0]}/{parts[1]}", parts[2]


def parse_int(value: Any, default: int | None = None) -> int | None:
    """Lenient integer parse for JSON/query input ("3", 3, 3.0). Returns None when unparseable."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    # capped width: int() refuses very long digit strings
    m = re.match(r"\s*([+-]?\d{1,18})(?!\d)", str(value))
    return int(m.group(1)) if m else None


@dataclass(frozen=True)
class UploadRequest:
    title: str
    doc_type: str
    version: int
    file_size: int
    mime_type: str


def validate_upload_request(payload: dict, *, max_bytes: int) -> UploadRequest:
    """Validate an upload-init body. Messages are specific; nothing secret is involved."""
    title = str(payload.get("title") or "").strip()
    doc_type = normalize_doc_type(str(payload.get("doc_type") or DEFAULT_DOC_TYPE))
    version = parse_int(payload.get("version"), 1)
    file_size = parse_int(payload.get("file_size"), 0)
    mime_type = str(payload.get("mime_type") or "").strip()

    if not title:
        raise ValidationFailure("Title is required.")
    if not doc_type:
        raise ValidationFailure("Invalid document type.")
    if version is None or version < 1:
        raise ValidationFailure("Invalid version.")
    if file_size is None or file_size <= 0:
        raise ValidationFailure("Invalid file size.")
    if file_size > max_bytes:
        raise ValidationFailure(
            f"File too large. Max supported size is {max_bytes // (1024 * 1024)}MB.",
            status_code=413,
            extra={"max_bytes": max_bytes},
        )
    if mime_type != ACCEPTED_MIME_TYPE:
        raise ValidationFailure("Only PDF uploads are allowed.")
    return UploadRequest(title=title[:255], doc_type=doc_type, version=version, file_size=file_size, mime_type=mime_type)


def retention_defaults(today: date) -> dict[str, Any]:
    return {
        "classification_level": DEFAULT_CLASSIFICATION,
        "retention_class": DEFAULT_RETENTION_CLASS,
        "retention_trigger_date": today,
        "disposal_due_date": today + timedelta(days=DEFAULT_DISPOSAL_DAYS),
        "legal_hold": False,
    }


def _iso(d: Any) -> str | None:
    return d.isoformat() if d is not None else None


def document_projection(doc: Document) -> dict[str, Any]:
    """Metadata a reader may see after resolving a code. Never includes the storage path."""
    return {
        "doc_uid": doc.doc_uid,
        "doc_type": doc.doc_type,
        "version": doc.version,
        "title": doc.title,
        "description": doc.description,
        "classification_level": doc.classification_level,
        "retention_class": doc.retention_class,
        "retention_trigger_date": _iso(doc.retention_trigger_date),
        "disposal_due_date": _iso(doc.disposal_due_date),
        "legal_hold": doc.legal_hold,
    }


def document_summary(doc: Document) -> dict[str, Any]:
    return {
        "doc_uid": doc.doc_uid,
        "doc_type": doc.doc_type,
        "version": doc.version,
        "title": doc.title,
        "classification_level": doc.classification_level,
        "retention_class": doc.retention_class,
        "disposal_due_date": _iso(doc.disposal_due_date),
        "legal_hold": doc.legal_hold,
        "created_at": _iso(doc.created_at),
        "created_by": doc.created_by,
    }
