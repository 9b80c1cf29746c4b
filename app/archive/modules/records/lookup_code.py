"""
Printable lookup codes ("barcode payloads").

Format: PREFIX|doc_uid|doc_type|v<version>|<checksum>

The checksum is the first 10 hex chars of sha256(doc_uid + doc_type + version + salt),
concatenated with no separators. Codes carry no personal data; the salt keeps
them unforgeable without server access.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass

PREFIX = "BHTCL"
SEPARATOR = "|"
CHECKSUM_LENGTH = 10

_VERSION_RE = re.compile(r"v([1-9][0-9]{0,8})")


@dataclass(frozen=True)
class DocumentIdentity:
    doc_uid: str
    doc_type: str
    version: int


def compute_checksum(doc_uid: str, doc_type: str, version: int, salt: str) -> str:
    raw = f"{doc_uid}{doc_type}{version}{salt}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:CHECKSUM_LENGTH]


def encode(doc_uid: str, doc_type: str, version: int, salt: str) -> str:
    if not doc_uid or not doc_type:
        raise ValueError("doc_uid and doc_type are required.")
    if SEPARATOR in doc_uid or SEPARATOR in doc_type:
        raise ValueError(f"doc_uid/doc_type must not contain {SEPARATOR!r}.")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer (got {version!r}).")
    checksum = compute_checksum(doc_uid, doc_type, version, salt)
    return SEPARATOR.join((PREFIX, doc_uid, doc_type, f"v{version}", checksum))


def decode(code: str, salt: str) -> DocumentIdentity | None:
    """
    Parse and verify a lookup code.

    Every failure (shape, prefix, version, checksum) returns the same None so
    callers cannot tell a malformed code from a forged one.
    """
    parts = (code or "").strip().split(SEPARATOR)
    if len(parts) != 5:
        return None
    magic, doc_uid, doc_type, version_part, checksum = parts
    if magic != PREFIX or not doc_uid or not doc_type or not checksum:
        return None
    m = _VERSION_RE.fullmatch(version_part)
    if not m:
        return None
    version = int(m.group(1))

    expected = compute_checksum(doc_uid, doc_type, version, salt)
    if not hmac.compare_digest(expected.encode("utf-8"), checksum.encode("utf-8")):
        return None
    return DocumentIdentity(doc_uid=doc_uid, doc_type=doc_type, version=version)
