"""
Signed upload claims.

An upload claim is the only record of an upload between init and complete;
the server keeps no session. Token format:

    base64url(json(claim)) + "." + base64url(HMAC-SHA256(secret, payload_segment))

Timestamps are epoch milliseconds.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any

from app.archive.errors import ClaimRejected

TOKEN_TTL_MS = 10 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


@dataclass(frozen=True)
class UploadClaim:
    uid: str
    path: str
    user_id: str
    title: str
    doc_type: str
    version: int
    file_size: int
    mime_type: str
    iat: int
    exp: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "path": self.path,
            "userId": self.user_id,
            "title": self.title,
            "docType": self.doc_type,
            "version": self.version,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "iat": self.iat,
            "exp": self.exp,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "UploadClaim":
        """Raises KeyError/TypeError/ValueError on a malformed payload."""
        if not isinstance(data, dict):
            raise TypeError("claim payload must be an object")

        def _int(key: str) -> int:
            v = data[key]
            if isinstance(v, bool) or not isinstance(v, int):
                raise TypeError(f"{key} must be an integer")
            return v

        def _str(key: str) -> str:
            v = data[key]
            if not isinstance(v, str):
                raise TypeError(f"{key} must be a string")
            return v

        return cls(
            uid=_str("uid"),
            path=_str("path"),
            user_id=_str("userId"),
            title=_str("title"),
            doc_type=_str("docType"),
            version=_int("version"),
            file_size=_int("fileSize"),
            mime_type=_str("mimeType"),
            iat=_int("iat"),
            exp=_int("exp"),
        )


def new_claim(
    *,
    uid: str,
    path: str,
    user_id: str,
    title: str,
    doc_type: str,
    version: int,
    file_size: int,
    mime_type: str,
    now: int | None = None,
) -> UploadClaim:
    iat = now_ms() if now is None else now
    return UploadClaim(
        uid=uid,
        path=path,
        user_id=user_id,
        title=title,
        doc_type=doc_type,
        version=version,
        file_size=file_size,
        mime_type=mime_type,
        iat=iat,
        exp=iat + TOKEN_TTL_MS,
    )


def _sign(payload_segment: str, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), payload_segment.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(mac)


def issue(claim: UploadClaim, secret: str) -> str:
    if not secret:
        raise ValueError("A signing secret is required.")
    body = json.dumps(claim.to_payload(), separators=(",", ":"), sort_keys=True).encode("utf-8")
    payload_segment = _b64url_encode(body)
    return f"{payload_segment}.{_sign(payload_segment, secret)}"


def _signature_matches(payload_segment: str, supplied: str, secret: str) -> bool:
    expected = _sign(payload_segment, secret).encode("ascii")
    given = supplied.encode("utf-8")
    if len(expected) != len(given):
        return False
    return hmac.compare_digest(expected, given)


def redeem(
    token: str,
    secret: str,
    now: int | None = None,
    *,
    user_id: str | None = None,
    doc_uid: str | None = None,
    storage_path: str | None = None,
) -> UploadClaim:
    """
    Verify `token` and return its claim, or raise ClaimRejected.

    Checks run in order: shape, signature, payload, expiry, then each binding
    field passed in (user_id, doc_uid, storage_path) against the signed value.
    """
    if not secret:
        raise ValueError("A signing secret is required.")
    parts = (token or "").split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ClaimRejected(ClaimRejected.MALFORMED)
    payload_segment, signature = parts

    try:
        payload_segment.encode("ascii")
    except UnicodeEncodeError:
        raise ClaimRejected(ClaimRejected.MALFORMED) from None
    if not _signature_matches(payload_segment, signature, secret):
        raise ClaimRejected(ClaimRejected.BAD_SIGNATURE)

    try:
        claim = UploadClaim.from_payload(json.loads(_b64url_decode(payload_segment).decode("utf-8")))
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        raise ClaimRejected(ClaimRejected.BAD_PAYLOAD) from None

    current = now_ms() if now is None else now
    if current > claim.exp:
        raise ClaimRejected(ClaimRejected.EXPIRED)

    if user_id is not None and claim.user_id != user_id:
        raise ClaimRejected(ClaimRejected.USER_MISMATCH)
    if doc_uid is not None and claim.uid != doc_uid:
        raise ClaimRejected(ClaimRejected.BINDING_MISMATCH)
    if storage_path is not None and claim.path != storage_path:
        raise ClaimRejected(ClaimRejected.BINDING_MISMATCH)
    return claim
