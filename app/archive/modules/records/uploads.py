"""
Two-phase direct-to-storage upload.

init:     validate -> fresh identity + path -> storage write capability -> signed claim
(client): PUT bytes straight to storage using the capability
complete: redeem claim (signature, expiry, bindings) -> object visible? -> insert metadata

No state is held between the two calls; the signed claim carries it all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.archive import audit
from app.archive.audit import RequestContext, record_event
from app.archive.auth import Principal
from app.archive.db import is_unique_violation
from app.archive.errors import ArchiveError, ConflictFailure, UpstreamFailure, ValidationFailure
from app.archive.modules.records import claim_token
from app.archive.modules.records.claim_token import UploadClaim
from app.archive.modules.records.models import Document
from app.archive.modules.records.service import (
    generate_doc_uid,
    retention_defaults,
    split_storage_path,
    storage_path_for,
    validate_upload_request,
)
from app.archive.storage import Storage, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadTicket:
    doc_uid: str
    storage_path: str
    upload_url: str
    upload_token: str | None
    finalize_token: str
    expires_at: int

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "doc_uid": self.doc_uid,
            "storage_path": self.storage_path,
            "upload_url": self.upload_url,
            "upload_token": self.upload_token,
            "finalize_token": self.finalize_token,
            "expires_at": self.expires_at,
        }


def _require_secret(secret: str | None) -> str:
    if not secret:
        logger.error("UPLOAD_TOKEN_SECRET is not configured")
        raise UpstreamFailure("Server misconfigured.", reason="MISSING_UPLOAD_SECRET")
    return secret


def init_upload(
    *,
    principal: Principal,
    payload: dict,
    storage: Storage,
    secret: str | None,
    max_bytes: int,
    now: int | None = None,
) -> UploadTicket:
    """Validate the intent and hand back a write capability plus a signed claim. Touches no table."""
    req = validate_upload_request(payload, max_bytes=max_bytes)
    key = _require_secret(secret)

    issued_at = claim_token.now_ms() if now is None else now
    year = datetime.fromtimestamp(issued_at / 1000, tz=timezone.utc).year
    uid = generate_doc_uid()
    path = storage_path_for(uid, req.version, year=year, mime_type=req.mime_type)

    try:
        capability = storage.create_write_capability(path)
    except StorageError as e:
        logger.error("create_write_capability failed (path=%s): %s", path, e)
        raise UpstreamFailure("Failed to create signed upload URL.", reason="SIGNED_UPLOAD_URL") from e

    claim = claim_token.new_claim(
        uid=uid,
        path=path,
        user_id=principal.user_id,
        title=req.title,
        doc_type=req.doc_type,
        version=req.version,
        file_size=req.file_size,
        mime_type=req.mime_type,
        now=issued_at,
    )
    return UploadTicket(
        doc_uid=uid,
        storage_path=path,
        upload_url=capability.url,
        upload_token=capability.token,
        finalize_token=claim_token.issue(claim, key),
        expires_at=claim.exp,
    )


def _object_present(storage: Storage, storage_path: str) -> bool:
    split = split_storage_path(storage_path)
    if not split:
        raise ValidationFailure("Invalid storage path format.", reason="BAD_STORAGE_PATH")
    folder, file_name = split
    try:
        entries = storage.list(folder, file_name)
    except StorageError as e:
        logger.error("storage list failed (folder=%s): %s", folder, e)
        raise UpstreamFailure("Storage unavailable.", reason="STORAGE_LIST") from e
    return any(entry.name == file_name for entry in entries)


def complete_upload(
    s: Session,
    *,
    principal: Principal,
    finalize_token: str,
    doc_uid: str,
    storage_path: str,
    storage: Storage,
    secret: str | None,
    context: RequestContext | None = None,
    now: int | None = None,
    today: date | None = None,
) -> Document:
    """
    Redeem the claim and register the document.

    A second completion of the same claim loses on the doc_uid unique
    constraint and surfaces as ConflictFailure. Every refusal after the
    request is well-formed is audited as a DENY.
    """
    if not finalize_token or not doc_uid or not storage_path:
        raise ValidationFailure("Missing finalize token or document identifiers.")
    key = _require_secret(secret)

    try:
        doc = _register(s, principal, finalize_token, doc_uid, storage_path, storage, key, now, today)
    except ArchiveError as e:
        record_event(
            s,
            actor_user_id=principal.user_id,
            action=audit.UPLOAD_DOCUMENT,
            doc_uid=doc_uid[:32],
            outcome=audit.DENY,
            reason=e.reason or type(e).__name__,
            context=context,
        )
        raise

    record_event(
        s,
        actor_user_id=principal.user_id,
        action=audit.UPLOAD_DOCUMENT,
        doc_uid=doc.doc_uid,
        outcome=audit.ALLOW,
        metadata={"version": doc.version, "doc_type": doc.doc_type, "file_size": doc.file_size},
        context=context,
    )
    return doc


def _register(
    s: Session,
    principal: Principal,
    finalize_token: str,
    doc_uid: str,
    storage_path: str,
    storage: Storage,
    key: str,
    now: int | None,
    today: date | None,
) -> Document:
    claim: UploadClaim = claim_token.redeem(
        finalize_token,
        key,
        now,
        user_id=principal.user_id,
        doc_uid=doc_uid,
        storage_path=storage_path,
    )

    if not _object_present(storage, claim.path):
        raise ValidationFailure("Uploaded file not found in storage.", reason="STORAGE_MISSING")

    doc = Document(
        doc_uid=claim.uid,
        doc_type=claim.doc_type,
        version=claim.version,
        title=claim.title,
        file_size=claim.file_size,
        mime_type=claim.mime_type,
        storage_path=claim.path,
        created_by=principal.user_id,
        **retention_defaults(today or date.today()),
    )
    try:
        s.add(doc)
        s.commit()
    except IntegrityError as e:
        s.rollback()
        if is_unique_violation(e):
            raise ConflictFailure("Document already registered.", reason="DUPLICATE_DOC_UID") from e
        logger.error("documents insert failed (doc_uid=%s): %s", claim.uid, e)
        raise UpstreamFailure("Failed to save document metadata.", reason="DOCUMENTS_INSERT") from e
    except SQLAlchemyError as e:
        s.rollback()
        logger.error("documents insert failed (doc_uid=%s): %s", claim.uid, e)
        raise UpstreamFailure("Failed to save document metadata.", reason="DOCUMENTS_INSERT") from e
    return doc
