"""
Read-side operations: resolve a lookup code, hand out a retrieval URL,
issue lookup codes, list readable records, delete a record.

Every attempt on a specific document is audited (allow and deny). Absent and
unreadable documents produce the same 404 so identifiers cannot be enumerated.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.archive import audit
from app.archive.audit import RequestContext, record_event
from app.archive.auth import Principal
from app.archive.errors import AuthorizationFailure, ConflictFailure, UpstreamFailure, ValidationFailure
from app.archive.models import AuditEvent, DisposalCertificate
from app.archive.modules.records import lookup_code
from app.archive.modules.records.models import Document
from app.archive.modules.records.service import document_projection, document_summary
from app.archive.rbac import RolePolicy, can_delete, can_read, filter_readable
from app.archive.storage import ObjectNotFound, Storage, StorageError

logger = logging.getLogger(__name__)

DOWNLOAD_URL_TTL_SECONDS = 120
LIST_DOCUMENT_LIMIT = 400
LIST_AUDIT_LIMIT = 500


def _not_found(reason: str) -> AuthorizationFailure:
    return AuthorizationFailure("Not found", reason=reason, status_code=404)


def _require_salt(salt: str | None) -> str:
    if not salt:
        logger.error("LOOKUP_CODE_SALT is not configured")
        raise UpstreamFailure("Server misconfigured.", reason="MISSING_LOOKUP_SALT")
    return salt


def _get_document(s: Session, doc_uid: str, version: int | None = None) -> Document | None:
    stmt = select(Document).where(Document.doc_uid == doc_uid)
    if version is not None:
        stmt = stmt.where(Document.version == version)
    return s.execute(stmt).scalar_one_or_none()


def resolve_lookup_code(
    s: Session,
    *,
    principal: Principal,
    code: str,
    salt: str | None,
    policy: RolePolicy,
    context: RequestContext | None = None,
) -> dict[str, Any]:
    """Return the restricted metadata view for a lookup code, or raise a uniform 404."""
    key = _require_salt(salt)
    if not code or not isinstance(code, str):
        raise ValidationFailure("Invalid request")

    def _deny(doc_uid: str | None, reason: str) -> AuthorizationFailure:
        record_event(
            s,
            actor_user_id=principal.user_id,
            action=audit.RESOLVE_LOOKUP_CODE,
            doc_uid=doc_uid,
            outcome=audit.DENY,
            reason=reason,
            context=context,
        )
        return _not_found(reason)

    identity = lookup_code.decode(code, key)
    if identity is None:
        raise _deny(None, audit.INVALID_CHECKSUM_OR_FORMAT)

    if not can_read(s, policy, principal.user_id, principal.role, identity.doc_uid, identity.doc_type):
        raise _deny(identity.doc_uid, audit.RBAC_SCOPE_MISMATCH)

    doc = _get_document(s, identity.doc_uid, identity.version)
    if doc is None:
        raise _deny(identity.doc_uid, audit.DOCUMENT_NOT_FOUND)

    view = document_projection(doc)
    record_event(
        s,
        actor_user_id=principal.user_id,
        action=audit.RESOLVE_LOOKUP_CODE,
        doc_uid=doc.doc_uid,
        outcome=audit.ALLOW,
        context=context,
    )
    return view


def create_retrieval_reference(
    s: Session,
    *,
    principal: Principal,
    doc_uid: str,
    version: int,
    storage: Storage,
    policy: RolePolicy,
    ttl_seconds: int = DOWNLOAD_URL_TTL_SECONDS,
    context: RequestContext | None = None,
) -> dict[str, Any]:
    """Short-lived signed URL for one document version."""

    def _audit(outcome: str, reason: str | None) -> None:
        record_event(
            s,
            actor_user_id=principal.user_id,
            action=audit.DOWNLOAD_DOCUMENT,
            doc_uid=doc_uid,
            outcome=outcome,
            reason=reason,
            metadata={"version": version},
            context=context,
        )

    doc = _get_document(s, doc_uid, version)
    if doc is None:
        _audit(audit.DENY, audit.DOCUMENT_NOT_FOUND)
        raise _not_found(audit.DOCUMENT_NOT_FOUND)

    if not can_read(s, policy, principal.user_id, principal.role, doc.doc_uid, doc.doc_type):
        _audit(audit.DENY, audit.RBAC_SCOPE_MISMATCH)
        raise _not_found(audit.RBAC_SCOPE_MISMATCH)

    storage_path = doc.storage_path
    try:
        url = storage.create_read_capability(storage_path, ttl_seconds)
    except StorageError as e:
        logger.error("create_read_capability failed (doc_uid=%s path=%s): %s", doc_uid, storage_path, e)
        _audit(audit.DENY, audit.STORAGE_ERROR)
        raise UpstreamFailure("Unable to generate URL", reason=audit.STORAGE_ERROR) from e

    _audit(audit.ALLOW, None)
    return {"url": url, "expires_in": ttl_seconds}


def generate_lookup_code(
    s: Session,
    *,
    principal: Principal,
    doc_uid: str,
    version: int | None,
    salt: str | None,
    policy: RolePolicy,
) -> dict[str, Any]:
    if not doc_uid:
        raise ValidationFailure("doc_uid is required")
    if version is not None and version < 1:
        raise ValidationFailure("Invalid version.")

    doc = _get_document(s, doc_uid)
    if doc is None:
        raise _not_found(audit.DOCUMENT_NOT_FOUND)
    if not can_read(s, policy, principal.user_id, principal.role, doc.doc_uid, doc.doc_type):
        raise _not_found(audit.RBAC_SCOPE_MISMATCH)
    # a code for a version that is not stored could never resolve
    if version is not None and version != doc.version:
        raise _not_found(audit.DOCUMENT_NOT_FOUND)

    key = _require_salt(salt)
    return {
        "payload": lookup_code.encode(doc.doc_uid, doc.doc_type, doc.version, key),
        "doc_uid": doc.doc_uid,
        "doc_type": doc.doc_type,
        "version": doc.version,
    }


def list_readable_documents(
    s: Session,
    *,
    principal: Principal,
    policy: RolePolicy,
    limit: int = LIST_DOCUMENT_LIMIT,
    audit_limit: int = LIST_AUDIT_LIMIT,
) -> dict[str, Any]:
    """
    Newest documents the caller may read, plus their audit rows.

    Authorization runs per row (O(n) store calls over at most `limit` rows).
    """
    docs = s.execute(select(Document).order_by(Document.created_at.desc(), Document.id.desc()).limit(limit)).scalars().all()
    visible = filter_readable(s, policy, principal, docs)
    if not visible:
        return {"documents": [], "audits": []}

    uids = [d.doc_uid for d in visible]
    events = (
        s.execute(
            select(AuditEvent)
            .where(AuditEvent.doc_uid.in_(uids))
            .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
            .limit(audit_limit)
        )
        .scalars()
        .all()
    )
    return {
        "documents": [document_summary(d) for d in visible],
        "audits": [
            {
                "id": e.id,
                "action": e.action,
                "doc_uid": e.doc_uid,
                "outcome": e.outcome,
                "reason": e.reason,
                "created_at": e.created_at.isoformat() if e.created_at else None,
                "user_id": e.actor_user_id,
            }
            for e in events
        ],
    }


def _is_missing_object(e: StorageError) -> bool:
    if isinstance(e, ObjectNotFound):
        return True
    msg = str(e).lower()
    return "not found" in msg or "no such" in msg or "already" in msg


def delete_document(
    s: Session,
    *,
    principal: Principal,
    doc_uid: str,
    storage: Storage,
    policy: RolePolicy,
    context: RequestContext | None = None,
) -> dict[str, Any]:
    """
    Remove a document's object and metadata and write a disposal certificate.

    Legal hold blocks deletion outright: no storage or metadata change happens.
    """

    def _audit(outcome: str, reason: str) -> None:
        record_event(
            s,
            actor_user_id=principal.user_id,
            action=audit.DELETE_DOCUMENT,
            doc_uid=doc_uid,
            outcome=outcome,
            reason=reason,
            context=context,
        )

    doc = _get_document(s, doc_uid)
    if doc is None:
        _audit(audit.DENY, audit.DOCUMENT_NOT_FOUND)
        raise _not_found(audit.DOCUMENT_NOT_FOUND)

    if not can_delete(principal, doc):
        _audit(audit.DENY, audit.INSUFFICIENT_PRIVILEGE)
        if can_read(s, policy, principal.user_id, principal.role, doc.doc_uid, doc.doc_type):
            raise AuthorizationFailure("Forbidden", reason=audit.INSUFFICIENT_PRIVILEGE)
        raise _not_found(audit.INSUFFICIENT_PRIVILEGE)

    if doc.legal_hold:
        _audit(audit.DENY, audit.LEGAL_HOLD)
        raise ConflictFailure("Document is under legal hold", reason=audit.LEGAL_HOLD)

    version = doc.version
    storage_path = doc.storage_path
    warning = None
    try:
        storage.delete(storage_path)
    except StorageError as e:
        if not _is_missing_object(e):
            logger.warning("Storage cleanup failed (doc_uid=%s path=%s): %s", doc_uid, storage_path, e)
            warning = f"Metadata deleted, but storage cleanup reported: {e}"

    try:
        s.execute(delete(Document).where(Document.doc_uid == doc_uid))
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.error("documents delete failed (doc_uid=%s): %s", doc_uid, e)
        raise UpstreamFailure("Failed to delete document metadata.", reason="DOCUMENTS_DELETE") from e

    _audit(audit.ALLOW, audit.MANUAL_DELETE)

    try:
        s.add(
            DisposalCertificate(
                doc_uid=doc_uid,
                version=version,
                disposed_by=principal.user_id,
                method=audit.MANUAL_DELETE,
                notes="Deleted via records API",
            )
        )
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.warning("Disposal certificate write failed (doc_uid=%s): %s", doc_uid, e)

    out: dict[str, Any] = {"ok": True, "doc_uid": doc_uid}
    if warning:
        out["warning"] = warning
    return out
