from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.archive.models import AuditEvent

logger = logging.getLogger(__name__)

ALLOW = "ALLOW"
DENY = "DENY"

# actions
UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
RESOLVE_LOOKUP_CODE = "RESOLVE_LOOKUP_CODE"
DOWNLOAD_DOCUMENT = "DOWNLOAD_DOCUMENT"
DELETE_DOCUMENT = "DELETE_DOCUMENT"

# machine-readable deny/allow reasons
INVALID_CHECKSUM_OR_FORMAT = "INVALID_CHECKSUM_OR_FORMAT"
RBAC_SCOPE_MISMATCH = "RBAC_SCOPE_MISMATCH"
DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
INSUFFICIENT_PRIVILEGE = "INSUFFICIENT_PRIVILEGE"
LEGAL_HOLD = "LEGAL_HOLD"
STORAGE_ERROR = "STORAGE_ERROR"
MANUAL_DELETE = "MANUAL_DELETE"


@dataclass(frozen=True)
class RequestContext:
    client_ip: str
    user_agent: str
    request_id: str | None = None


def request_context() -> RequestContext:
    """Caller network details for the audit row (first X-Forwarded-For hop wins)."""
    if not has_request_context():
        return RequestContext(client_ip="unknown", user_agent="unknown")
    fwd = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return RequestContext(
        client_ip=fwd or request.remote_addr or "unknown",
        user_agent=request.headers.get("User-Agent") or "unknown",
        request_id=getattr(g, "request_id", None),
    )


def record_event(
    s: Session,
    *,
    actor_user_id: str | None,
    action: str,
    outcome: str,
    doc_uid: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    context: RequestContext | None = None,
) -> AuditEvent | None:
    """
    Append-only, best-effort audit write.

    Commits on its own, so call it only once the primary change (if any) is
    committed. A failed write is logged and rolled back; it never raises into
    the caller's response path.
    """
    ctx = context or request_context()
    ev = AuditEvent(
        request_id=ctx.request_id,
        actor_user_id=actor_user_id,
        action=action,
        doc_uid=doc_uid,
        outcome=outcome,
        reason=reason,
        client_ip=ctx.client_ip,
        user_agent=ctx.user_agent[:512],
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
    )
    try:
        s.add(ev)
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.warning(
            "Audit write failed (action=%s outcome=%s reason=%s doc_uid=%s request_id=%s): %s",
            action,
            outcome,
            reason,
            doc_uid,
            ctx.request_id,
            e,
        )
        return None
    return ev
