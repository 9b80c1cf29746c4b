from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.archive.audit import request_context
from app.archive.auth import current_principal, require_principal
from app.archive.db import db_session
from app.archive.errors import ValidationFailure
from app.archive.extensions import collaborators
from app.archive.modules.records import access, uploads
from app.archive.modules.records.service import parse_int

bp = Blueprint("records", __name__)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationFailure("Request body must be a JSON object.")
    return body


@bp.post("/documents/upload-init")
@require_principal
def upload_init():
    cfg = current_app.config
    ticket = uploads.init_upload(
        principal=current_principal(),
        payload=_json_body(),
        storage=collaborators().storage,
        secret=cfg.get("UPLOAD_TOKEN_SECRET"),
        max_bytes=int(cfg.get("MAX_UPLOAD_BYTES") or 0),
    )
    return jsonify(ticket.to_dict())


@bp.post("/documents/upload-complete")
@require_principal
def upload_complete():
    body = _json_body()
    doc = uploads.complete_upload(
        db_session(),
        principal=current_principal(),
        finalize_token=str(body.get("finalize_token") or ""),
        doc_uid=str(body.get("doc_uid") or ""),
        storage_path=str(body.get("storage_path") or ""),
        storage=collaborators().storage,
        secret=current_app.config.get("UPLOAD_TOKEN_SECRET"),
        context=request_context(),
    )
    return jsonify({"ok": True, "doc_uid": doc.doc_uid, "storage_path": doc.storage_path})


@bp.post("/resolve")
@require_principal
def resolve():
    body = _json_body()
    view = access.resolve_lookup_code(
        db_session(),
        principal=current_principal(),
        code=body.get("payload") or "",
        salt=current_app.config.get("LOOKUP_CODE_SALT"),
        policy=collaborators().policy,
        context=request_context(),
    )
    return jsonify({"document": view})


@bp.get("/documents/<doc_uid>/download")
@require_principal
def download(doc_uid: str):
    version = parse_int(request.args.get("version"), 1)
    if version is None or version < 1:
        raise ValidationFailure("Invalid version.")
    ref = access.create_retrieval_reference(
        db_session(),
        principal=current_principal(),
        doc_uid=doc_uid,
        version=version,
        storage=collaborators().storage,
        policy=collaborators().policy,
        ttl_seconds=int(current_app.config.get("DOWNLOAD_URL_TTL_SECONDS") or access.DOWNLOAD_URL_TTL_SECONDS),
        context=request_context(),
    )
    return jsonify(ref)


@bp.delete("/documents/<doc_uid>")
@require_principal
def delete_document(doc_uid: str):
    out = access.delete_document(
        db_session(),
        principal=current_principal(),
        doc_uid=doc_uid,
        storage=collaborators().storage,
        policy=collaborators().policy,
        context=request_context(),
    )
    return jsonify(out)


@bp.get("/documents/mine")
@require_principal
def my_documents():
    out = access.list_readable_documents(
        db_session(),
        principal=current_principal(),
        policy=collaborators().policy,
    )
    return jsonify(out)


@bp.post("/lookup-codes")
@require_principal
def generate_lookup_code():
    body = _json_body()
    raw_version = body.get("version")
    version = parse_int(raw_version) if raw_version is not None else None
    if raw_version is not None and version is None:
        raise ValidationFailure("Invalid version.")
    out = access.generate_lookup_code(
        db_session(),
        principal=current_principal(),
        doc_uid=str(body.get("doc_uid") or ""),
        version=version,
        salt=current_app.config.get("LOOKUP_CODE_SALT"),
        policy=collaborators().policy,
    )
    return jsonify(out)
