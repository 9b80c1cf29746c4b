from flask import Blueprint, current_app, jsonify, request, send_file

from app.archive import operations
from app.archive.auth import current_principal, require_principal
from app.archive.db import db_session
from app.archive.errors import AuthorizationFailure, ValidationFailure
from app.archive.extensions import collaborators
from app.archive.rbac import DIRECTOR
from app.archive.storage import LocalStorage, ObjectNotFound, StorageError

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check for k8s/DO. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/system/operations")
@require_principal
def system_operations():
    """Secrets, table reachability and storage status. DIRECTOR only."""
    if current_principal().role != DIRECTOR:
        raise AuthorizationFailure("Forbidden", reason="INSUFFICIENT_PRIVILEGE")
    return jsonify(operations.run_checks(current_app, db_session(), collaborators().storage))


def _local_storage() -> LocalStorage:
    storage = collaborators().storage
    if not isinstance(storage, LocalStorage):
        # S3 capabilities point at the bucket, never at this app
        raise AuthorizationFailure("Not found", status_code=404)
    return storage


@bp.put("/storage/objects/<path:key>")
def put_object(key: str):
    """Direct-upload target for LocalStorage write capabilities."""
    storage = _local_storage()
    if not storage.verify_capability("PUT", key, request.args.get("token")):
        raise AuthorizationFailure("Invalid or expired upload URL.", reason="BAD_CAPABILITY")
    try:
        storage.put_bytes(key, request.get_data(), content_type=request.mimetype)
    except StorageError as e:
        raise ValidationFailure(str(e)) from e
    return {"ok": True, "path": key}


@bp.get("/storage/objects/<path:key>")
def get_object(key: str):
    storage = _local_storage()
    if not storage.verify_capability("GET", key, request.args.get("token")):
        raise AuthorizationFailure("Invalid or expired download URL.", reason="BAD_CAPABILITY")
    try:
        fobj = storage.open(key)
    except ObjectNotFound:
        raise AuthorizationFailure("Not found", status_code=404) from None
    return send_file(fobj, mimetype="application/pdf", as_attachment=True, download_name=key.rsplit("/", 1)[-1], max_age=0)
