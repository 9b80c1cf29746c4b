"""
Error taxonomy for the archive API.

Every failure the core surfaces is one of these. Handlers translate them to a
JSON body of the form {"error": message}; the internal `reason` code goes to
logs and the audit trail only.
"""

from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ArchiveError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str | None = None,
        status_code: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class AuthenticationFailure(ArchiveError):
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationFailure(ArchiveError):
    """Valid identity, insufficient rights. Raise with status_code=404 to hide existence."""

    status_code = 403
    default_message = "Forbidden"


class ValidationFailure(ArchiveError):
    status_code = 400
    default_message = "Invalid request"


class ConflictFailure(ArchiveError):
    status_code = 409
    default_message = "Conflict"


class UpstreamFailure(ArchiveError):
    status_code = 500
    default_message = "Upstream service failure"


class IntegrityFailure(AuthorizationFailure):
    """Signature or checksum mismatch. Never carries diagnostic detail in the message."""


class ClaimRejected(IntegrityFailure):
    """A signed upload claim could not be redeemed."""

    MALFORMED = "MALFORMED"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    BAD_PAYLOAD = "BAD_PAYLOAD"
    EXPIRED = "EXPIRED"
    USER_MISMATCH = "USER_MISMATCH"
    BINDING_MISMATCH = "BINDING_MISMATCH"

    _STATUS = {
        MALFORMED: 400,
        BAD_SIGNATURE: 401,
        BAD_PAYLOAD: 400,
        EXPIRED: 401,
        USER_MISMATCH: 403,
        BINDING_MISMATCH: 403,
    }
    _MESSAGES = {
        MALFORMED: "Invalid finalize token.",
        BAD_SIGNATURE: "Invalid finalize token.",
        BAD_PAYLOAD: "Invalid finalize token.",
        EXPIRED: "Invalid finalize token. Please restart the upload.",
        USER_MISMATCH: "Finalize token does not match this request.",
        BINDING_MISMATCH: "Finalize token does not match this request.",
    }

    def __init__(self, reason: str) -> None:
        super().__init__(
            self._MESSAGES.get(reason, "Invalid finalize token."),
            reason=reason,
            status_code=self._STATUS.get(reason, 401),
        )


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ArchiveError)
    def _archive_error(e: ArchiveError):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if e.status_code >= 500:
            app.logger.error("%s (reason=%s request_id=%s): %s", type(e).__name__, e.reason, rid, e.message)
        else:
            app.logger.warning("%s status=%s reason=%s request_id=%s", type(e).__name__, e.status_code, e.reason, rid)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 413:
            limit = app.config.get("MAX_UPLOAD_BYTES")
            return jsonify({"error": "Request body too large.", "max_bytes": limit}), 413
        return jsonify({"error": e.name}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500
