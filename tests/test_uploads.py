import time

import jwt
import pytest

from app.archive import create_app
from app.archive.db import session_scope
from app.archive.models import AuditEvent, Base, Profile
from app.archive.modules.records import claim_token
from app.archive.modules.records.models import Document

JWT_SECRET = "identity-jwt-secret-0123456789abcdef"
UPLOAD_SECRET = "upload-token-secret-0123456789abcdef"

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj <<>> endobj\ntrailer <<>>\n%%EOF\n"


def _auth(sub):
    token = jwt.encode({"sub": sub, "aud": "authenticated", "exp": int(time.time()) + 300}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret-key-0123456789abcdef")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("IDENTITY_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("UPLOAD_TOKEN_SECRET", UPLOAD_SECRET)
    monkeypatch.setenv("LOOKUP_CODE_SALT", "lookup-salt-0123456789abcdef")
    monkeypatch.setenv("MAX_UPLOAD_BYTES", str(1024 * 1024))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(Profile(id="uploader", role="STAFF"))
    return app.test_client()


def _init(client, user="uploader", **overrides):
    body = {"title": "Signed NDA", "doc_type": "company policy", "version": 1, "file_size": len(PDF_BYTES), "mime_type": "application/pdf"}
    body.update(overrides)
    return client.post("/api/documents/upload-init", json=body, headers=_auth(user))


def _complete(client, ticket, user="uploader"):
    return client.post(
        "/api/documents/upload-complete",
        json={"finalize_token": ticket["finalize_token"], "doc_uid": ticket["doc_uid"], "storage_path": ticket["storage_path"]},
        headers=_auth(user),
    )


def test_upload_init_complete_registers_document_and_audits(client):
    r = _init(client)
    assert r.status_code == 200
    ticket = r.json
    assert ticket["ok"] is True
    assert len(ticket["doc_uid"]) == 32
    assert ticket["storage_path"].endswith(f"/{ticket['doc_uid']}/v1.pdf")
    assert ticket["upload_url"].startswith("/storage/objects/")

    # nothing registered until completion
    app = client.application
    with session_scope(app) as s:
        assert s.query(Document).count() == 0

    r = client.put(ticket["upload_url"], data=PDF_BYTES, content_type="application/pdf")
    assert r.status_code == 200

    r = _complete(client, ticket)
    assert r.status_code == 200
    assert r.json["doc_uid"] == ticket["doc_uid"]

    with session_scope(app) as s:
        doc = s.query(Document).filter(Document.doc_uid == ticket["doc_uid"]).one()
        assert doc.doc_type == "COMPANY_POLICY"
        assert doc.created_by == "uploader"
        assert doc.storage_path == ticket["storage_path"]
        assert doc.legal_hold is False
        assert doc.retention_class == "DEFAULT_7Y"
        assert (doc.disposal_due_date - doc.retention_trigger_date).days == 365

        ev = s.query(AuditEvent).filter(AuditEvent.doc_uid == ticket["doc_uid"]).one()
        assert ev.action == "UPLOAD_DOCUMENT"
        assert ev.outcome == "ALLOW"
        assert ev.actor_user_id == "uploader"


def test_second_completion_conflicts(client):
    ticket = _init(client).json
    client.put(ticket["upload_url"], data=PDF_BYTES, content_type="application/pdf")
    assert _complete(client, ticket).status_code == 200

    r = _complete(client, ticket)
    assert r.status_code == 409

    with session_scope(client.application) as s:
        assert s.query(Document).count() == 1


def test_complete_before_object_exists(client):
    ticket = _init(client).json
    r = _complete(client, ticket)
    assert r.status_code == 400
    assert r.json["error"] == "Uploaded file not found in storage."


def test_complete_by_another_user_is_rejected(client):
    ticket = _init(client).json
    client.put(ticket["upload_url"], data=PDF_BYTES, content_type="application/pdf")
    r = _complete(client, ticket, user="someone-else")
    assert r.status_code == 403

    with session_scope(client.application) as s:
        assert s.query(Document).count() == 0


def test_complete_with_swapped_path_is_rejected(client):
    a = _init(client).json
    b = _init(client).json
    r = client.post(
        "/api/documents/upload-complete",
        json={"finalize_token": a["finalize_token"], "doc_uid": a["doc_uid"], "storage_path": b["storage_path"]},
        headers=_auth("uploader"),
    )
    assert r.status_code == 403


def test_expired_claim(client):
    issued = claim_token.now_ms() - claim_token.TOKEN_TTL_MS - 1000
    claim = claim_token.new_claim(
        uid="0" * 32,
        path=f"2025/{'0' * 32}/v1.pdf",
        user_id="uploader",
        title="Old",
        doc_type="GENERAL",
        version=1,
        file_size=10,
        mime_type="application/pdf",
        now=issued,
    )
    token = claim_token.issue(claim, UPLOAD_SECRET)
    r = client.post(
        "/api/documents/upload-complete",
        json={"finalize_token": token, "doc_uid": claim.uid, "storage_path": claim.path},
        headers=_auth("uploader"),
    )
    assert r.status_code == 401


def test_forged_claim(client):
    ticket = _init(client).json
    client.put(ticket["upload_url"], data=PDF_BYTES, content_type="application/pdf")
    payload_segment, sig = ticket["finalize_token"].split(".")
    sig = ("B" if sig[0] != "B" else "C") + sig[1:]
    forged = dict(ticket, finalize_token=f"{payload_segment}.{sig}")
    r = _complete(client, forged)
    assert r.status_code == 401


def test_missing_fields(client):
    r = client.post("/api/documents/upload-complete", json={"doc_uid": "x"}, headers=_auth("uploader"))
    assert r.status_code == 400


@pytest.mark.parametrize("overrides,message", [
    ({"title": "  "}, "Title is required."),
    ({"version": 0}, "Invalid version."),
    ({"version": "abc"}, "Invalid version."),
    ({"file_size": 0}, "Invalid file size."),
    ({"mime_type": "image/png"}, "Only PDF uploads are allowed."),
])
def test_init_validation(client, overrides, message):
    r = _init(client, **overrides)
    assert r.status_code == 400
    assert r.json["error"] == message


def test_init_too_large(client):
    r = _init(client, file_size=2 * 1024 * 1024)
    assert r.status_code == 413
    assert r.json["max_bytes"] == 1024 * 1024


def test_init_rejects_non_object_body(client):
    r = client.post("/api/documents/upload-init", json=["title"], headers=_auth("uploader"))
    assert r.status_code == 400


def test_upload_url_is_bound_to_its_path(client):
    ticket = _init(client).json
    token = ticket["upload_url"].split("?token=", 1)[1]
    r = client.put(f"/storage/objects/2025/other/v1.pdf?token={token}", data=PDF_BYTES)
    assert r.status_code == 403


def test_missing_upload_secret_is_server_error(client):
    client.application.config["UPLOAD_TOKEN_SECRET"] = ""
    r = _init(client)
    assert r.status_code == 500
    assert r.json["error"] == "Server misconfigured."


def _upload_events(client):
    with session_scope(client.application) as s:
        return [
            (e.actor_user_id, e.doc_uid, e.outcome, e.reason)
            for e in s.query(AuditEvent).filter(AuditEvent.action == "UPLOAD_DOCUMENT").order_by(AuditEvent.id)
        ]


def test_rejected_completions_are_audited(client):
    ticket = _init(client).json

    r = client.post(
        "/api/documents/upload-complete",
        json={"finalize_token": "abc.def", "doc_uid": ticket["doc_uid"], "storage_path": ticket["storage_path"]},
        headers=_auth("uploader"),
    )
    assert r.status_code == 401

    r = _complete(client, ticket)
    assert r.status_code == 400

    client.put(ticket["upload_url"], data=PDF_BYTES, content_type="application/pdf")
    assert _complete(client, ticket).status_code == 200
    assert _complete(client, ticket).status_code == 409

    uid = ticket["doc_uid"]
    assert _upload_events(client) == [
        ("uploader", uid, "DENY", "BAD_SIGNATURE"),
        ("uploader", uid, "DENY", "STORAGE_MISSING"),
        ("uploader", uid, "ALLOW", None),
        ("uploader", uid, "DENY", "DUPLICATE_DOC_UID"),
    ]


def test_expired_claim_is_audited(client):
    uid = "1" * 32
    claim = claim_token.new_claim(
        uid=uid,
        path=f"2025/{uid}/v1.pdf",
        user_id="uploader",
        title="Old",
        doc_type="GENERAL",
        version=1,
        file_size=10,
        mime_type="application/pdf",
        now=claim_token.now_ms() - claim_token.TOKEN_TTL_MS - 1000,
    )
    r = client.post(
        "/api/documents/upload-complete",
        json={"finalize_token": claim_token.issue(claim, UPLOAD_SECRET), "doc_uid": uid, "storage_path": claim.path},
        headers=_auth("uploader"),
    )
    assert r.status_code == 401
    assert _upload_events(client) == [("uploader", uid, "DENY", "EXPIRED")]


@pytest.mark.parametrize("field", ["version", "file_size"])
def test_init_rejects_oversized_numbers(client, field):
    r = _init(client, **{field: "9" * 5000})
    assert r.status_code == 400


def test_claim_lifetime_is_fixed(client, monkeypatch):
    monkeypatch.setenv("UPLOAD_TOKEN_TTL_SECONDS", "5")
    app = create_app()
    c = app.test_client()
    ticket = _init(c).json
    claim = claim_token.redeem(ticket["finalize_token"], UPLOAD_SECRET, claim_token.now_ms())
    assert claim.exp - claim.iat == claim_token.TOKEN_TTL_MS == 10 * 60 * 1000
    assert ticket["expires_at"] == claim.exp
