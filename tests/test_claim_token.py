"""
Unit tests for signed upload claims.

Tests cover:
- Issue / redeem at and before expiry
- Expiry, signature, payload and binding rejections (with HTTP status mapping)
"""

import base64
import json

import pytest

from app.archive.errors import ClaimRejected
from app.archive.modules.records import claim_token

SECRET = "upload-token-secret-0123456789abcdef"
NOW = 1_760_000_000_000


def _claim(**overrides):
    fields = dict(
        uid="4c0a9b1e2f3d4c5b6a7988776655aa01",
        path="2025/4c0a9b1e2f3d4c5b6a7988776655aa01/v1.pdf",
        user_id="user-1",
        title="Employment contract",
        doc_type="STAFF",
        version=1,
        file_size=2048,
        mime_type="application/pdf",
        now=NOW,
    )
    fields.update(overrides)
    return claim_token.new_claim(**fields)


def _reason(excinfo):
    return excinfo.value.reason


class TestIssue:
    def test_token_shape(self):
        token = claim_token.issue(_claim(), SECRET)
        payload_segment, signature = token.split(".")
        assert "=" not in token
        body = json.loads(base64.urlsafe_b64decode(payload_segment + "=" * (-len(payload_segment) % 4)))
        assert body["userId"] == "user-1"
        assert body["exp"] - body["iat"] == 10 * 60 * 1000
        assert signature

    def test_requires_secret(self):
        with pytest.raises(ValueError):
            claim_token.issue(_claim(), "")


class TestRedeem:
    def test_redeem_before_and_at_expiry(self):
        claim = _claim()
        token = claim_token.issue(claim, SECRET)
        assert claim_token.redeem(token, SECRET, NOW + 1) == claim
        assert claim_token.redeem(token, SECRET, claim.exp) == claim

    def test_expired(self):
        claim = _claim()
        token = claim_token.issue(claim, SECRET)
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, claim.exp + 1)
        assert _reason(excinfo) == ClaimRejected.EXPIRED
        assert excinfo.value.status_code == 401

    def test_other_secret(self):
        token = claim_token.issue(_claim(), SECRET)
        other = SECRET[:-1] + chr(ord(SECRET[-1]) ^ 1)
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, other, NOW)
        assert _reason(excinfo) == ClaimRejected.BAD_SIGNATURE
        assert excinfo.value.status_code == 401

    def test_tampered_payload(self):
        token = claim_token.issue(_claim(), SECRET)
        forged = claim_token.issue(_claim(user_id="user-2"), SECRET)
        spliced = forged.split(".")[0] + "." + token.split(".")[1]
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(spliced, SECRET, NOW)
        assert _reason(excinfo) == ClaimRejected.BAD_SIGNATURE

    @pytest.mark.parametrize("token", ["", "no-dot", "a.b.c", ".sig", "payload."])
    def test_malformed(self, token):
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, NOW)
        assert _reason(excinfo) == ClaimRejected.MALFORMED
        assert excinfo.value.status_code == 400

    def test_signed_but_unparseable_payload(self):
        segment = base64.urlsafe_b64encode(b'{"uid": 1}').rstrip(b"=").decode("ascii")
        token = f"{segment}.{claim_token._sign(segment, SECRET)}"
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, NOW)
        assert _reason(excinfo) == ClaimRejected.BAD_PAYLOAD

    def test_user_binding(self):
        token = claim_token.issue(_claim(), SECRET)
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, NOW, user_id="user-2")
        assert _reason(excinfo) == ClaimRejected.USER_MISMATCH
        assert excinfo.value.status_code == 403

    def test_doc_uid_and_path_binding(self):
        claim = _claim()
        token = claim_token.issue(claim, SECRET)
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, NOW, user_id="user-1", doc_uid="ffff", storage_path=claim.path)
        assert _reason(excinfo) == ClaimRejected.BINDING_MISMATCH

        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, NOW, user_id="user-1", doc_uid=claim.uid, storage_path="2025/x/v1.pdf")
        assert _reason(excinfo) == ClaimRejected.BINDING_MISMATCH
        assert excinfo.value.status_code == 403

    def test_expiry_checked_before_bindings(self):
        claim = _claim()
        token = claim_token.issue(claim, SECRET)
        with pytest.raises(ClaimRejected) as excinfo:
            claim_token.redeem(token, SECRET, claim.exp + 1, user_id="someone-else")
        assert _reason(excinfo) == ClaimRejected.EXPIRED
