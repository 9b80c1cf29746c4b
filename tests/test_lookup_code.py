"""
Unit tests for printable lookup codes.

Tests cover:
- Encoding format
- Round trip through decode
- Wrong salt / tampered checksum
- Shape, prefix and version errors (all indistinguishable None)
"""

import pytest

from app.archive.modules.records.lookup_code import (
    PREFIX,
    DocumentIdentity,
    compute_checksum,
    decode,
    encode,
)

SALT = "lookup-salt-for-tests"


class TestEncode:
    def test_format(self):
        code = encode("a1b2", "GENERAL", 1, SALT)
        parts = code.split("|")
        assert parts[0] == PREFIX
        assert parts[1:4] == ["a1b2", "GENERAL", "v1"]
        assert parts[4] == compute_checksum("a1b2", "GENERAL", 1, SALT)
        assert len(parts[4]) == 10

    def test_checksum_is_plain_concatenation(self):
        # "ab" + "C" + "1" and "a" + "bC" + "1" hash the same input string
        assert compute_checksum("ab", "C", 1, SALT) == compute_checksum("a", "bC", 1, SALT)

    @pytest.mark.parametrize("doc_uid,doc_type,version", [
        ("", "GENERAL", 1),
        ("a1b2", "", 1),
        ("a|b", "GENERAL", 1),
        ("a1b2", "GEN|ERAL", 1),
        ("a1b2", "GENERAL", 0),
        ("a1b2", "GENERAL", True),
    ])
    def test_rejects_unencodable_fields(self, doc_uid, doc_type, version):
        with pytest.raises(ValueError):
            encode(doc_uid, doc_type, version, SALT)


class TestDecode:
    def test_round_trip(self):
        code = encode("9f1c2e", "STAFF", 3, SALT)
        assert decode(code, SALT) == DocumentIdentity(doc_uid="9f1c2e", doc_type="STAFF", version=3)

    def test_surrounding_whitespace_ignored(self):
        code = encode("9f1c2e", "STAFF", 3, SALT)
        assert decode(f"  {code}\n", SALT) is not None

    def test_wrong_salt(self):
        code = encode("a1b2", "GENERAL", 1, "salt1")
        assert decode(code, "salt2") is None

    def test_tampered_checksum(self):
        code = encode("a1b2", "GENERAL", 1, SALT)
        head, checksum = code.rsplit("|", 1)
        flipped = ("0" if checksum[0] != "0" else "1") + checksum[1:]
        assert decode(f"{head}|{flipped}", SALT) is None

    def test_tampered_fields(self):
        code = encode("a1b2", "GENERAL", 1, SALT)
        assert decode(code.replace("GENERAL", "COMPANY_HR"), SALT) is None
        assert decode(code.replace("|v1|", "|v2|"), SALT) is None

    @pytest.mark.parametrize("code", [
        "",
        "garbage",
        "BHTCL|a1b2|GENERAL|v1",
        "BHTCL|a1b2|GENERAL|v1|abc|extra",
        "XXXXX|a1b2|GENERAL|v1|0123456789",
        "BHTCL||GENERAL|v1|0123456789",
        "BHTCL|a1b2|GENERAL|1|0123456789",
        "BHTCL|a1b2|GENERAL|v0|0123456789",
        "BHTCL|a1b2|GENERAL|v01|0123456789",
        "BHTCL|a1b2|GENERAL|vx|0123456789",
    ])
    def test_malformed_codes_are_none(self, code):
        assert decode(code, SALT) is None

    def test_oversized_version_is_none(self):
        assert decode("BHTCL|a1b2|GENERAL|v" + "1" * 5000 + "|0123456789", SALT) is None
        assert decode("BHTCL|a1b2|GENERAL|v1234567890|0123456789", SALT) is None

    def test_largest_accepted_version_round_trips(self):
        code = encode("a1b2", "GENERAL", 999_999_999, SALT)
        assert decode(code, SALT) == DocumentIdentity("a1b2", "GENERAL", 999_999_999)

    def test_wrong_prefix_with_valid_checksum(self):
        code = encode("a1b2", "GENERAL", 1, SALT)
        assert decode("OTHER" + code[len(PREFIX):], SALT) is None
