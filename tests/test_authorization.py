import json

import pytest

from app.archive import create_app
from app.archive.db import session_scope
from app.archive.models import Base, ClientManagerAssignment, ManagerStaffAssignment
from app.archive.modules.records.models import Document
from app.archive.rbac import RolePolicy, can_read


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret-key-0123456789abcdef")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("ROLE_POLICY_JSON", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                _doc("d-owned", "COMPANY_HR", created_by="U1"),
                _doc("d-staff", "STAFF", created_by="U2", staff_id="S1"),
                _doc("d-client", "CLIENT", created_by="U2", client_id="C1"),
                _doc("d-general", "GENERAL", created_by="U2"),
                _doc("d-board", "BOARD", created_by="U2"),
            ]
        )
        s.add(ManagerStaffAssignment(manager_id="A1", staff_id="S1"))
    return app


def _doc(doc_uid, doc_type, *, created_by, staff_id=None, client_id=None):
    return Document(
        doc_uid=doc_uid,
        doc_type=doc_type,
        version=1,
        title=f"{doc_type} record",
        file_size=100,
        mime_type="application/pdf",
        storage_path=f"2025/{doc_uid}/v1.pdf",
        created_by=created_by,
        staff_id=staff_id,
        client_id=client_id,
    )


POLICY = RolePolicy.default()


def test_missing_document_is_false(app):
    with session_scope(app) as s:
        assert can_read(s, POLICY, "U1", "DIRECTOR", "does-not-exist") is False


def test_owner_reads_regardless_of_category(app):
    with session_scope(app) as s:
        # STAFF has no COMPANY_HR category, but owns the record
        assert can_read(s, POLICY, "U1", "STAFF", "d-owned") is True
        assert can_read(s, POLICY, "U1", "NO_SUCH_ROLE", "d-owned", "ANYTHING") is True


def test_director_wildcard(app):
    with session_scope(app) as s:
        for uid in ("d-staff", "d-client", "d-board"):
            assert can_read(s, POLICY, "D1", "DIRECTOR", uid) is True


def test_category_not_allowed(app):
    with session_scope(app) as s:
        assert can_read(s, POLICY, "X", "STAFF", "d-board") is False
        assert can_read(s, POLICY, "X", "UNKNOWN", "d-general") is False


def test_category_allowed_without_relationship_is_still_denied(app):
    with session_scope(app) as s:
        # GENERAL is an allowed STAFF category but there is no relationship rule
        assert can_read(s, POLICY, "X", "STAFF", "d-general") is False


def test_manager_staff_assignment(app):
    with session_scope(app) as s:
        assert can_read(s, POLICY, "A1", "MANAGER", "d-staff") is True
        assert can_read(s, POLICY, "A2", "MANAGER", "d-staff") is False

    with session_scope(app) as s:
        s.query(ManagerStaffAssignment).filter_by(manager_id="A1", staff_id="S1").delete()

    with session_scope(app) as s:
        assert can_read(s, POLICY, "A1", "MANAGER", "d-staff") is False


def test_client_manager_assignment(app):
    with session_scope(app) as s:
        assert can_read(s, POLICY, "A1", "MANAGER", "d-client") is False
        s.add(ClientManagerAssignment(manager_id="A1", client_id="C1"))

    with session_scope(app) as s:
        assert can_read(s, POLICY, "A1", "MANAGER", "d-client") is True


def test_caller_doc_type_overrides_stored(app):
    with session_scope(app) as s:
        # stored BOARD is readable by a MANAGER, but the caller claims a category it lacks
        assert can_read(s, POLICY, "A1", "MANAGER", "d-board", "UNLISTED") is False


class TestRolePolicy:
    def test_empty_is_default(self):
        assert RolePolicy.from_json("").roles() == ["DIRECTOR", "MANAGER", "STAFF"]

    def test_custom_table(self):
        p = RolePolicy.from_json(json.dumps({"auditor": ["*"], "staff": ["general"]}))
        assert p.grants_all("AUDITOR")
        assert p.allowed_categories("staff") == frozenset({"GENERAL"})
        assert p.allowed_categories("MANAGER") == frozenset()

    @pytest.mark.parametrize("raw", ['["DIRECTOR"]', '{"DIRECTOR": "*"}'])
    def test_bad_shape(self, raw):
        with pytest.raises(ValueError):
            RolePolicy.from_json(raw)
