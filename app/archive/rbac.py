"""
Document read authorization.

Decisions combine three things, in this order:
- ownership (the uploader always keeps read access),
- a role -> allowed-category policy table (swappable, see RolePolicy),
- explicit manager<->staff / manager<->client assignment rows for categories
  that point at a related entity.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.archive.models import ClientManagerAssignment, ManagerStaffAssignment
from app.archive.modules.records.models import Document

if TYPE_CHECKING:
    from app.archive.auth import Principal


WILDCARD = "*"
DIRECTOR = "DIRECTOR"
MANAGER = "MANAGER"
STAFF = "STAFF"
LOWEST_PRIVILEGE_ROLE = STAFF

DEFAULT_ROLE_CATEGORIES: dict[str, tuple[str, ...]] = {
    DIRECTOR: (WILDCARD,),
    MANAGER: (
        "STAFF",
        "CLIENT",
        "GENERAL",
        "SUPPLIER",
        "COMPANY_POLICY",
        "COMPANY_LEGAL",
        "COMPANY_FINANCE",
        "COMPANY_HR",
        "COMPANY_COMPLIANCE",
        "CONTRACT",
        "VENDOR",
        "BOARD",
        "TAX",
    ),
    STAFF: ("GENERAL", "COMPANY_POLICY"),
}


class RolePolicy:
    """Immutable role -> category-set table. Unknown roles get no categories."""

    def __init__(self, mapping: Mapping[str, Iterable[str]]) -> None:
        self._table: dict[str, frozenset[str]] = {
            str(role).strip().upper(): frozenset(str(c).strip().upper() for c in cats)
            for role, cats in mapping.items()
        }

    @classmethod
    def default(cls) -> "RolePolicy":
        return cls(DEFAULT_ROLE_CATEGORIES)

    @classmethod
    def from_json(cls, raw: str) -> "RolePolicy":
        """Parse e.g. '{"DIRECTOR": ["*"], "STAFF": ["GENERAL"]}'. Empty input -> default table."""
        if not raw or not raw.strip():
            return cls.default()
        value = json.loads(raw)
        if not isinstance(value, dict) or not all(isinstance(v, list) for v in value.values()):
            raise ValueError("Role policy must be a JSON object of role -> list of categories.")
        return cls(value)

    def allowed_categories(self, role: str) -> frozenset[str]:
        return self._table.get((role or "").strip().upper(), frozenset())

    def grants_all(self, role: str) -> bool:
        return WILDCARD in self.allowed_categories(role)

    def roles(self) -> list[str]:
        return sorted(self._table)


def _has_staff_assignment(s: Session, manager_id: str, staff_id: str) -> bool:
    row = s.execute(
        select(ManagerStaffAssignment.staff_id)
        .where(ManagerStaffAssignment.manager_id == manager_id, ManagerStaffAssignment.staff_id == staff_id)
        .limit(1)
    ).first()
    return row is not None


def _has_client_assignment(s: Session, manager_id: str, client_id: str) -> bool:
    row = s.execute(
        select(ClientManagerAssignment.client_id)
        .where(ClientManagerAssignment.manager_id == manager_id, ClientManagerAssignment.client_id == client_id)
        .limit(1)
    ).first()
    return row is not None


def can_read(
    s: Session,
    policy: RolePolicy,
    user_id: str,
    role: str,
    doc_uid: str,
    doc_type: str | None = None,
) -> bool:
    """
    Decide whether (user_id, role) may read the document `doc_uid`.

    A missing document answers False, same as a refusal, so callers cannot
    test for existence.
    """
    doc = s.execute(select(Document).where(Document.doc_uid == doc_uid)).scalar_one_or_none()
    if doc is None:
        return False

    # Owner override dominates category policy (covers ad-hoc categories too).
    if doc.created_by == user_id:
        return True

    effective_type = doc_type or doc.doc_type
    allowed = policy.allowed_categories(role)
    if WILDCARD in allowed:
        return True
    if effective_type not in allowed:
        return False

    if effective_type == "STAFF" and doc.staff_id:
        return _has_staff_assignment(s, user_id, doc.staff_id)
    if effective_type == "CLIENT" and doc.client_id:
        return _has_client_assignment(s, user_id, doc.client_id)

    return doc.created_by == user_id


def principal_can_read(s: Session, policy: RolePolicy, principal: "Principal", doc_uid: str, doc_type: str | None = None) -> bool:
    return can_read(s, policy, principal.user_id, principal.role, doc_uid, doc_type)


def can_delete(principal: "Principal", doc: Document) -> bool:
    return principal.role == DIRECTOR or doc.created_by == principal.user_id


def filter_readable(s: Session, policy: RolePolicy, principal: "Principal", docs: Iterable[Document]) -> list[Document]:
    """
    Keep the documents `principal` may read.

    One can_read call (one or two store round trips) per row; callers cap the
    input size.
    """
    return [d for d in docs if can_read(s, policy, principal.user_id, principal.role, d.doc_uid, d.doc_type)]
