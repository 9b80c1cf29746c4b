from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Profile(Base):
    """
    Role record for a principal. Identities live with the identity provider;
    this table only maps a verified user id to its archive role.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="STAFF")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class ManagerStaffAssignment(Base):
    __tablename__ = "manager_staff_assignments"

    manager_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    staff_id: Mapped[str] = mapped_column(String(64), primary_key=True)


class ClientManagerAssignment(Base):
    __tablename__ = "client_manager_assignments"

    manager_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), primary_key=True)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Read access is restricted outside this service; rows are never updated.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_doc_uid", "doc_uid"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "DOWNLOAD_DOCUMENT"
    doc_uid: Mapped[str | None] = mapped_column(String(32), nullable=True)
    outcome: Mapped[str] = mapped_column(String(8), nullable=False)  # ALLOW | DENY
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)


class DisposalCertificate(Base):
    __tablename__ = "disposal_certificates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    doc_uid: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    disposed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    method: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(512), nullable=True)
    cert_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    disposed_on: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.archive.modules.records.models import Document  # noqa: E402,F401
