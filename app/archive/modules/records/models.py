from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.archive.models import Base


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_created_at", "created_at"),
        Index("idx_documents_disposal_due", "disposal_due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Sole guard against two concurrent completions of the same upload.
    doc_uid: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    doc_type: Mapped[str] = mapped_column(String(48), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    classification_level: Mapped[str] = mapped_column(String(32), nullable=False, default="INTERNAL")

    # Relationship pointers (ids only, no personal data)
    staff_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    supplier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    retention_class: Mapped[str] = mapped_column(String(32), nullable=False, default="DEFAULT_7Y")
    retention_trigger_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    disposal_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    legal_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    legal_hold_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    file_hash_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/pdf")
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
