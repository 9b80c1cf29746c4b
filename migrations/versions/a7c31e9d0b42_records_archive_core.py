"""Records archive core tables.

Revision ID: a7c31e9d0b42
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a7c31e9d0b42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="STAFF"),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "manager_staff_assignments",
        sa.Column("manager_id", sa.String(64), primary_key=True),
        sa.Column("staff_id", sa.String(64), primary_key=True),
    )
    op.create_table(
        "client_manager_assignments",
        sa.Column("manager_id", sa.String(64), primary_key=True),
        sa.Column("client_id", sa.String(64), primary_key=True),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doc_uid", sa.String(32), nullable=False),
        sa.Column("doc_type", sa.String(48), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("classification_level", sa.String(32), nullable=False, server_default="INTERNAL"),
        sa.Column("staff_id", sa.String(64), nullable=True),
        sa.Column("client_id", sa.String(64), nullable=True),
        sa.Column("supplier_id", sa.String(64), nullable=True),
        sa.Column("retention_class", sa.String(32), nullable=False, server_default="DEFAULT_7Y"),
        sa.Column("retention_trigger_date", sa.Date(), nullable=True),
        sa.Column("disposal_due_date", sa.Date(), nullable=True),
        sa.Column("legal_hold", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("legal_hold_reason", sa.String(512), nullable=True),
        sa.Column("file_hash_sha256", sa.String(64), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(128), nullable=False, server_default="application/pdf"),
        sa.Column("storage_path", sa.String(512), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("doc_uid", name="uq_documents_doc_uid"),
    )
    op.create_index("ix_documents_staff_id", "documents", ["staff_id"])
    op.create_index("ix_documents_client_id", "documents", ["client_id"])
    op.create_index("ix_documents_created_by", "documents", ["created_by"])
    op.create_index("idx_documents_created_at", "documents", ["created_at"])
    op.create_index("idx_documents_disposal_due", "documents", ["disposal_due_date"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("doc_uid", sa.String(32), nullable=True),
        sa.Column("outcome", sa.String(8), nullable=False),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_events_doc_uid", "audit_events", ["doc_uid"])

    op.create_table(
        "disposal_certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doc_uid", sa.String(32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("disposed_by", sa.String(64), nullable=False),
        sa.Column("method", sa.String(64), nullable=False),
        sa.Column("notes", sa.String(512), nullable=True),
        sa.Column("cert_hash", sa.String(64), nullable=True),
        sa.Column("disposed_on", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("disposal_certificates")
    op.drop_index("idx_audit_events_doc_uid", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("idx_documents_disposal_due", table_name="documents")
    op.drop_index("idx_documents_created_at", table_name="documents")
    op.drop_index("ix_documents_created_by", table_name="documents")
    op.drop_index("ix_documents_client_id", table_name="documents")
    op.drop_index("ix_documents_staff_id", table_name="documents")
    op.drop_table("documents")
    op.drop_table("client_manager_assignments")
    op.drop_table("manager_staff_assignments")
    op.drop_table("profiles")
