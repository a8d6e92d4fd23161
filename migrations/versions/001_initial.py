"""initial

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    for table in ("expenses", "incomes"):
        op.create_table(
            table,
            sa.Column("id", sa.String(36), nullable=False),
            sa.Column("user_id", sa.String(64), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("category_id", sa.String(36), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("linked_expense_id", sa.String(36), nullable=True),
        sa.Column("linked_income_id", sa.String(36), nullable=True),
        sa.Column("drive_file_id", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("original_filename", sa.String(500), nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("web_view_link", sa.Text(), nullable=True),
        sa.Column("uploaded_by_user_id", sa.String(64), nullable=False),
        sa.Column("record_type", sa.String(20), nullable=False),
        sa.Column("record_date", sa.Date(), nullable=True),
        sa.Column("amount_minor_units", sa.BigInteger(), nullable=True),
        sa.Column("category_id", sa.String(36), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("replaced_by_attachment_id", sa.String(36), nullable=True),
        sa.Column("retention_expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["linked_expense_id"], ["expenses.id"]),
        sa.ForeignKeyConstraint(["linked_income_id"], ["incomes.id"]),
        sa.ForeignKeyConstraint(["replaced_by_attachment_id"], ["attachments.id"]),
        sa.CheckConstraint(
            "(linked_expense_id IS NULL) <> (linked_income_id IS NULL)",
            name="ck_attachments_single_record",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attachments_linked_expense_id", "attachments", ["linked_expense_id"])
    op.create_index("ix_attachments_linked_income_id", "attachments", ["linked_income_id"])
    op.create_index("ix_attachments_drive_file_id", "attachments", ["drive_file_id"])
    op.create_index("ix_attachments_checksum", "attachments", ["checksum"])
    op.create_index("ix_attachments_uploaded_by_user_id", "attachments", ["uploaded_by_user_id"])
    op.create_index(
        "ix_attachments_status_retention", "attachments", ["status", "retention_expires_at"]
    )

    op.create_table(
        "bulk_import_jobs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("initiated_by_user_id", sa.String(64), nullable=False),
        sa.Column("total_files", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("uploaded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_bulk_import_jobs_initiated_by_user_id", "bulk_import_jobs", ["initiated_by_user_id"]
    )

    op.create_table(
        "user_drive_auth",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("encrypted_refresh_token", sa.Text(), nullable=False),
        sa.Column("scopes", sa.String(500), nullable=True),
        sa.Column("last_validated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_drive_auth_user_id", "user_drive_auth", ["user_id"], unique=True)


def downgrade() -> None:
    op.drop_table("user_drive_auth")
    op.drop_table("bulk_import_jobs")
    op.drop_table("attachments")
    op.drop_table("incomes")
    op.drop_table("expenses")
