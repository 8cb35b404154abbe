"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        "firms",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("name", sa.String(length=200), nullable=False),
    )

    op.create_table(
        "clients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("firms.id"), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
    )
    op.create_index("ix_clients_firm_id", "clients", ["firm_id"])
    op.create_index("ix_clients_email", "clients", ["email"])

    op.create_table(
        "filings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("firms.id"), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("form_code", sa.String(length=20), nullable=False),
        sa.Column("tax_year", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
    )
    op.create_index("ix_filings_firm_id", "filings", ["firm_id"])
    op.create_index("ix_filings_client_id", "filings", ["client_id"])
    op.create_index("ix_filings_form_code", "filings", ["form_code"])

    op.create_table(
        "form_fields",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("form_code", sa.String(length=20), nullable=False),
        sa.Column("field_key", sa.String(length=120), nullable=False),
        sa.Column("label", sa.String(length=300), nullable=False),
        sa.Column("help_text", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=30), nullable=False, server_default="text"),
        sa.Column("input_type", sa.String(length=60), nullable=True),
        sa.Column("data_type", sa.String(length=30), nullable=True),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("section", sa.String(length=120), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column("audience", sa.String(length=20), nullable=True),
        sa.Column("is_calculated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("calculation", sa.String(length=500), nullable=True),
        sa.Column("source_notes", sa.Text(), nullable=True),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("line_item", sa.String(length=30), nullable=True),
        sa.UniqueConstraint("form_code", "field_key", name="uq_form_fields_form_code_field_key"),
    )
    op.create_index("ix_form_fields_form_code", "form_fields", ["form_code"])

    op.create_table(
        "form_answers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("filing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("filings.id"), nullable=False),
        sa.Column("field_key", sa.String(length=120), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("source", sa.String(length=10), nullable=False, server_default="lawyer"),
        sa.Column("updated_by", sa.String(length=120), nullable=True),
        sa.UniqueConstraint("filing_id", "field_key", name="uq_form_answers_filing_field"),
    )
    op.create_index("ix_form_answers_filing_id", "form_answers", ["filing_id"])

    op.create_table(
        "pdf_field_mappings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("form_code", sa.String(length=20), nullable=False),
        sa.Column("tax_year", sa.Integer(), nullable=False),
        sa.Column("field_key", sa.String(length=120), nullable=False),
        sa.Column("pdf_field_name", sa.String(length=255), nullable=False),
        sa.Column("format", sa.String(length=20), nullable=True),
        sa.Column("constant_value", sa.String(length=255), nullable=True),
        sa.UniqueConstraint(
            "form_code", "tax_year", "pdf_field_name", name="uq_pdf_field_mappings_form_year_pdf_name"
        ),
    )
    op.create_index("ix_pdf_field_mappings_form_code", "pdf_field_mappings", ["form_code"])
    op.create_index("ix_pdf_field_mappings_tax_year", "pdf_field_mappings", ["tax_year"])
    op.create_index("ix_pdf_field_mappings_field_key", "pdf_field_mappings", ["field_key"])

    op.create_table(
        "client_invites",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("filing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("filings.id"), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_by", sa.String(length=120), nullable=True),
    )
    op.create_index("ix_client_invites_filing_id", "client_invites", ["filing_id"])
    op.create_index("ix_client_invites_token", "client_invites", ["token"], unique=True)

    op.create_table(
        "attachments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column("filing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("filings.id"), nullable=False),
        sa.Column("field_key", sa.String(length=120), nullable=False),
        sa.Column("file_name", sa.String(length=300), nullable=False),
        sa.Column("mime_type", sa.String(length=150), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("s3_key", sa.String(length=500), nullable=False, unique=True),
        sa.Column("uploaded_by", sa.String(length=120), nullable=True),
    )
    op.create_index("ix_attachments_filing_id", "attachments", ["filing_id"])
    op.create_index("ix_attachments_field_key", "attachments", ["field_key"])


def downgrade():
    op.drop_table("attachments")
    op.drop_table("client_invites")
    op.drop_table("pdf_field_mappings")
    op.drop_table("form_answers")
    op.drop_table("form_fields")
    op.drop_table("filings")
    op.drop_table("clients")
    op.drop_table("firms")
