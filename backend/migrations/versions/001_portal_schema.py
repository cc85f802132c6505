"""Create organizations, customers, quotes, invoices and portal tables.

Revision ID: 001_portal_schema
Revises: 000_enable_extensions
Create Date: 2026-10-19

- organizations, customers: tenant and its customers (portal branding)
- quotes, invoices: documents customers view through the portal
- portal_tokens: bearer links, never deleted, revoked at most once
- portal_access_logs: append-only audit trail per token
- activity_logs: staff-facing timeline (quote accepted/declined)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001_portal_schema"
down_revision: str | None = "000_enable_extensions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _org_fk(ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        "org_id",
        UUID(as_uuid=True),
        sa.ForeignKey("organizations.id", ondelete=ondelete),
        nullable=False,
    )


def _document_columns() -> list[sa.Column]:
    """Columns shared by quotes and invoices."""
    return [
        sa.Column(
            "customer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("tax", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("total", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "line_items",
            JSONB,
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
    ]


def upgrade() -> None:
    # =========================================================================
    # Tenants
    # =========================================================================
    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("primary_color", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        *_timestamp_columns(),
    )

    op.create_table(
        "customers",
        _id_column(),
        _org_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        *_timestamp_columns(),
    )
    op.create_index("ix_customers_org_id", "customers", ["org_id"])

    # =========================================================================
    # Documents
    # =========================================================================
    op.create_table(
        "quotes",
        _id_column(),
        _org_fk(),
        sa.Column("quote_number", sa.String(50), nullable=False),
        *_document_columns(),
        sa.Column("valid_until", sa.Date(), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint(
            "status IN ('draft', 'sent', 'accepted', 'declined', 'expired')",
            name="ck_quotes_status",
        ),
    )
    op.create_index("ix_quotes_org_id", "quotes", ["org_id"])

    op.create_table(
        "invoices",
        _id_column(),
        _org_fk(),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        *_document_columns(),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("issued_date", sa.Date(), nullable=True),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("customer_address", sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint(
            "status IN ('draft', 'sent', 'overdue', 'paid', 'cancelled', 'void')",
            name="ck_invoices_status",
        ),
    )
    op.create_index("ix_invoices_org_id", "invoices", ["org_id"])

    # =========================================================================
    # Portal tokens and audit trail
    # =========================================================================
    op.create_table(
        "portal_tokens",
        _id_column(),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("token_type", sa.String(20), nullable=False),
        sa.Column("resource_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "customer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        _org_fk(ondelete="RESTRICT"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_count", sa.Integer(), server_default="0", nullable=False),
        sa.CheckConstraint(
            "token_type IN ('quote', 'invoice', 'job', 'dashboard')",
            name="ck_portal_tokens_token_type",
        ),
        sa.CheckConstraint(
            "resource_id IS NOT NULL OR token_type = 'dashboard'",
            name="ck_portal_tokens_resource_required",
        ),
        sa.CheckConstraint(
            "access_count >= 0", name="ck_portal_tokens_access_nonneg"
        ),
    )
    op.create_index("ix_portal_tokens_org_id", "portal_tokens", ["org_id"])
    op.create_index(
        "ix_portal_tokens_resource", "portal_tokens", ["resource_id", "token_type"]
    )

    op.create_table(
        "portal_access_logs",
        _id_column(),
        sa.Column(
            "token_id",
            UUID(as_uuid=True),
            sa.ForeignKey("portal_tokens.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "accessed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_portal_access_logs_token_id", "portal_access_logs", ["token_id"]
    )

    op.create_table(
        "activity_logs",
        _id_column(),
        _org_fk(),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "metadata",
            JSONB,
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_activity_logs_org_id", "activity_logs", ["org_id"])
    op.create_index(
        "ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"]
    )


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("portal_access_logs")
    op.drop_table("portal_tokens")
    op.drop_table("invoices")
    op.drop_table("quotes")
    op.drop_table("customers")
    op.drop_table("organizations")
