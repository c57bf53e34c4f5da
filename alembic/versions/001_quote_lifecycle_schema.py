"""Quote lifecycle schema.

Revision ID: 001
Revises:
Create Date: 2025-07-02

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

QUOTE_STATUSES = (
    "sent",
    "in_review",
    "offer_sent",
    "offered",
    "accepted",
    "declined",
    "payment_sent",
    "confirmed",
    "rejected",
)


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at_column() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("clock_timestamp()"),
    )


def _request_fk(table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ["request_id"],
        ["quote_requests.id"],
        name=op.f(f"fk_{table}_request_id_quote_requests"),
        ondelete="CASCADE",
    )


def upgrade() -> None:
    """Create quote lifecycle tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    # Ownership anchor
    op.create_table(
        "agencies",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="pending"
        ),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_agencies")),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'suspended')",
            name=op.f("ck_agencies_status"),
        ),
    )
    op.create_index(op.f("ix_agencies_user_id"), "agencies", ["user_id"])

    # Product titles used in email wording
    for table in ("tours", "cruises"):
        op.create_table(
            table,
            _id_column(),
            sa.Column("title", sa.String(255), nullable=False),
            _created_at_column(),
            sa.PrimaryKeyConstraint("id", name=op.f(f"pk_{table}")),
        )

    op.create_table(
        "quote_requests",
        _id_column(),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_type", sa.String(10), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("departure_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("participants_adults", sa.Integer(), nullable=True),
        sa.Column("participants_children", sa.Integer(), nullable=True),
        sa.Column("cabin_type", sa.String(100), nullable=True),
        sa.Column("num_cabins", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="sent"),
        _created_at_column(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_quote_requests")),
        sa.ForeignKeyConstraint(
            ["agency_id"],
            ["agencies.id"],
            name=op.f("fk_quote_requests_agency_id_agencies"),
        ),
        sa.CheckConstraint(
            "request_type IN ('tour', 'cruise')",
            name=op.f("ck_quote_requests_request_type"),
        ),
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in QUOTE_STATUSES) + ")",
            name=op.f("ck_quote_requests_status"),
        ),
    )
    op.create_index(
        op.f("ix_quote_requests_agency_id"), "quote_requests", ["agency_id"]
    )
    op.create_index(op.f("ix_quote_requests_status"), "quote_requests", ["status"])

    # agency_id never changes after creation
    op.execute(
        """
        CREATE OR REPLACE FUNCTION forbid_agency_id_change()
        RETURNS TRIGGER AS $$
        BEGIN
            IF NEW.agency_id <> OLD.agency_id THEN
                RAISE EXCEPTION 'quote_requests.agency_id is immutable';
            END IF;
            RETURN NEW;
        END;
        $$ language 'plpgsql';
        """
    )
    op.execute(
        """
        CREATE TRIGGER quote_requests_agency_id_immutable
        BEFORE UPDATE ON quote_requests
        FOR EACH ROW EXECUTE FUNCTION forbid_agency_id_change();
        """
    )

    op.create_table(
        "quote_offers",
        _id_column(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("conditions", sa.Text(), nullable=True),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("offer_expiry", sa.Date(), nullable=True),
        sa.Column("package_details", postgresql.JSONB(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_quote_offers")),
        _request_fk("quote_offers"),
        sa.CheckConstraint(
            "total_price IS NULL OR total_price >= 0",
            name=op.f("ck_quote_offers_total_price"),
        ),
    )
    op.create_index(
        op.f("ix_quote_offers_request_id_created_at"),
        "quote_offers",
        ["request_id", "created_at"],
    )

    op.create_table(
        "quote_participants",
        _id_column(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("document_type", sa.String(50), nullable=True),
        sa.Column("document_number", sa.String(50), nullable=True),
        sa.Column(
            "is_child", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_quote_participants")),
        _request_fk("quote_participants"),
        sa.CheckConstraint(
            "length(trim(full_name)) > 0",
            name=op.f("ck_quote_participants_full_name"),
        ),
        sa.CheckConstraint(
            "age IS NULL OR age BETWEEN 0 AND 120",
            name=op.f("ck_quote_participants_age"),
        ),
    )
    op.create_index(
        op.f("ix_quote_participants_request_id"),
        "quote_participants",
        ["request_id", "sort_order"],
    )

    op.create_table(
        "quote_payments",
        _id_column(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("bank_details", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="pending"
        ),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_quote_payments")),
        _request_fk("quote_payments"),
        sa.CheckConstraint(
            "status IN ('pending', 'received', 'confirmed')",
            name=op.f("ck_quote_payments_status"),
        ),
    )
    op.create_index(
        op.f("ix_quote_payments_request_id"), "quote_payments", ["request_id"]
    )

    op.create_table(
        "quote_timeline",
        _id_column(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(255), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("actor", sa.String(20), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_quote_timeline")),
        _request_fk("quote_timeline"),
        sa.CheckConstraint(
            "actor IN ('agency', 'admin', 'system')",
            name=op.f("ck_quote_timeline_actor"),
        ),
    )
    op.create_index(
        op.f("ix_quote_timeline_request_id_created_at"),
        "quote_timeline",
        ["request_id", "created_at"],
    )

    op.create_table(
        "notification_outbox",
        _id_column(),
        sa.Column("recipients", postgresql.JSONB(), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("html_body", sa.Text(), nullable=False),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="pending"
        ),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at_column(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notification_outbox")),
        sa.CheckConstraint(
            "status IN ('pending', 'sent')",
            name=op.f("ck_notification_outbox_status"),
        ),
    )
    op.create_index(
        op.f("ix_notification_outbox_status_created_at"),
        "notification_outbox",
        ["status", "created_at"],
    )


def downgrade() -> None:
    """Drop quote lifecycle tables."""
    op.execute(
        "DROP TRIGGER IF EXISTS quote_requests_agency_id_immutable ON quote_requests;"
    )
    op.execute("DROP FUNCTION IF EXISTS forbid_agency_id_change();")

    # Drop tables (in reverse order due to foreign keys)
    op.drop_table("notification_outbox")
    op.drop_table("quote_timeline")
    op.drop_table("quote_payments")
    op.drop_table("quote_participants")
    op.drop_table("quote_offers")
    op.drop_table("quote_requests")
    op.drop_table("cruises")
    op.drop_table("tours")
    op.drop_table("agencies")
