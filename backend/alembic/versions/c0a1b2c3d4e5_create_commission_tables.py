"""create partner commission tables

Revision ID: c0a1b2c3d4e5
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "c0a1b2c3d4e5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "partners",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("partner_code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("company_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("partner_type", sa.String(length=12), nullable=False),
        sa.Column("commission_structure_type", sa.String(length=12), nullable=False, server_default="NONE"),
        sa.Column("commission_params_json", sa.JSON(), nullable=True),
        sa.Column("commission_notes", sa.Text(), nullable=True),
        sa.Column("payout_payee_id", sa.String(), nullable=True),
        sa.Column("payout_status", sa.String(length=10), nullable=False, server_default="NOT_LINKED"),
        sa.Column("payout_method", sa.String(), nullable=True),
        sa.Column("payout_onboarded_at", sa.DateTime(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active_from", sa.Date(), nullable=True),
        sa.Column("active_until", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("partner_code", name="uq_partners_partner_code"),
    )
    op.create_index("ix_partners_id", "partners", ["id"])
    op.create_index("ix_partners_partner_type", "partners", ["partner_type"])
    op.create_index("ix_partners_payout_payee_id", "partners", ["payout_payee_id"])

    op.create_table(
        "commission_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("commission_id", sa.String(), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("commission_month", sa.Date(), nullable=False),
        sa.Column("recipient_type", sa.String(length=12), nullable=False),
        sa.Column("calculation_method", sa.String(length=12), nullable=False),
        sa.Column("calculation_params_json", sa.JSON(), nullable=True),
        sa.Column("revenue_basis", sa.Numeric(14, 4), nullable=True),
        sa.Column("conversion_count", sa.Integer(), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
        sa.Column("calculation_details", sa.Text(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(), nullable=False),
        sa.Column("calculation_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payment_status", sa.String(length=10), nullable=False, server_default="PENDING"),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("processing_handle", sa.String(), nullable=True),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("partner_id", "commission_month", name="uq_commission_records_partner_month"),
        sa.UniqueConstraint("commission_id", name="uq_commission_records_commission_id"),
    )
    op.create_index("ix_commission_records_id", "commission_records", ["id"])
    op.create_index("ix_commission_records_partner_id", "commission_records", ["partner_id"])
    op.create_index("ix_commission_records_month", "commission_records", ["commission_month"])
    op.create_index("ix_commission_records_status", "commission_records", ["payment_status"])
    op.create_index("ix_commission_records_processing_handle", "commission_records", ["processing_handle"])

    op.create_table(
        "commission_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("record_id", sa.Integer(), nullable=False),
        sa.Column("event", sa.String(length=12), nullable=False),
        sa.Column("from_status", sa.String(), nullable=True),
        sa.Column("to_status", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["record_id"], ["commission_records.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_commission_events_id", "commission_events", ["id"])
    op.create_index("ix_commission_events_record", "commission_events", ["record_id"])

    op.create_table(
        "partner_monthly_inputs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("input_month", sa.Date(), nullable=False),
        sa.Column("revenue_basis", sa.Numeric(14, 4), nullable=True),
        sa.Column("conversion_count", sa.Integer(), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("partner_id", "input_month", name="uq_partner_monthly_inputs_partner_month"),
    )
    op.create_index("ix_partner_monthly_inputs_id", "partner_monthly_inputs", ["id"])
    op.create_index("ix_partner_monthly_inputs_partner_id", "partner_monthly_inputs", ["partner_id"])


def downgrade():
    op.drop_index("ix_partner_monthly_inputs_partner_id", table_name="partner_monthly_inputs")
    op.drop_index("ix_partner_monthly_inputs_id", table_name="partner_monthly_inputs")
    op.drop_table("partner_monthly_inputs")

    op.drop_index("ix_commission_events_record", table_name="commission_events")
    op.drop_index("ix_commission_events_id", table_name="commission_events")
    op.drop_table("commission_events")

    op.drop_index("ix_commission_records_processing_handle", table_name="commission_records")
    op.drop_index("ix_commission_records_status", table_name="commission_records")
    op.drop_index("ix_commission_records_month", table_name="commission_records")
    op.drop_index("ix_commission_records_partner_id", table_name="commission_records")
    op.drop_index("ix_commission_records_id", table_name="commission_records")
    op.drop_table("commission_records")

    op.drop_index("ix_partners_payout_payee_id", table_name="partners")
    op.drop_index("ix_partners_partner_type", table_name="partners")
    op.drop_index("ix_partners_id", table_name="partners")
    op.drop_table("partners")
