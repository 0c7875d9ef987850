"""create_core_tables

Revision ID: 4c1d7e2a9b60
Revises:
Create Date: 2025-11-20 09:41:07.118204

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '4c1d7e2a9b60'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("license_number", sa.String(length=50), nullable=True),
        sa.Column("registration_number", sa.String(length=50), nullable=True),
        sa.Column("contact_email", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("api_endpoint", sa.String(length=255), nullable=True),
        sa.Column("api_key", sa.String(length=255), nullable=True),
        sa.Column("sync_frequency", sa.String(length=20), server_default="daily", nullable=False),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
        sa.Column("sync_status", sa.String(length=20), nullable=True),
        sa.Column("sync_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'suspended', 'rejected')",
            name="ck_company_status",
        ),
        sa.CheckConstraint(
            "sync_frequency IN ('realtime', 'hourly', 'daily', 'weekly', 'manual')",
            name="ck_company_sync_frequency",
        ),
        sa.CheckConstraint(
            "sync_status IS NULL OR sync_status IN ('success', 'failed', 'pending')",
            name="ck_company_sync_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("license_number"),
        sa.UniqueConstraint("registration_number"),
    )

    op.create_table(
        "policies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("policy_number", sa.String(length=100), nullable=False),
        sa.Column("holder_name", sa.String(length=100), nullable=False),
        sa.Column("holder_id_number", sa.String(length=50), nullable=True),
        sa.Column("holder_phone", sa.String(length=20), nullable=True),
        sa.Column("holder_email", sa.String(length=100), nullable=True),
        sa.Column("policy_type", sa.String(length=50), server_default="auto", nullable=False),
        sa.Column("coverage_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("premium_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=True),
        sa.Column("vehicle_info", sa.JSON(), nullable=True),
        sa.Column("additional_beneficiaries", sa.JSON(), nullable=True),
        sa.Column("hash", sa.String(length=64), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="active", nullable=False),
        sa.Column("approval_status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("policy_year", sa.Integer(), nullable=True),
        sa.Column("policy_counter", sa.Integer(), nullable=True),
        sa.Column("last_synced", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.CheckConstraint(
            "status IN ('active', 'expired', 'cancelled', 'suspended')",
            name="ck_policy_status",
        ),
        sa.CheckConstraint(
            "approval_status IN ('pending', 'approved', 'declined')",
            name="ck_policy_approval_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("policy_number"),
        sa.UniqueConstraint("hash"),
        sa.UniqueConstraint("company_id", "policy_number", name="uq_policies_company_number"),
    )
    op.create_index(
        "ix_policies_sequence",
        "policies",
        ["company_id", "policy_type", "policy_year"],
    )
    op.create_index(
        "ix_policies_status_expiry",
        "policies",
        ["status", "expiry_date"],
    )

    op.create_table(
        "policy_sequences",
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("policy_type", sa.String(length=50), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.CheckConstraint("last_value >= 1", name="ck_policy_sequence_positive"),
        sa.PrimaryKeyConstraint("company_id", "policy_type", "year"),
    )

    op.create_table(
        "verifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("policy_number", sa.String(length=100), nullable=False),
        sa.Column("holder_name", sa.String(length=100), nullable=True),
        sa.Column("holder_id_number", sa.String(length=100), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("officer_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("policy_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("verification_method", sa.String(length=10), server_default="manual", nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("latitude", sa.Numeric(10, 8), nullable=True),
        sa.Column("longitude", sa.Numeric(11, 8), nullable=True),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=100), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["policy_id"], ["policies.id"]),
        sa.CheckConstraint(
            "status IN ('valid', 'fake', 'pending', 'expired', 'not_found')",
            name="ck_verification_status",
        ),
        sa.CheckConstraint(
            "verification_method IN ('scan', 'manual', 'api')",
            name="ck_verification_method",
        ),
        sa.CheckConstraint(
            "confidence_score IS NULL OR (confidence_score >= 0 AND confidence_score <= 100)",
            name="ck_verification_confidence",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key"),
    )
    op.create_index(
        "ix_verifications_policy_number",
        "verifications",
        ["policy_number"],
    )
    op.create_index(
        "ix_verifications_company",
        "verifications",
        ["company_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_verifications_company", table_name="verifications")
    op.drop_index("ix_verifications_policy_number", table_name="verifications")
    op.drop_table("verifications")

    op.drop_table("policy_sequences")

    op.drop_index("ix_policies_status_expiry", table_name="policies")
    op.drop_index("ix_policies_sequence", table_name="policies")
    op.drop_table("policies")

    op.drop_table("companies")
