"""initial fire-safety planning schema

Revision ID: 20261019_01_initial
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _archive_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "is_archived",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_by", sa.String(length=128), nullable=True),
    ]


def upgrade() -> None:
    # companies
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        *_archive_columns(),
        sa.UniqueConstraint("company_code"),
    )
    op.create_index("ix_companies_company_code", "companies", ["company_code"])
    op.create_index("ix_companies_is_archived", "companies", ["is_archived"])

    # branches
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False
        ),
        sa.Column("branch_code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=True),
        *_timestamps(),
        *_archive_columns(),
        sa.UniqueConstraint("branch_code"),
    )
    op.create_index("ix_branches_company_id", "branches", ["company_id"])
    op.create_index("ix_branches_branch_code", "branches", ["branch_code"])
    op.create_index("ix_branches_is_archived", "branches", ["is_archived"])

    # contracts
    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_code", sa.String(length=64), nullable=False),
        sa.Column(
            "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        *_timestamps(),
        *_archive_columns(),
        sa.UniqueConstraint("contract_code"),
    )
    op.create_index("ix_contracts_contract_code", "contracts", ["contract_code"])
    op.create_index("ix_contracts_company_id", "contracts", ["company_id"])
    op.create_index("ix_contracts_is_archived", "contracts", ["is_archived"])

    # service_batches
    op.create_table(
        "service_batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("batch_code", sa.String(length=64), nullable=True),
        sa.Column("fire_extinguisher", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("alarm_system", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("fire_suppression", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("gas_system", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("foam_system", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("regular_visits_per_year", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emergency_visits_per_year", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("regular_visits_per_year >= 0", name="ck_batches_regular_nonneg"),
        sa.CheckConstraint("emergency_visits_per_year >= 0", name="ck_batches_emergency_nonneg"),
    )
    op.create_index("ix_service_batches_contract_id", "service_batches", ["contract_id"])

    op.create_table(
        "service_batch_branches",
        sa.Column(
            "service_batch_id",
            sa.Integer(),
            sa.ForeignKey("service_batches.id"),
            primary_key=True,
        ),
        sa.Column(
            "branch_id", sa.Integer(), sa.ForeignKey("branches.id"), primary_key=True
        ),
    )

    # visits
    op.create_table(
        "visits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("visit_code", sa.String(length=32), nullable=True),
        sa.Column(
            "branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False
        ),
        sa.Column(
            "contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False
        ),
        sa.Column(
            "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False
        ),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="regular"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_date", sa.String(length=32), nullable=False),
        sa.Column("completed_date", sa.String(length=32), nullable=True),
        sa.Column("results", sa.JSON(), nullable=True),
        sa.Column("services", sa.JSON(), nullable=True),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        *_timestamps(),
        *_archive_columns(),
    )
    op.create_index("ix_visits_visit_code", "visits", ["visit_code"])
    op.create_index("ix_visits_branch_id", "visits", ["branch_id"])
    op.create_index("ix_visits_contract_id", "visits", ["contract_id"])
    op.create_index("ix_visits_company_id", "visits", ["company_id"])
    op.create_index("ix_visits_status", "visits", ["status"])
    op.create_index("ix_visits_is_archived", "visits", ["is_archived"])

    # activity_logs
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_activity_logs_actor", "activity_logs", ["actor"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_target_type", "activity_logs", ["target_type"])
    op.create_index("ix_activity_logs_target_id", "activity_logs", ["target_id"])
    op.create_index("ix_activity_logs_batch_id", "activity_logs", ["batch_id"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("visits")
    op.drop_table("service_batch_branches")
    op.drop_table("service_batches")
    op.drop_table("contracts")
    op.drop_table("branches")
    op.drop_table("companies")
