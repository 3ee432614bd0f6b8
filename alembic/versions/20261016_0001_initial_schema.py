"""initial schema

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


project_type = postgresql.ENUM(
    "development", "maintenance", "management", "other", name="project_type", create_type=False
)
project_status = postgresql.ENUM("confirmed", "prospective", name="project_status", create_type=False)


def upgrade() -> None:
    project_type.create(op.get_bind(), checkfirst=True)
    project_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=128), nullable=False),
        sa.Column("hourly_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("work_capacity", sa.Numeric(5, 2), nullable=False, server_default="1.00"),
        sa.Column("memo", sa.String(length=2000), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("hourly_rate >= 0", name="ck_members_hourly_rate_non_negative"),
        sa.CheckConstraint("work_capacity >= 0", name="ck_members_work_capacity_non_negative"),
    )
    op.create_index("ix_members_sort_order", "members", ["sort_order"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", project_type, nullable=False, server_default="development"),
        sa.Column("status", project_status, nullable=False, server_default="confirmed"),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("budget", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("budget IS NULL OR budget >= 0", name="ck_projects_budget_non_negative"),
    )
    op.create_index("ix_projects_sort_order", "projects", ["sort_order"])
    op.create_index("ix_projects_status", "projects", ["status"])

    op.create_table(
        "assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "member_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("man_month", sa.Numeric(6, 2), nullable=False, server_default="0.00"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("man_month >= 0", name="ck_assignments_man_month_non_negative"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_assignments_month_range"),
        sa.CheckConstraint("year >= 1000 AND year <= 9999", name="ck_assignments_year_range"),
    )
    op.create_index("ix_assignments_member_period", "assignments", ["member_id", "year", "month"])
    op.create_index("ix_assignments_project_id", "assignments", ["project_id"])
    op.create_unique_constraint(
        "uq_assignments_member_project_year_month",
        "assignments",
        ["member_id", "project_id", "year", "month"],
    )

    op.create_table(
        "monthly_budgets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_monthly_budgets_amount_non_negative"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_budgets_month_range"),
        sa.CheckConstraint("year >= 1000 AND year <= 9999", name="ck_monthly_budgets_year_range"),
    )
    op.create_unique_constraint(
        "uq_monthly_budgets_project_year_month",
        "monthly_budgets",
        ["project_id", "year", "month"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_monthly_budgets_project_year_month", "monthly_budgets", type_="unique")
    op.drop_table("monthly_budgets")

    op.drop_constraint("uq_assignments_member_project_year_month", "assignments", type_="unique")
    op.drop_index("ix_assignments_project_id", table_name="assignments")
    op.drop_index("ix_assignments_member_period", table_name="assignments")
    op.drop_table("assignments")

    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_index("ix_projects_sort_order", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_members_sort_order", table_name="members")
    op.drop_table("members")

    project_status.drop(op.get_bind(), checkfirst=True)
    project_type.drop(op.get_bind(), checkfirst=True)
