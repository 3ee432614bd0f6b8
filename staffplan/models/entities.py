"""ORM entities for the staffing plan schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from staffplan.db.base import Base


class ProjectType(str, enum.Enum):
    DEVELOPMENT = "development"
    MAINTENANCE = "maintenance"
    MANAGEMENT = "management"
    OTHER = "other"


class ProjectStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PROSPECTIVE = "prospective"


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint("hourly_rate >= 0", name="ck_members_hourly_rate_non_negative"),
        CheckConstraint("work_capacity >= 0", name="ck_members_work_capacity_non_negative"),
        Index("ix_members_sort_order", "sort_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(128), nullable=False)
    hourly_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    work_capacity: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1.00"))
    memo: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("budget IS NULL OR budget >= 0", name="ck_projects_budget_non_negative"),
        Index("ix_projects_sort_order", "sort_order"),
        Index("ix_projects_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[ProjectType] = mapped_column(
        SQLEnum(
            ProjectType,
            name="project_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ProjectType.DEVELOPMENT,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(
            ProjectStatus,
            name="project_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ProjectStatus.CONFIRMED,
    )
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    budget: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Assignment(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        CheckConstraint("man_month >= 0", name="ck_assignments_man_month_non_negative"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_assignments_month_range"),
        CheckConstraint("year >= 1000 AND year <= 9999", name="ck_assignments_year_range"),
        Index("ix_assignments_member_period", "member_id", "year", "month"),
        Index("ix_assignments_project_id", "project_id"),
        UniqueConstraint(
            "member_id",
            "project_id",
            "year",
            "month",
            name="uq_assignments_member_project_year_month",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    man_month: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class MonthlyBudget(Base):
    __tablename__ = "monthly_budgets"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_monthly_budgets_amount_non_negative"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_budgets_month_range"),
        CheckConstraint("year >= 1000 AND year <= 9999", name="ck_monthly_budgets_year_range"),
        UniqueConstraint("project_id", "year", "month", name="uq_monthly_budgets_project_year_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
