"""Repository helpers for members, projects, assignments and monthly budgets."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from staffplan.engine.records import YearMonth
from staffplan.models.entities import (
    Assignment,
    Member,
    MonthlyBudget,
    Project,
    ProjectStatus,
    ProjectType,
)


def _period_index(year_column, month_column):
    return year_column * 100 + month_column


class PlanningRepository:
    """Persistence operations used by planning and summary services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Members ----------
    def list_members(self) -> list[Member]:
        return self.db.scalars(
            select(Member).order_by(Member.sort_order.asc(), Member.created_at.desc())
        ).all()

    def count_members(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Member)) or 0

    def get_member(self, member_id: UUID) -> Member | None:
        return self.db.scalar(select(Member).where(Member.id == member_id))

    def next_member_sort_order(self) -> int:
        current = self.db.scalar(select(func.max(Member.sort_order)))
        return (current if current is not None else -1) + 1

    def add_member(self, member: Member) -> Member:
        self.db.add(member)
        self.db.flush()
        return member

    def delete_member(self, member: Member) -> None:
        self.db.execute(delete(Assignment).where(Assignment.member_id == member.id))
        self.db.delete(member)
        self.db.flush()

    # ---------- Projects ----------
    def list_projects(
        self,
        *,
        search: str | None = None,
        project_type: ProjectType | None = None,
        project_status: ProjectStatus | None = None,
        min_budget: int | None = None,
        max_budget: int | None = None,
        starts_from: date | None = None,
        ends_by: date | None = None,
        ended_before: date | None = None,
    ) -> list[Project]:
        """Projects in display order.

        ``ended_before`` hides projects whose end date is earlier than the given
        day; open-ended projects are always kept.
        """

        conditions = []
        if min_budget is not None:
            conditions.append(Project.budget >= min_budget)
        if max_budget is not None:
            conditions.append(Project.budget <= max_budget)
        if starts_from is not None:
            conditions.append(Project.start_date >= starts_from)
        if ends_by is not None:
            conditions.append(Project.end_date <= ends_by)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Project.name.ilike(pattern), Project.description.ilike(pattern)))
        if project_type is not None:
            conditions.append(Project.type == project_type)
        if project_status is not None:
            conditions.append(Project.status == project_status)
        if ended_before is not None:
            conditions.append(or_(Project.end_date.is_(None), Project.end_date >= ended_before))

        query = select(Project)
        if conditions:
            query = query.where(and_(*conditions))
        return self.db.scalars(
            query.order_by(Project.sort_order.asc(), Project.created_at.desc())
        ).all()

    def count_projects(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Project)) or 0

    def count_active_projects(self, as_of: date) -> int:
        return (
            self.db.scalar(
                select(func.count())
                .select_from(Project)
                .where(
                    and_(
                        Project.status == ProjectStatus.CONFIRMED,
                        or_(Project.end_date.is_(None), Project.end_date >= as_of),
                    )
                )
            )
            or 0
        )

    def list_projects_ending_between(self, *, from_day: date, to_day: date) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .where(
                and_(
                    Project.status == ProjectStatus.CONFIRMED,
                    Project.end_date >= from_day,
                    Project.end_date <= to_day,
                )
            )
            .order_by(Project.end_date.asc(), Project.name.asc())
        ).all()

    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def next_project_sort_order(self) -> int:
        current = self.db.scalar(select(func.max(Project.sort_order)))
        return (current if current is not None else -1) + 1

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        self.db.execute(delete(Assignment).where(Assignment.project_id == project.id))
        self.db.execute(delete(MonthlyBudget).where(MonthlyBudget.project_id == project.id))
        self.db.delete(project)
        self.db.flush()

    # ---------- Assignments ----------
    def list_assignments(
        self,
        *,
        member_ids: set[UUID] | None = None,
        project_id: UUID | None = None,
        project_ids: set[UUID] | None = None,
        from_period: YearMonth | None = None,
        to_period: YearMonth | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> list[Assignment]:
        conditions = []
        if member_ids:
            conditions.append(Assignment.member_id.in_(member_ids))
        if project_id is not None:
            conditions.append(Assignment.project_id == project_id)
        if project_ids is not None:
            conditions.append(Assignment.project_id.in_(project_ids))
        period = _period_index(Assignment.year, Assignment.month)
        if from_period is not None:
            conditions.append(period >= from_period.year * 100 + from_period.month)
        if to_period is not None:
            conditions.append(period <= to_period.year * 100 + to_period.month)
        if year is not None:
            conditions.append(Assignment.year == year)
        if month is not None:
            conditions.append(Assignment.month == month)

        query = select(Assignment).join(Member, Member.id == Assignment.member_id)
        if conditions:
            query = query.where(and_(*conditions))
        return self.db.scalars(
            query.order_by(
                Assignment.year.desc(),
                Assignment.month.desc(),
                Member.sort_order.asc(),
                Assignment.created_at.desc(),
            )
        ).all()

    def assignment_counts_by_project(self, project_ids: set[UUID] | None = None) -> dict[UUID, int]:
        query = select(Assignment.project_id, func.count(Assignment.id)).group_by(Assignment.project_id)
        if project_ids is not None:
            query = query.where(Assignment.project_id.in_(project_ids))
        return {project_id: count for project_id, count in self.db.execute(query).all()}

    def list_all_assignments(self) -> list[Assignment]:
        return self.db.scalars(
            select(Assignment).order_by(Assignment.year.asc(), Assignment.month.asc())
        ).all()

    def get_assignment(self, assignment_id: UUID) -> Assignment | None:
        return self.db.scalar(select(Assignment).where(Assignment.id == assignment_id))

    def get_assignment_by_key(
        self,
        *,
        member_id: UUID,
        project_id: UUID,
        year: int,
        month: int,
    ) -> Assignment | None:
        return self.db.scalar(
            select(Assignment).where(
                and_(
                    Assignment.member_id == member_id,
                    Assignment.project_id == project_id,
                    Assignment.year == year,
                    Assignment.month == month,
                )
            )
        )

    def add_assignment(self, assignment: Assignment) -> Assignment:
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def delete_assignment(self, assignment: Assignment) -> None:
        self.db.delete(assignment)
        self.db.flush()

    # ---------- Monthly budgets ----------
    def list_monthly_budgets(self, project_id: UUID | None = None) -> list[MonthlyBudget]:
        query = select(MonthlyBudget)
        if project_id is not None:
            query = query.where(MonthlyBudget.project_id == project_id)
        return self.db.scalars(
            query.order_by(MonthlyBudget.year.asc(), MonthlyBudget.month.asc())
        ).all()

    def get_monthly_budget(self, *, project_id: UUID, year: int, month: int) -> MonthlyBudget | None:
        return self.db.scalar(
            select(MonthlyBudget).where(
                and_(
                    MonthlyBudget.project_id == project_id,
                    MonthlyBudget.year == year,
                    MonthlyBudget.month == month,
                )
            )
        )

    def add_monthly_budget(self, row: MonthlyBudget) -> MonthlyBudget:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_monthly_budget(self, row: MonthlyBudget) -> None:
        self.db.delete(row)
        self.db.flush()
