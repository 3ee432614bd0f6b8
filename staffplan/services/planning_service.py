"""Application service for members, projects, monthly budgets and assignments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from staffplan.core.config import get_settings
from staffplan.engine.months import expand_month_range, validate_month
from staffplan.engine.records import InvalidRecordError, YearMonth
from staffplan.models.entities import (
    Assignment,
    Member,
    MonthlyBudget,
    Project,
    ProjectStatus,
    ProjectType,
)
from staffplan.repositories.planning_repository import PlanningRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks an update field that was not sent, so ``None`` can clear nullable columns.
UNSET = _Unset()


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def money_value(value: Decimal | int | None) -> int | float | None:
    """Currency amounts as JSON numbers: integers when integral."""

    if value is None:
        return None
    amount = Decimal(value)
    if amount == amount.to_integral_value():
        return int(amount)
    return float(_q2(amount))


def man_month_value(value: Decimal | int | float | None) -> float:
    if value is None:
        return 0.0
    return float(_q2(Decimal(str(value))))


@dataclass(slots=True)
class MemberCreateData:
    name: str
    role: str
    hourly_rate: int
    work_capacity: Decimal = Decimal("1.00")
    memo: str | None = None


@dataclass(slots=True)
class MemberUpdateData:
    name: str | None = None
    role: str | None = None
    hourly_rate: int | None = None
    work_capacity: Decimal | None = None
    memo: str | None | _Unset = UNSET


@dataclass(slots=True)
class MonthlyBudgetData:
    year: int
    month: int
    amount: int


@dataclass(slots=True)
class ProjectCreateData:
    name: str
    type: ProjectType = ProjectType.DEVELOPMENT
    status: ProjectStatus = ProjectStatus.CONFIRMED
    description: str | None = None
    budget: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    monthly_budgets: list[MonthlyBudgetData] = field(default_factory=list)


@dataclass(slots=True)
class ProjectUpdateData:
    name: str | None = None
    type: ProjectType | None = None
    status: ProjectStatus | None = None
    description: str | None | _Unset = UNSET
    budget: int | None | _Unset = UNSET
    start_date: date | None | _Unset = UNSET
    end_date: date | None | _Unset = UNSET


@dataclass(slots=True)
class ProjectFilters:
    search: str | None = None
    type: ProjectType | None = None
    status: ProjectStatus | None = None
    min_budget: int | None = None
    max_budget: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    include_ended: bool = False


@dataclass(slots=True)
class AssignmentData:
    member_id: UUID
    project_id: UUID
    year: int
    month: int
    man_month: Decimal


@dataclass(slots=True)
class AssignmentRangeData:
    member_id: UUID
    project_id: UUID
    start_date: date
    end_date: date
    man_month: Decimal


@dataclass(slots=True)
class AssignmentUpdateData:
    man_month: Decimal | None = None
    year: int | None = None
    month: int | None = None


@dataclass(slots=True)
class AssignmentFilters:
    member_ids: set[UUID] = field(default_factory=set)
    project_id: UUID | None = None
    start: YearMonth | None = None
    end: YearMonth | None = None
    year: int | None = None
    month: int | None = None


@dataclass(slots=True)
class ScheduleValue:
    year: int
    month: int
    man_month: Decimal


@dataclass(slots=True)
class ScheduleRow:
    member_id: UUID
    values: list[ScheduleValue]


def checked_month(year: int, month: int) -> YearMonth:
    try:
        return validate_month(year, month)
    except InvalidRecordError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def checked_man_month(value: Decimal) -> Decimal:
    if value < ZERO:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="man_month must be greater or equal zero.",
        )
    return _q2(value)


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class PlanningService:
    """CRUD and batch-write rules for the planning records."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = PlanningRepository(db)
        self.settings = get_settings()

    def _commit(self, conflict_detail: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Write rejected by store constraints: %s", conflict_detail)
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc

    # ---------- Serialization ----------
    @staticmethod
    def serialize_member(member: Member) -> dict[str, object]:
        return {
            "id": str(member.id),
            "name": member.name,
            "role": member.role,
            "hourly_rate": member.hourly_rate,
            "work_capacity": man_month_value(member.work_capacity),
            "memo": member.memo,
            "sort_order": member.sort_order,
            "created_at": member.created_at.isoformat(),
            "updated_at": member.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_project(project: Project, assignment_count: int | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(project.id),
            "name": project.name,
            "type": project.type.value,
            "status": project.status.value,
            "description": project.description,
            "budget": project.budget,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "sort_order": project.sort_order,
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
        }
        if assignment_count is not None:
            payload["assignment_count"] = assignment_count
        return payload

    @staticmethod
    def serialize_monthly_budget(row: MonthlyBudget) -> dict[str, object]:
        return {
            "id": str(row.id),
            "project_id": str(row.project_id),
            "year": row.year,
            "month": row.month,
            "amount": row.amount,
        }

    @staticmethod
    def serialize_assignment(assignment: Assignment) -> dict[str, object]:
        return {
            "id": str(assignment.id),
            "member_id": str(assignment.member_id),
            "project_id": str(assignment.project_id),
            "year": assignment.year,
            "month": assignment.month,
            "man_month": man_month_value(assignment.man_month),
            "created_at": assignment.created_at.isoformat(),
        }

    # ---------- Members ----------
    def list_members(self) -> list[Member]:
        return self.repo.list_members()

    def get_member(self, member_id: UUID) -> Member:
        member = self.repo.get_member(member_id)
        if member is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found.")
        return member

    def create_member(self, data: MemberCreateData) -> Member:
        now = datetime.utcnow()
        member = Member(
            name=data.name.strip(),
            role=data.role.strip(),
            hourly_rate=data.hourly_rate,
            work_capacity=_q2(data.work_capacity),
            memo=_strip_optional(data.memo),
            sort_order=self.repo.next_member_sort_order(),
            created_at=now,
            updated_at=now,
        )
        self.repo.add_member(member)
        self._commit("Member could not be stored.")
        self.db.refresh(member)
        return member

    def update_member(self, member_id: UUID, data: MemberUpdateData) -> Member:
        member = self.get_member(member_id)
        if data.name is not None:
            member.name = data.name.strip()
        if data.role is not None:
            member.role = data.role.strip()
        if data.hourly_rate is not None:
            member.hourly_rate = data.hourly_rate
        if data.work_capacity is not None:
            member.work_capacity = _q2(data.work_capacity)
        if not isinstance(data.memo, _Unset):
            member.memo = _strip_optional(data.memo)
        member.updated_at = datetime.utcnow()

        self._commit("Member could not be stored.")
        self.db.refresh(member)
        return member

    def delete_member(self, member_id: UUID) -> None:
        member = self.get_member(member_id)
        self.repo.delete_member(member)
        self.db.commit()
        logger.info("Deleted member %s with its assignments", member_id)

    def reorder_members(self, member_ids: list[UUID]) -> None:
        if len(set(member_ids)) != len(member_ids):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="member_ids must not contain duplicates.",
            )
        members = {member.id: member for member in self.repo.list_members()}
        missing = [str(member_id) for member_id in member_ids if member_id not in members]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown member ids: {', '.join(missing)}.",
            )

        try:
            with self.db.begin_nested():
                for index, member_id in enumerate(member_ids):
                    members[member_id].sort_order = index
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Member order could not be saved.") from exc

    # ---------- Projects ----------
    def list_projects(self, filters: ProjectFilters, *, today: date | None = None) -> list[Project]:
        return self.repo.list_projects(
            search=filters.search,
            project_type=filters.type,
            project_status=filters.status,
            min_budget=filters.min_budget,
            max_budget=filters.max_budget,
            starts_from=filters.start_date,
            ends_by=filters.end_date,
            ended_before=None if filters.include_ended else (today or date.today()),
        )

    def assignment_counts(self, projects: list[Project]) -> dict[UUID, int]:
        return self.repo.assignment_counts_by_project({project.id for project in projects})

    def get_project(self, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        return project

    @staticmethod
    def _check_project_dates(start_date: date | None, end_date: date | None) -> None:
        for value in (start_date, end_date):
            if value is not None and value.year < 1000:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Project dates must fall in four-digit years, got {value.isoformat()}.",
                )
        if start_date is not None and end_date is not None and end_date < start_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end_date must be greater than or equal to start_date.",
            )

    def create_project(self, data: ProjectCreateData) -> Project:
        self._check_project_dates(data.start_date, data.end_date)
        seen: set[YearMonth] = set()
        for row in data.monthly_budgets:
            key = checked_month(row.year, row.month)
            if key in seen:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Duplicate monthly budget for {key.key}.",
                )
            seen.add(key)

        now = datetime.utcnow()
        project = Project(
            name=data.name.strip(),
            type=data.type,
            status=data.status,
            description=_strip_optional(data.description),
            budget=data.budget,
            start_date=data.start_date,
            end_date=data.end_date,
            sort_order=self.repo.next_project_sort_order(),
            created_at=now,
            updated_at=now,
        )

        try:
            with self.db.begin_nested():
                self.repo.add_project(project)
                for row in data.monthly_budgets:
                    self.repo.add_monthly_budget(
                        MonthlyBudget(project_id=project.id, year=row.year, month=row.month, amount=row.amount)
                    )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Project could not be stored.",
            ) from exc

        self.db.refresh(project)
        return project

    def update_project(self, project_id: UUID, data: ProjectUpdateData) -> Project:
        project = self.get_project(project_id)

        target_start = project.start_date if isinstance(data.start_date, _Unset) else data.start_date
        target_end = project.end_date if isinstance(data.end_date, _Unset) else data.end_date
        self._check_project_dates(target_start, target_end)

        if data.name is not None:
            project.name = data.name.strip()
        if data.type is not None:
            project.type = data.type
        if data.status is not None:
            project.status = data.status
        if not isinstance(data.description, _Unset):
            project.description = _strip_optional(data.description)
        if not isinstance(data.budget, _Unset):
            project.budget = data.budget
        project.start_date = target_start
        project.end_date = target_end
        project.updated_at = datetime.utcnow()

        self._commit("Project could not be stored.")
        self.db.refresh(project)
        return project

    def delete_project(self, project_id: UUID) -> None:
        project = self.get_project(project_id)
        self.repo.delete_project(project)
        self.db.commit()
        logger.info("Deleted project %s with its assignments and monthly budgets", project_id)

    def reorder_projects(self, project_ids: list[UUID]) -> None:
        if len(set(project_ids)) != len(project_ids):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="project_ids must not contain duplicates.",
            )
        projects = {project.id: project for project in self.repo.list_projects()}
        missing = [str(project_id) for project_id in project_ids if project_id not in projects]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown project ids: {', '.join(missing)}.",
            )

        try:
            with self.db.begin_nested():
                for index, project_id in enumerate(project_ids):
                    projects[project_id].sort_order = index
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Project order could not be saved.") from exc

    # ---------- Monthly budgets ----------
    def list_monthly_budgets(self, project_id: UUID) -> list[MonthlyBudget]:
        project = self.get_project(project_id)
        return self.repo.list_monthly_budgets(project.id)

    def upsert_monthly_budget(self, project_id: UUID, data: MonthlyBudgetData) -> MonthlyBudget:
        project = self.get_project(project_id)
        checked_month(data.year, data.month)

        row = self.repo.get_monthly_budget(project_id=project.id, year=data.year, month=data.month)
        if row is None:
            row = self.repo.add_monthly_budget(
                MonthlyBudget(project_id=project.id, year=data.year, month=data.month, amount=data.amount)
            )
        else:
            row.amount = data.amount

        self._commit("Monthly budget already exists for this month.")
        self.db.refresh(row)
        return row

    def delete_monthly_budget(self, project_id: UUID, year: int, month: int) -> None:
        project = self.get_project(project_id)
        checked_month(year, month)
        row = self.repo.get_monthly_budget(project_id=project.id, year=year, month=month)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Monthly budget not found.")
        self.repo.delete_monthly_budget(row)
        self.db.commit()

    # ---------- Assignments ----------
    def list_assignments(self, filters: AssignmentFilters) -> list[Assignment]:
        if (filters.start is None) != (filters.end is None):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="start and end year-month must be given together.",
            )
        if filters.start is not None and filters.end is not None:
            start = checked_month(*filters.start)
            end = checked_month(*filters.end)
            if end < start:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="end year-month must not precede start year-month.",
                )
            return self.repo.list_assignments(
                member_ids=filters.member_ids,
                project_id=filters.project_id,
                from_period=start,
                to_period=end,
            )
        if filters.month is not None and not 1 <= filters.month <= 12:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"month must be within 1..12, got {filters.month}.",
            )
        return self.repo.list_assignments(
            member_ids=filters.member_ids,
            project_id=filters.project_id,
            year=filters.year,
            month=filters.month,
        )

    def get_assignment(self, assignment_id: UUID) -> Assignment:
        assignment = self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found.")
        return assignment

    def _ensure_member_and_project(self, member_id: UUID, project_id: UUID) -> None:
        if self.repo.get_member(member_id) is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="member_id must reference an existing member.",
            )
        if self.repo.get_project(project_id) is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="project_id must reference an existing project.",
            )

    def _upsert_assignment_row(
        self,
        *,
        member_id: UUID,
        project_id: UUID,
        period: YearMonth,
        man_month: Decimal,
    ) -> Assignment:
        row = self.repo.get_assignment_by_key(
            member_id=member_id,
            project_id=project_id,
            year=period.year,
            month=period.month,
        )
        if row is None:
            return self.repo.add_assignment(
                Assignment(
                    member_id=member_id,
                    project_id=project_id,
                    year=period.year,
                    month=period.month,
                    man_month=man_month,
                )
            )
        row.man_month = man_month
        return row

    def upsert_assignment(self, data: AssignmentData) -> Assignment:
        period = checked_month(data.year, data.month)
        man_month = checked_man_month(data.man_month)
        self._ensure_member_and_project(data.member_id, data.project_id)

        row = self._upsert_assignment_row(
            member_id=data.member_id,
            project_id=data.project_id,
            period=period,
            man_month=man_month,
        )
        self._commit("Assignment already exists for this member, project and month.")
        self.db.refresh(row)
        return row

    def upsert_assignment_range(self, data: AssignmentRangeData) -> list[Assignment]:
        """Write the same man-month to every month between the two dates, inclusive."""

        if data.end_date < data.start_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end_date must be greater than or equal to start_date.",
            )
        man_month = checked_man_month(data.man_month)
        self._ensure_member_and_project(data.member_id, data.project_id)

        start = YearMonth.from_date(data.start_date)
        end = YearMonth.from_date(data.end_date)
        limit = self.settings.month_range_limit
        if start.shift(limit - 1) < end:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Date range must not span more than {limit} months.",
            )

        rows: list[Assignment] = []
        try:
            with self.db.begin_nested():
                for period in expand_month_range(start, end, limit=limit):
                    rows.append(
                        self._upsert_assignment_row(
                            member_id=data.member_id,
                            project_id=data.project_id,
                            period=period,
                            man_month=man_month,
                        )
                    )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Bulk assignment save violated uniqueness constraints.",
            ) from exc

        for row in rows:
            self.db.refresh(row)
        return rows

    def update_assignment(self, assignment_id: UUID, data: AssignmentUpdateData) -> Assignment:
        assignment = self.get_assignment(assignment_id)
        target = checked_month(
            data.year if data.year is not None else assignment.year,
            data.month if data.month is not None else assignment.month,
        )
        if data.man_month is not None:
            assignment.man_month = checked_man_month(data.man_month)
        assignment.year = target.year
        assignment.month = target.month

        self._commit("Assignment already exists for this member, project and month.")
        self.db.refresh(assignment)
        return assignment

    def delete_assignment(self, assignment_id: UUID) -> None:
        assignment = self.get_assignment(assignment_id)
        self.repo.delete_assignment(assignment)
        self.db.commit()

    def bulk_schedule(self, project_id: UUID, rows: list[ScheduleRow]) -> int:
        """Upsert a member-by-month grid for one project; all cells or none are saved."""

        project = self.get_project(project_id)
        known_members = {member.id for member in self.repo.list_members()}

        normalized: list[tuple[UUID, YearMonth, Decimal]] = []
        seen: set[tuple[UUID, YearMonth]] = set()
        for row in rows:
            if row.member_id not in known_members:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="member_id must reference an existing member.",
                )
            for value in row.values:
                period = checked_month(value.year, value.month)
                key = (row.member_id, period)
                if key in seen:
                    raise HTTPException(
                        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                        detail="Duplicate member/month cell in bulk payload.",
                    )
                seen.add(key)
                normalized.append((row.member_id, period, checked_man_month(value.man_month)))

        try:
            with self.db.begin_nested():
                for member_id, period, man_month in normalized:
                    self._upsert_assignment_row(
                        member_id=member_id,
                        project_id=project.id,
                        period=period,
                        man_month=man_month,
                    )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Bulk schedule save violated uniqueness constraints.",
            ) from exc

        logger.info("Bulk schedule saved %d cells for project %s", len(normalized), project.id)
        return len(normalized)
