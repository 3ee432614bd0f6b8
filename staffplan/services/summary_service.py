"""Read-side service: dashboard, utilization summaries, project financials and exports."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO
from uuid import UUID

from fastapi import HTTPException, status
from openpyxl import Workbook
from sqlalchemy.orm import Session

from staffplan.core.config import get_settings
from staffplan.engine.budget import relevant_months, resolve_monthly_budget
from staffplan.engine.financials import (
    CostPolicy,
    ProjectFinancials,
    compute_project_financials,
    monthly_cost_breakdown,
    treatment_for,
)
from staffplan.engine.months import OpenEnded, OpenEndedPolicy, fiscal_year_months, fiscal_year_of
from staffplan.engine.records import (
    Anomaly,
    AssignmentRecord,
    BudgetOverrideRecord,
    MemberRecord,
    ProjectRecord,
    YearMonth,
    to_decimal,
)
from staffplan.engine.rollup import (
    MemberUtilization,
    ReportingWindow,
    ScreenedRecords,
    compute_fleet_rollup,
    fiscal_year_grid,
    member_month_utilization,
    portfolio_totals,
    project_financials,
    screen_records,
)
from staffplan.models.entities import Assignment, Member, MonthlyBudget, Project, ProjectStatus
from staffplan.repositories.planning_repository import PlanningRepository
from staffplan.services.planning_service import (
    PlanningService,
    ProjectFilters,
    checked_month,
    man_month_value,
    money_value,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {"csv", "xlsx"}


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def to_member_record(member: Member) -> MemberRecord:
    return MemberRecord(
        id=member.id,
        name=member.name,
        hourly_rate=Decimal(member.hourly_rate),
        work_capacity=to_decimal(member.work_capacity),
        role=member.role,
        sort_order=member.sort_order,
    )


def to_project_record(project: Project) -> ProjectRecord:
    return ProjectRecord(
        id=project.id,
        name=project.name,
        type=project.type,
        status=project.status,
        budget=None if project.budget is None else Decimal(project.budget),
        start_date=project.start_date,
        end_date=project.end_date,
        sort_order=project.sort_order,
    )


def to_assignment_record(assignment: Assignment) -> AssignmentRecord:
    return AssignmentRecord(
        member_id=assignment.member_id,
        project_id=assignment.project_id,
        year=assignment.year,
        month=assignment.month,
        man_month=to_decimal(assignment.man_month),
    )


def to_override_record(row: MonthlyBudget) -> BudgetOverrideRecord:
    return BudgetOverrideRecord(
        project_id=row.project_id,
        year=row.year,
        month=row.month,
        amount=Decimal(row.amount),
    )


def _month_payload(month: YearMonth) -> dict[str, object]:
    return {"year": month.year, "month": month.month, "key": month.key}


class SummaryService:
    """Loads planning records, runs the aggregation engine and shapes the results."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = PlanningRepository(db)
        self.settings = get_settings()
        self.policy = CostPolicy(
            hours_per_month=self.settings.hours_per_month,
            default_hourly_rate=Decimal(self.settings.default_hourly_rate),
        )

    # ---------- Loading ----------
    def _load(self) -> tuple[list[MemberRecord], list[ProjectRecord], list[AssignmentRecord], list[BudgetOverrideRecord]]:
        members = [to_member_record(row) for row in self.repo.list_members()]
        projects = [to_project_record(row) for row in self.repo.list_projects()]
        assignments = [to_assignment_record(row) for row in self.repo.list_all_assignments()]
        overrides = [to_override_record(row) for row in self.repo.list_monthly_budgets()]
        return members, projects, assignments, overrides

    def _screened(self) -> ScreenedRecords:
        return screen_records(*self._load())

    @staticmethod
    def _warnings(anomalies: Iterable[Anomaly]) -> list[dict[str, object]]:
        warnings: list[dict[str, object]] = []
        for anomaly in dict.fromkeys(anomalies):
            logger.warning("%s: %s", anomaly.kind.value, anomaly.message)
            warnings.append(
                {
                    "kind": anomaly.kind.value,
                    "message": anomaly.message,
                    "entity_id": anomaly.entity_id,
                }
            )
        return warnings

    # ---------- Serialization ----------
    @staticmethod
    def serialize_utilization_cell(cell: MemberUtilization, display_ceiling: int) -> dict[str, object]:
        utilization = cell.utilization
        return {
            **_month_payload(cell.month),
            "total_man_month": man_month_value(utilization.total_man_month),
            "utilization_percent": utilization.utilization_percent,
            "display_percent": utilization.display_percent(display_ceiling),
            "status": utilization.status,
            "is_over_allocated": utilization.is_over_allocated,
            "has_prospective": cell.has_prospective,
        }

    @staticmethod
    def serialize_financials(financials: ProjectFinancials) -> dict[str, object]:
        return {
            "budget": money_value(financials.budget),
            "budget_is_set": financials.budget_is_set,
            "cost": money_value(financials.cost),
            "profit": money_value(financials.profit),
            "is_over_budget": financials.is_over_budget,
            "total_man_month": man_month_value(financials.total_man_month),
            "consumption_percent": financials.consumption_percent,
        }

    # ---------- Dashboard ----------
    def dashboard(self, as_of: date | None = None) -> dict[str, object]:
        as_of = as_of or date.today()
        members, projects, assignments, overrides = self._load()
        rollup = compute_fleet_rollup(
            members,
            projects,
            assignments,
            overrides,
            ReportingWindow(as_of=as_of),
            policy=self.policy,
            display_ceiling=self.settings.utilization_display_ceiling,
            month_limit=self.settings.month_range_limit,
        )

        prospective = self.repo.list_projects(project_status=ProjectStatus.PROSPECTIVE)
        upcoming_end = self.repo.list_projects_ending_between(
            from_day=as_of,
            to_day=as_of + timedelta(days=self.settings.upcoming_end_window_days),
        )
        counts = self.repo.assignment_counts_by_project({project.id for project in upcoming_end})

        return {
            "as_of": as_of.isoformat(),
            "summary": {
                "active_projects": self.repo.count_active_projects(as_of),
                "prospective_projects": len(prospective),
                "overall_utilization": rollup.average_utilization_percent,
                "over_allocated_count": len(rollup.over_allocations),
                "total_budget": money_value(rollup.totals.total_budget),
                "total_cost": money_value(rollup.totals.total_cost),
                "total_profit": money_value(rollup.totals.total_profit),
                "profit_rate_percent": rollup.totals.profit_rate_percent,
            },
            "alerts": {
                "over_allocated": [
                    {
                        "member_id": str(item.member.id),
                        "member_name": item.member.name,
                        **_month_payload(item.month),
                        "utilization": item.display_percent,
                        "total_man_month": man_month_value(item.utilization.total_man_month),
                        "work_capacity": man_month_value(item.utilization.capacity),
                    }
                    for item in rollup.over_allocations
                ],
            },
            "projects": {
                "prospective": [PlanningService.serialize_project(project) for project in prospective],
                "upcoming_end": [
                    PlanningService.serialize_project(project, counts.get(project.id, 0))
                    for project in upcoming_end
                ],
            },
            "warnings": self._warnings(rollup.anomalies),
        }

    def dashboard_stats(self, as_of: date | None = None) -> dict[str, object]:
        as_of = as_of or date.today()
        current = YearMonth.from_date(as_of)
        screened = self._screened()
        cells = member_month_utilization(
            screened.members.values(),
            screened.projects,
            screened.assignments,
            current,
            include_prospective=True,
        )
        return {
            "as_of": as_of.isoformat(),
            "member_count": self.repo.count_members(),
            "project_count": self.repo.count_projects(),
            "active_assignments": len(self.repo.list_assignments(year=current.year, month=current.month)),
            "warning_count": sum(1 for cell in cells if cell.utilization.is_over_allocated),
            "warnings": self._warnings(screened.anomalies),
        }

    # ---------- Utilization summaries ----------
    def member_month_summary(self, year: int, month: int) -> dict[str, object]:
        """Per-member utilization for one month; prospective work is listed but not counted."""

        period = checked_month(year, month)
        screened = self._screened()
        cells = member_month_utilization(
            screened.members.values(),
            screened.projects,
            screened.assignments,
            period,
            include_prospective=False,
        )

        rows_by_member: dict[UUID, list[AssignmentRecord]] = {}
        for row in screened.assignments:
            if row.period == period:
                rows_by_member.setdefault(row.member_id, []).append(row)

        ceiling = self.settings.utilization_display_ceiling
        members: list[dict[str, object]] = []
        for cell in cells:
            member_rows = []
            for row in rows_by_member.get(cell.member.id, []):
                project = screened.projects[row.project_id]
                member_rows.append(
                    {
                        "project_id": str(project.id),
                        "project_name": project.name,
                        "project_status": project.status.value,
                        "man_month": man_month_value(row.man_month),
                        "counted": project.status is not ProjectStatus.PROSPECTIVE,
                    }
                )
            members.append(
                {
                    "member_id": str(cell.member.id),
                    "member_name": cell.member.name,
                    "role": cell.member.role,
                    "work_capacity": man_month_value(cell.member.work_capacity),
                    **self.serialize_utilization_cell(cell, ceiling),
                    "assignments": member_rows,
                }
            )

        return {
            "year": period.year,
            "month": period.month,
            "members": members,
            "warnings": self._warnings(screened.anomalies),
        }

    def fiscal_year_summary(
        self,
        fiscal_year: int | None = None,
        *,
        include_prospective: bool = False,
        as_of: date | None = None,
    ) -> dict[str, object]:
        """Twelve-month utilization grid per member, October through September."""

        if fiscal_year is None:
            fiscal_year = fiscal_year_of(as_of or date.today())
        if not 1000 <= fiscal_year <= 9998:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="fiscal_year must be a four-digit calendar year.",
            )

        screened = self._screened()
        grid = fiscal_year_grid(
            screened.members.values(),
            screened.projects,
            screened.assignments,
            fiscal_year,
            include_prospective=include_prospective,
        )
        ceiling = self.settings.utilization_display_ceiling
        return {
            "fiscal_year": fiscal_year,
            "include_prospective": include_prospective,
            "months": [_month_payload(month) for month in fiscal_year_months(fiscal_year)],
            "members": [
                {
                    "member_id": str(row.member.id),
                    "member_name": row.member.name,
                    "role": row.member.role,
                    "work_capacity": man_month_value(row.member.work_capacity),
                    "cells": [self.serialize_utilization_cell(cell, ceiling) for cell in row.cells],
                }
                for row in grid
            ],
            "warnings": self._warnings(screened.anomalies),
        }

    # ---------- Project financials ----------
    def project_summaries(self, filters: ProjectFilters, *, as_of: date | None = None) -> dict[str, object]:
        """Budget, cost and profit of every project matching the list filters."""

        as_of = as_of or date.today()
        listed = PlanningService(self.db).list_projects(filters, today=as_of)
        screened = self._screened()
        names = {member.id: member.name for member in screened.members.values()}

        by_project: dict[UUID, list[AssignmentRecord]] = {}
        for row in screened.assignments:
            by_project.setdefault(row.project_id, []).append(row)

        anomalies = list(screened.anomalies)
        results: list[ProjectFinancials] = []
        projects_payload: list[dict[str, object]] = []
        for project in listed:
            record = screened.projects[project.id]
            own = by_project.get(project.id, [])
            financials = project_financials(
                record,
                own,
                screened.overrides,
                members=screened.members,
                as_of=as_of,
                policy=self.policy,
                month_limit=self.settings.month_range_limit,
            )
            anomalies.extend(financials.anomalies)
            results.append(financials)
            member_names = sorted({names[row.member_id] for row in own if row.member_id in names})
            projects_payload.append(
                {
                    **PlanningService.serialize_project(project, len(own)),
                    **self.serialize_financials(financials),
                    "member_names": member_names,
                }
            )

        totals = portfolio_totals(results)
        return {
            "as_of": as_of.isoformat(),
            "projects": projects_payload,
            "totals": {
                "total_budget": money_value(totals.total_budget),
                "total_cost": money_value(totals.total_cost),
                "total_profit": money_value(totals.total_profit),
                "profit_rate_percent": totals.profit_rate_percent,
            },
            "warnings": self._warnings(anomalies),
        }

    def project_detail(self, project_id: UUID, *, as_of: date | None = None) -> dict[str, object]:
        """Month grid for one project: budget, per-member man-months and labor cost.

        Open-ended projects extend a few months past the later of ``as_of`` and
        their last assignment.
        """

        as_of = as_of or date.today()
        project = PlanningService(self.db).get_project(project_id)
        screened = self._screened()
        record = screened.projects[project.id]
        own = [row for row in screened.assignments if row.project_id == project.id]
        own_overrides = [row for row in screened.overrides if row.project_id == project.id]

        months = relevant_months(
            record,
            (row.period for row in own),
            (row.period for row in own_overrides),
            open_ended=OpenEnded(
                as_of=as_of,
                policy=OpenEndedPolicy.DETAIL_VIEW,
                last_known=max((row.period for row in own), default=None),
                buffer_months=self.settings.open_ended_buffer_months,
            ),
            limit=self.settings.month_range_limit,
        )
        if not months:
            months = [YearMonth.from_date(as_of)]

        treatment = treatment_for(record.type)
        resolved = resolve_monthly_budget(record, own_overrides, months)
        financials = compute_project_financials(
            record,
            own,
            resolved if treatment.uses_monthly_budget else None,
            members=screened.members,
            policy=self.policy,
        )
        breakdown_anomalies: list[Anomaly] = []
        breakdown = monthly_cost_breakdown(
            record,
            own,
            months,
            members=screened.members,
            policy=self.policy,
            anomalies=breakdown_anomalies,
        )

        member_rows: list[dict[str, object]] = []
        by_member: dict[UUID, dict[YearMonth, AssignmentRecord]] = {}
        for row in own:
            by_member.setdefault(row.member_id, {})[row.period] = row
        ordered_members = sorted(
            (screened.members[member_id] for member_id in by_member if member_id in screened.members),
            key=lambda member: (member.sort_order, member.name),
        )
        for member in ordered_members:
            member_breakdown = monthly_cost_breakdown(
                record,
                by_member[member.id].values(),
                months,
                members=screened.members,
                policy=self.policy,
            )
            member_cost = sum((item.cost for item in member_breakdown), Decimal("0"))
            cells = [
                {
                    **_month_payload(item.month),
                    "man_month": man_month_value(item.man_month),
                    "cost": money_value(item.cost),
                }
                for item in member_breakdown
            ]
            member_rows.append(
                {
                    "member_id": str(member.id),
                    "member_name": member.name,
                    "hourly_rate": money_value(member.hourly_rate),
                    "cells": cells,
                    "total_cost": money_value(member_cost),
                }
            )

        return {
            "project": PlanningService.serialize_project(project, len(own)),
            "as_of": as_of.isoformat(),
            "months": [
                {
                    **_month_payload(item.month),
                    "budget": money_value(resolved.per_month[item.month]) if treatment.uses_monthly_budget else None,
                    "has_override": any(row.period == item.month for row in own_overrides),
                    "man_month": man_month_value(item.man_month),
                    "cost": money_value(item.cost),
                }
                for item in breakdown
            ],
            "members": member_rows,
            "financials": self.serialize_financials(financials),
            "warnings": self._warnings([*screened.anomalies, *financials.anomalies, *breakdown_anomalies]),
        }

    # ---------- Exports ----------
    @staticmethod
    def _render_export(
        rows: list[dict[str, object]],
        fieldnames: list[str],
        *,
        format_name: str,
        base_filename: str,
        sheet_title: str,
    ) -> ExportFilePayload:
        normalized_format = format_name.strip().lower()
        if normalized_format not in EXPORT_FORMATS:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="format must be one of: csv, xlsx.",
            )

        if normalized_format == "csv":
            sio = io.StringIO()
            writer = csv.DictWriter(sio, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
            return ExportFilePayload(
                media_type="text/csv; charset=utf-8",
                filename=f"{base_filename}.csv",
                content=sio.getvalue().encode("utf-8"),
            )

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = sheet_title
        sheet.append(fieldnames)
        for row in rows:
            sheet.append([row.get(column, "") for column in fieldnames])

        output = BytesIO()
        workbook.save(output)
        return ExportFilePayload(
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=f"{base_filename}.xlsx",
            content=output.getvalue(),
        )

    def export_fiscal_year(
        self,
        *,
        format_name: str,
        fiscal_year: int | None = None,
        include_prospective: bool = False,
        as_of: date | None = None,
    ) -> ExportFilePayload:
        summary = self.fiscal_year_summary(fiscal_year, include_prospective=include_prospective, as_of=as_of)
        month_keys = [str(month["key"]) for month in summary["months"]]
        fieldnames = ["member_name", "role", "work_capacity", *month_keys]

        rows: list[dict[str, object]] = []
        for member in summary["members"]:
            record: dict[str, object] = {
                "member_name": member["member_name"],
                "role": member["role"],
                "work_capacity": member["work_capacity"],
            }
            for cell in member["cells"]:
                record[str(cell["key"])] = cell["utilization_percent"]
            rows.append(record)

        return self._render_export(
            rows,
            fieldnames,
            format_name=format_name,
            base_filename=f"fiscal-year-{summary['fiscal_year']}",
            sheet_title="utilization",
        )

    def export_project_summaries(
        self,
        *,
        format_name: str,
        filters: ProjectFilters,
        as_of: date | None = None,
    ) -> ExportFilePayload:
        summary = self.project_summaries(filters, as_of=as_of)
        fieldnames = [
            "name",
            "type",
            "status",
            "start_date",
            "end_date",
            "budget",
            "cost",
            "profit",
            "consumption_percent",
            "total_man_month",
            "is_over_budget",
        ]
        rows = [
            {
                column: "" if project.get(column) is None else project.get(column)
                for column in fieldnames
            }
            for project in summary["projects"]
        ]
        return self._render_export(
            rows,
            fieldnames,
            format_name=format_name,
            base_filename=f"project-summaries-{summary['as_of']}",
            sheet_title="projects",
        )
