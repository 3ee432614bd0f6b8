"""Fleet-wide rollups composed from utilization, budget and financial calculators."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from staffplan.engine.budget import ResolvedBudget, relevant_months, resolve_monthly_budget
from staffplan.engine.financials import (
    CostPolicy,
    ProjectFinancials,
    compute_project_financials,
    dangling_member_anomaly,
    treatment_for,
)
from staffplan.engine.months import (
    MONTH_RANGE_LIMIT,
    OpenEnded,
    OpenEndedPolicy,
    fiscal_year_months,
    fiscal_year_of,
    validate_month,
)
from staffplan.engine.records import (
    ZERO,
    Anomaly,
    AnomalyKind,
    AssignmentRecord,
    BudgetOverrideRecord,
    InvalidRecordError,
    MemberRecord,
    ProjectRecord,
    YearMonth,
    to_decimal,
)
from staffplan.engine.utilization import DISPLAY_CEILING, HUNDRED, Utilization, compute_utilization, round_percent
from staffplan.models.entities import ProjectStatus


@dataclass(frozen=True, slots=True)
class ReportingWindow:
    """Reporting frame for a rollup; ``as_of`` stands in for "now"."""

    as_of: date
    fiscal_year: int | None = None
    include_prospective_in_grid: bool = False
    include_prospective_in_totals: bool = True

    @property
    def current_month(self) -> YearMonth:
        return YearMonth.from_date(self.as_of)

    @property
    def effective_fiscal_year(self) -> int:
        if self.fiscal_year is not None:
            return self.fiscal_year
        return fiscal_year_of(self.as_of)


@dataclass(frozen=True, slots=True)
class ScreenedRecords:
    members: dict[UUID, MemberRecord]
    projects: dict[UUID, ProjectRecord]
    assignments: list[AssignmentRecord]
    overrides: list[BudgetOverrideRecord]
    anomalies: list[Anomaly]


@dataclass(frozen=True, slots=True)
class MemberUtilization:
    member: MemberRecord
    month: YearMonth
    utilization: Utilization
    assignments: tuple[AssignmentRecord, ...] = ()
    has_prospective: bool = False


@dataclass(frozen=True, slots=True)
class OverAllocation:
    member: MemberRecord
    month: YearMonth
    utilization: Utilization
    display_percent: int


@dataclass(frozen=True, slots=True)
class FiscalGridRow:
    member: MemberRecord
    cells: tuple[MemberUtilization, ...]


@dataclass(frozen=True, slots=True)
class PortfolioTotals:
    total_budget: Decimal
    total_cost: Decimal
    total_profit: Decimal
    profit_rate_percent: int


@dataclass(frozen=True, slots=True)
class FleetRollup:
    as_of: date
    current_month: YearMonth
    average_utilization_percent: int
    current_month_utilization: tuple[MemberUtilization, ...]
    over_allocations: tuple[OverAllocation, ...]
    fiscal_year: int
    fiscal_months: tuple[YearMonth, ...]
    fiscal_grid: tuple[FiscalGridRow, ...]
    project_financials: tuple[ProjectFinancials, ...]
    totals: PortfolioTotals
    anomalies: tuple[Anomaly, ...]


def _member_sort_key(member: MemberRecord) -> tuple[int, str]:
    return (member.sort_order, member.name)


def _project_sort_key(project: ProjectRecord) -> tuple[int, str]:
    return (project.sort_order, project.name)


# ---------- Screening ----------
def screen_records(
    members: Iterable[MemberRecord],
    projects: Iterable[ProjectRecord],
    assignments: Iterable[AssignmentRecord],
    overrides: Iterable[BudgetOverrideRecord] = (),
) -> ScreenedRecords:
    """Drop or default malformed records, recording one anomaly per record.

    Assignments with an invalid month, a negative man-month or an unknown
    project are skipped. Assignments of unknown members are kept so their cost
    is still counted at the default rate. Negative capacity is treated as zero.
    A project dated before year 1000 keeps its assignments and overrides but
    loses its date range.
    """

    anomalies: list[Anomaly] = []

    member_map: dict[UUID, MemberRecord] = {}
    for member in members:
        if to_decimal(member.work_capacity) < ZERO:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.NEGATIVE_CAPACITY,
                    message=f"Member {member.name} has negative work capacity; treated as zero.",
                    entity_id=str(member.id),
                )
            )
            member = replace(member, work_capacity=ZERO)
        member_map[member.id] = member

    project_map: dict[UUID, ProjectRecord] = {}
    for project in projects:
        bad_dates = [
            value for value in (project.start_date, project.end_date) if value is not None and value.year < 1000
        ]
        if bad_dates:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.INVALID_DATE,
                    message=(
                        f"Project {project.name} has a date outside four-digit years "
                        f"({bad_dates[0].isoformat()}); its date range is ignored."
                    ),
                    entity_id=str(project.id),
                )
            )
            project = replace(project, start_date=None, end_date=None)
        project_map[project.id] = project

    kept_assignments: list[AssignmentRecord] = []
    for row in assignments:
        try:
            validate_month(row.year, row.month)
        except InvalidRecordError as exc:
            anomalies.append(
                Anomaly(kind=AnomalyKind.INVALID_MONTH, message=f"Assignment skipped: {exc}", entity_id=str(row.member_id))
            )
            continue
        if to_decimal(row.man_month) < ZERO:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.NEGATIVE_MAN_MONTH,
                    message=f"Assignment {row.year}-{row.month} skipped: negative man-month {row.man_month}.",
                    entity_id=str(row.member_id),
                )
            )
            continue
        if row.project_id not in project_map:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.DANGLING_PROJECT,
                    message=f"Assignment {row.year}-{row.month} skipped: unknown project {row.project_id}.",
                    entity_id=str(row.project_id),
                )
            )
            continue
        if row.member_id not in member_map:
            anomalies.append(dangling_member_anomaly(row))
        kept_assignments.append(row)

    kept_overrides: list[BudgetOverrideRecord] = []
    for row in overrides:
        try:
            validate_month(row.year, row.month)
        except InvalidRecordError as exc:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.INVALID_MONTH,
                    message=f"Monthly budget skipped: {exc}",
                    entity_id=str(row.project_id),
                )
            )
            continue
        kept_overrides.append(row)

    return ScreenedRecords(
        members=member_map,
        projects=project_map,
        assignments=kept_assignments,
        overrides=kept_overrides,
        anomalies=anomalies,
    )


# ---------- Utilization views ----------
def _group_by_member_month(
    assignments: Iterable[AssignmentRecord],
) -> dict[tuple[UUID, YearMonth], list[AssignmentRecord]]:
    grouped: dict[tuple[UUID, YearMonth], list[AssignmentRecord]] = {}
    for row in assignments:
        grouped.setdefault((row.member_id, row.period), []).append(row)
    return grouped


def _member_cell(
    member: MemberRecord,
    month: YearMonth,
    rows: list[AssignmentRecord],
    projects: Mapping[UUID, ProjectRecord],
    include_prospective: bool,
) -> MemberUtilization:
    has_prospective = False
    counted: list[AssignmentRecord] = []
    for row in rows:
        project = projects.get(row.project_id)
        if project is None:
            continue
        if project.status is ProjectStatus.PROSPECTIVE:
            has_prospective = True
            if not include_prospective:
                continue
        counted.append(row)
    return MemberUtilization(
        member=member,
        month=month,
        utilization=compute_utilization(member.work_capacity, (row.man_month for row in counted)),
        assignments=tuple(counted),
        has_prospective=has_prospective,
    )


def member_month_utilization(
    members: Iterable[MemberRecord],
    projects: Mapping[UUID, ProjectRecord],
    assignments: Iterable[AssignmentRecord],
    month: YearMonth,
    *,
    include_prospective: bool = True,
) -> list[MemberUtilization]:
    """Utilization of every member for one month, in display order."""

    month = YearMonth(*month)
    grouped = _group_by_member_month(row for row in assignments if row.period == month)
    return [
        _member_cell(member, month, grouped.get((member.id, month), []), projects, include_prospective)
        for member in sorted(members, key=_member_sort_key)
    ]


def average_utilization_percent(cells: Iterable[MemberUtilization]) -> int:
    """Mean utilization across members; zero-capacity members count as 0 %."""

    percents = [cell.utilization.rate * HUNDRED for cell in cells]
    if not percents:
        return 0
    return round_percent(sum(percents, ZERO) / len(percents))


def over_allocation_history(
    members: Mapping[UUID, MemberRecord],
    assignments: Iterable[AssignmentRecord],
    *,
    display_ceiling: int = DISPLAY_CEILING,
) -> list[OverAllocation]:
    """Every (member, month) whose allocation exceeds capacity, across all history."""

    found: list[OverAllocation] = []
    for (member_id, month), rows in _group_by_member_month(assignments).items():
        member = members.get(member_id)
        if member is None:
            continue
        utilization = compute_utilization(member.work_capacity, (row.man_month for row in rows))
        if not utilization.is_over_allocated:
            continue
        found.append(
            OverAllocation(
                member=member,
                month=month,
                utilization=utilization,
                display_percent=utilization.display_percent(display_ceiling),
            )
        )
    found.sort(key=lambda item: (item.month, _member_sort_key(item.member)))
    return found


def fiscal_year_grid(
    members: Iterable[MemberRecord],
    projects: Mapping[UUID, ProjectRecord],
    assignments: Iterable[AssignmentRecord],
    fiscal_year: int,
    *,
    include_prospective: bool = False,
) -> list[FiscalGridRow]:
    """Twelve utilization cells (October through September) per member."""

    months = fiscal_year_months(fiscal_year)
    month_set = set(months)
    grouped = _group_by_member_month(row for row in assignments if row.period in month_set)
    return [
        FiscalGridRow(
            member=member,
            cells=tuple(
                _member_cell(member, month, grouped.get((member.id, month), []), projects, include_prospective)
                for month in months
            ),
        )
        for member in sorted(members, key=_member_sort_key)
    ]


# ---------- Financial views ----------
def resolve_project_budget(
    project: ProjectRecord,
    assignments: Iterable[AssignmentRecord],
    overrides: Iterable[BudgetOverrideRecord],
    *,
    as_of: date,
    month_limit: int = MONTH_RANGE_LIMIT,
) -> ResolvedBudget:
    """Monthly budget over the project's relevant months.

    Open-ended projects are budgeted up to the end of the fiscal year that
    contains ``as_of``.
    """

    own_overrides = [row for row in overrides if row.project_id == project.id]
    months = relevant_months(
        project,
        (row.period for row in assignments if row.project_id == project.id),
        (row.period for row in own_overrides),
        open_ended=OpenEnded(as_of=as_of, policy=OpenEndedPolicy.FISCAL_YEAR),
        limit=month_limit,
    )
    return resolve_monthly_budget(project, own_overrides, months)


def project_financials(
    project: ProjectRecord,
    assignments: Iterable[AssignmentRecord],
    overrides: Iterable[BudgetOverrideRecord],
    *,
    members: Mapping[UUID, MemberRecord],
    as_of: date,
    policy: CostPolicy = CostPolicy(),
    month_limit: int = MONTH_RANGE_LIMIT,
) -> ProjectFinancials:
    own_assignments = [row for row in assignments if row.project_id == project.id]
    resolved: ResolvedBudget | None = None
    if treatment_for(project.type).uses_monthly_budget:
        resolved = resolve_project_budget(
            project,
            own_assignments,
            overrides,
            as_of=as_of,
            month_limit=month_limit,
        )
    return compute_project_financials(project, own_assignments, resolved, members=members, policy=policy)


def portfolio_totals(financials: Iterable[ProjectFinancials]) -> PortfolioTotals:
    total_budget = ZERO
    total_cost = ZERO
    for row in financials:
        total_budget += row.budget
        total_cost += row.cost
    total_profit = total_budget - total_cost
    profit_rate = ZERO if total_budget == ZERO else total_profit / total_budget * HUNDRED
    return PortfolioTotals(
        total_budget=total_budget,
        total_cost=total_cost,
        total_profit=total_profit,
        profit_rate_percent=round_percent(profit_rate),
    )


# ---------- Composition ----------
def compute_fleet_rollup(
    members: Iterable[MemberRecord],
    projects: Iterable[ProjectRecord],
    assignments: Iterable[AssignmentRecord],
    overrides: Iterable[BudgetOverrideRecord],
    window: ReportingWindow,
    *,
    policy: CostPolicy = CostPolicy(),
    display_ceiling: int = DISPLAY_CEILING,
    month_limit: int = MONTH_RANGE_LIMIT,
) -> FleetRollup:
    """Dashboard and summary figures for the whole organization.

    Over-allocation history and portfolio totals span all recorded months; the
    average utilization uses the as-of month; the grid uses the window's fiscal
    year. Bad records never abort the rollup, they surface as anomalies.
    """

    screened = screen_records(members, projects, assignments, overrides)
    anomalies = list(screened.anomalies)
    member_list = list(screened.members.values())

    current = member_month_utilization(
        member_list,
        screened.projects,
        screened.assignments,
        window.current_month,
        include_prospective=True,
    )
    history = over_allocation_history(
        screened.members,
        screened.assignments,
        display_ceiling=display_ceiling,
    )

    fiscal_year = window.effective_fiscal_year
    grid = fiscal_year_grid(
        member_list,
        screened.projects,
        screened.assignments,
        fiscal_year,
        include_prospective=window.include_prospective_in_grid,
    )

    by_project: dict[UUID, list[AssignmentRecord]] = {}
    for row in screened.assignments:
        by_project.setdefault(row.project_id, []).append(row)

    financials: list[ProjectFinancials] = []
    for project in sorted(screened.projects.values(), key=_project_sort_key):
        if project.status is ProjectStatus.PROSPECTIVE and not window.include_prospective_in_totals:
            continue
        result = project_financials(
            project,
            by_project.get(project.id, []),
            screened.overrides,
            members=screened.members,
            as_of=window.as_of,
            policy=policy,
            month_limit=month_limit,
        )
        anomalies.extend(result.anomalies)
        financials.append(result)

    return FleetRollup(
        as_of=window.as_of,
        current_month=window.current_month,
        average_utilization_percent=average_utilization_percent(current),
        current_month_utilization=tuple(current),
        over_allocations=tuple(history),
        fiscal_year=fiscal_year,
        fiscal_months=tuple(fiscal_year_months(fiscal_year)),
        fiscal_grid=tuple(grid),
        project_financials=tuple(financials),
        totals=portfolio_totals(financials),
        anomalies=tuple(dict.fromkeys(anomalies)),
    )
