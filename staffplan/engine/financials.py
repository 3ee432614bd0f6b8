"""Project financial aggregation under type-specific accrual rules."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from staffplan.engine.budget import ResolvedBudget
from staffplan.engine.records import (
    ZERO,
    Anomaly,
    AnomalyKind,
    AssignmentRecord,
    MemberRecord,
    ProjectRecord,
    YearMonth,
    to_decimal,
)
from staffplan.engine.utilization import HUNDRED, round_percent
from staffplan.models.entities import ProjectType

HOURS_PER_MONTH = 160
DEFAULT_HOURLY_RATE = Decimal("5000")


@dataclass(frozen=True, slots=True)
class CostPolicy:
    hours_per_month: int = HOURS_PER_MONTH
    default_hourly_rate: Decimal = DEFAULT_HOURLY_RATE


@dataclass(frozen=True, slots=True)
class FinancialTreatment:
    counts_budget: bool
    counts_cost: bool
    uses_monthly_budget: bool

    @property
    def has_profit(self) -> bool:
        return self.counts_budget and self.counts_cost


FINANCIAL_TREATMENT: dict[ProjectType, FinancialTreatment] = {
    ProjectType.DEVELOPMENT: FinancialTreatment(counts_budget=True, counts_cost=True, uses_monthly_budget=False),
    ProjectType.MAINTENANCE: FinancialTreatment(counts_budget=True, counts_cost=True, uses_monthly_budget=True),
    # Cost center: labor is tracked, budget and profit are not applicable.
    ProjectType.MANAGEMENT: FinancialTreatment(counts_budget=False, counts_cost=True, uses_monthly_budget=False),
    ProjectType.OTHER: FinancialTreatment(counts_budget=False, counts_cost=False, uses_monthly_budget=False),
}


def treatment_for(project_type: ProjectType) -> FinancialTreatment:
    try:
        return FINANCIAL_TREATMENT[project_type]
    except KeyError as exc:
        raise ValueError(f"No financial treatment defined for project type {project_type!r}.") from exc


@dataclass(frozen=True, slots=True)
class ProjectFinancials:
    project_id: UUID
    project_type: ProjectType
    budget: Decimal
    budget_is_set: bool
    cost: Decimal
    profit: Decimal
    is_over_budget: bool
    total_man_month: Decimal
    consumption_percent: int
    anomalies: tuple[Anomaly, ...] = ()


@dataclass(frozen=True, slots=True)
class MonthlyCost:
    month: YearMonth
    man_month: Decimal
    cost: Decimal


def assignment_cost(man_month: Decimal, hourly_rate: Decimal, hours_per_month: int = HOURS_PER_MONTH) -> Decimal:
    return to_decimal(hourly_rate) * hours_per_month * to_decimal(man_month)


def dangling_member_anomaly(assignment: AssignmentRecord) -> Anomaly:
    return Anomaly(
        kind=AnomalyKind.DANGLING_MEMBER,
        message=(
            f"Assignment {assignment.year}-{assignment.month} on project {assignment.project_id} "
            f"references unknown member {assignment.member_id}; default hourly rate applied."
        ),
        entity_id=str(assignment.member_id),
    )


def resolve_hourly_rate(
    assignment: AssignmentRecord,
    members: Mapping[UUID, MemberRecord],
    policy: CostPolicy,
    anomalies: list[Anomaly],
) -> Decimal:
    """Member rate, or the policy default when the member or rate is unusable."""

    member = members.get(assignment.member_id)
    if member is None:
        anomalies.append(dangling_member_anomaly(assignment))
        return to_decimal(policy.default_hourly_rate)

    if member.hourly_rate is None or to_decimal(member.hourly_rate) < ZERO:
        anomalies.append(
            Anomaly(
                kind=AnomalyKind.MISSING_RATE,
                message=f"Member {member.name} has no usable hourly rate; default hourly rate applied.",
                entity_id=str(member.id),
            )
        )
        return to_decimal(policy.default_hourly_rate)

    return to_decimal(member.hourly_rate)


def labor_cost(
    assignments: Iterable[AssignmentRecord],
    members: Mapping[UUID, MemberRecord],
    policy: CostPolicy,
    anomalies: list[Anomaly],
) -> tuple[Decimal, Decimal]:
    """Return (cost, man-months) summed over the assignments."""

    cost = ZERO
    man_months = ZERO
    for assignment in assignments:
        rate = resolve_hourly_rate(assignment, members, policy, anomalies)
        cost += assignment_cost(assignment.man_month, rate, policy.hours_per_month)
        man_months += to_decimal(assignment.man_month)
    return cost, man_months


def compute_project_financials(
    project: ProjectRecord,
    assignments: Iterable[AssignmentRecord],
    resolved_budget: ResolvedBudget | None,
    *,
    members: Mapping[UUID, MemberRecord],
    policy: CostPolicy = CostPolicy(),
) -> ProjectFinancials:
    """Budget, cost and profit for one project.

    Maintenance projects take their budget from ``resolved_budget``; other
    budgeted types use the base budget as a one-shot total. Management counts
    cost only and Other counts nothing.
    """

    treatment = treatment_for(project.type)
    anomalies: list[Anomaly] = []
    own_assignments = [row for row in assignments if row.project_id == project.id]
    if treatment.counts_cost:
        cost, man_months = labor_cost(own_assignments, members, policy, anomalies)
    else:
        cost = ZERO
        man_months = sum((to_decimal(row.man_month) for row in own_assignments), ZERO)

    budget = ZERO
    budget_is_set = False
    if treatment.counts_budget:
        if treatment.uses_monthly_budget:
            if resolved_budget is None:
                raise ValueError("Maintenance projects require a resolved monthly budget.")
            budget = resolved_budget.total
            budget_is_set = resolved_budget.is_set
        else:
            budget = to_decimal(project.budget) if project.budget is not None else ZERO
            budget_is_set = project.budget is not None

    profit = budget - cost if treatment.has_profit else ZERO
    consumption = ZERO if budget == ZERO else min(cost / budget * HUNDRED, HUNDRED)

    return ProjectFinancials(
        project_id=project.id,
        project_type=project.type,
        budget=budget,
        budget_is_set=budget_is_set,
        cost=cost,
        profit=profit,
        is_over_budget=treatment.has_profit and budget_is_set and profit < ZERO,
        total_man_month=man_months,
        consumption_percent=round_percent(consumption),
        anomalies=tuple(anomalies),
    )


def monthly_cost_breakdown(
    project: ProjectRecord,
    assignments: Iterable[AssignmentRecord],
    months: Iterable[YearMonth],
    *,
    members: Mapping[UUID, MemberRecord],
    policy: CostPolicy = CostPolicy(),
    anomalies: list[Anomaly] | None = None,
) -> list[MonthlyCost]:
    """Man-months and labor cost per month, zero-filled for months without work.

    Rate fallbacks are appended to ``anomalies`` when a list is passed.
    """

    treatment = treatment_for(project.type)
    if anomalies is None:
        anomalies = []
    by_month: dict[YearMonth, list[AssignmentRecord]] = {}
    for row in assignments:
        if row.project_id != project.id:
            continue
        by_month.setdefault(row.period, []).append(row)

    output: list[MonthlyCost] = []
    for month in months:
        rows = by_month.get(YearMonth(*month), [])
        cost, man_months = labor_cost(rows, members, policy, anomalies)
        if not treatment.counts_cost:
            cost = ZERO
        output.append(MonthlyCost(month=YearMonth(*month), man_month=man_months, cost=cost))
    return output
