"""Monthly budget resolution for projects with month-varying contract value."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from staffplan.engine.months import MONTH_RANGE_LIMIT, OpenEnded, expand_month_range
from staffplan.engine.records import ZERO, BudgetOverrideRecord, ProjectRecord, YearMonth, to_decimal


@dataclass(frozen=True, slots=True)
class ResolvedBudget:
    per_month: dict[YearMonth, Decimal] = field(default_factory=dict)
    total: Decimal = ZERO
    # False when neither a base budget nor any override exists ("unset").
    is_set: bool = False


def date_range_months(
    project: ProjectRecord,
    *,
    open_ended: OpenEnded | None = None,
    limit: int = MONTH_RANGE_LIMIT,
) -> list[YearMonth]:
    """Months covered by the project's start/end dates.

    A missing start contributes nothing. A missing end contributes only when the
    caller supplies an ``OpenEnded`` policy.
    """

    if project.start_date is None:
        return []
    start = YearMonth.from_date(project.start_date)
    if project.end_date is not None:
        return expand_month_range(start, YearMonth.from_date(project.end_date), limit=limit)
    if open_ended is None:
        return []
    return expand_month_range(start, open_ended, limit=limit)


def relevant_months(
    project: ProjectRecord,
    assignment_months: Iterable[YearMonth],
    override_months: Iterable[YearMonth],
    *,
    open_ended: OpenEnded | None = None,
    limit: int = MONTH_RANGE_LIMIT,
) -> list[YearMonth]:
    """Union of date-range months, assigned months and overridden months, ascending."""

    months = set(date_range_months(project, open_ended=open_ended, limit=limit))
    months.update(YearMonth(*month) for month in assignment_months)
    months.update(YearMonth(*month) for month in override_months)
    return sorted(months)


def override_tier(month: YearMonth, overrides: Mapping[YearMonth, Decimal]) -> Decimal | None:
    return overrides.get(month)


def base_budget_tier(base_budget: Decimal | None) -> Decimal | None:
    if base_budget is None:
        return None
    return to_decimal(base_budget)


def effective_month_budget(
    month: YearMonth,
    overrides: Mapping[YearMonth, Decimal],
    base_budget: Decimal | None,
) -> Decimal:
    """Override wins, then the base budget, then zero."""

    amount = override_tier(month, overrides)
    if amount is not None:
        return amount
    amount = base_budget_tier(base_budget)
    if amount is not None:
        return amount
    return ZERO


def overrides_by_month(
    project: ProjectRecord,
    overrides: Iterable[BudgetOverrideRecord],
) -> dict[YearMonth, Decimal]:
    return {
        row.period: to_decimal(row.amount)
        for row in overrides
        if row.project_id == project.id
    }


def resolve_monthly_budget(
    project: ProjectRecord,
    overrides: Iterable[BudgetOverrideRecord],
    relevant: Iterable[YearMonth],
) -> ResolvedBudget:
    """Effective budget for each relevant month and their total."""

    by_month = overrides_by_month(project, overrides)
    per_month: dict[YearMonth, Decimal] = {}
    total = ZERO
    for month in sorted(set(YearMonth(*value) for value in relevant)):
        amount = effective_month_budget(month, by_month, project.budget)
        per_month[month] = amount
        total += amount

    return ResolvedBudget(
        per_month=per_month,
        total=total,
        is_set=project.budget is not None or bool(by_month),
    )
