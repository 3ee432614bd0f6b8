from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from staffplan.engine.budget import (
    effective_month_budget,
    relevant_months,
    resolve_monthly_budget,
)
from staffplan.engine.financials import (
    FINANCIAL_TREATMENT,
    CostPolicy,
    compute_project_financials,
    monthly_cost_breakdown,
)
from staffplan.engine.months import OpenEnded
from staffplan.engine.records import (
    AnomalyKind,
    AssignmentRecord,
    BudgetOverrideRecord,
    MemberRecord,
    ProjectRecord,
    YearMonth,
)
from staffplan.models.entities import ProjectType


def _member(rate: int | None = 5000) -> MemberRecord:
    return MemberRecord(
        id=uuid.uuid4(),
        name="Aiko",
        hourly_rate=None if rate is None else Decimal(rate),
        work_capacity=Decimal("1.0"),
    )


def _project(project_type: ProjectType, budget: int | None = None, **dates: date | None) -> ProjectRecord:
    return ProjectRecord(
        id=uuid.uuid4(),
        name=f"{project_type.value} project",
        type=project_type,
        budget=None if budget is None else Decimal(budget),
        start_date=dates.get("start_date"),
        end_date=dates.get("end_date"),
    )


def _assignment(member: MemberRecord, project: ProjectRecord, year: int, month: int, man_month: str) -> AssignmentRecord:
    return AssignmentRecord(
        member_id=member.id,
        project_id=project.id,
        year=year,
        month=month,
        man_month=Decimal(man_month),
    )


def _override(project: ProjectRecord, year: int, month: int, amount: int) -> BudgetOverrideRecord:
    return BudgetOverrideRecord(project_id=project.id, year=year, month=month, amount=Decimal(amount))


def _q1_maintenance() -> ProjectRecord:
    return _project(
        ProjectType.MAINTENANCE,
        500000,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 3, 31),
    )


def test_maintenance_budget_spans_date_range() -> None:
    project = _q1_maintenance()
    months = relevant_months(project, [], [])

    resolved = resolve_monthly_budget(project, [], months)

    assert months == [YearMonth(2026, 1), YearMonth(2026, 2), YearMonth(2026, 3)]
    assert resolved.total == Decimal("1500000")
    assert resolved.is_set is True


def test_maintenance_budget_override_replaces_base_for_its_month() -> None:
    project = _q1_maintenance()
    overrides = [_override(project, 2026, 2, 800000)]
    months = relevant_months(project, [], [row.period for row in overrides])

    resolved = resolve_monthly_budget(project, overrides, months)

    assert resolved.per_month[YearMonth(2026, 2)] == Decimal("800000")
    assert resolved.total == Decimal("1800000")


def test_override_wins_over_different_base_budget() -> None:
    project = _project(
        ProjectType.MAINTENANCE,
        450000,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 6, 30),
    )
    overrides = [_override(project, 2026, 4, 300000)]

    resolved = resolve_monthly_budget(project, overrides, relevant_months(project, [], []))

    assert resolved.per_month[YearMonth(2026, 4)] == Decimal("300000")
    assert resolved.per_month[YearMonth(2026, 5)] == Decimal("450000")
    assert resolved.total == Decimal("450000") * 5 + Decimal("300000")


def test_overrides_of_other_projects_are_ignored() -> None:
    project = _q1_maintenance()
    other = _q1_maintenance()

    resolved = resolve_monthly_budget(project, [_override(other, 2026, 2, 1)], relevant_months(project, [], []))

    assert resolved.total == Decimal("1500000")


def test_budget_tiers_fall_back_in_order() -> None:
    overrides = {YearMonth(2026, 4): Decimal("300000")}

    assert effective_month_budget(YearMonth(2026, 4), overrides, Decimal("100")) == Decimal("300000")
    assert effective_month_budget(YearMonth(2026, 5), overrides, Decimal("100")) == Decimal("100")
    assert effective_month_budget(YearMonth(2026, 5), overrides, None) == Decimal("0")


def test_unset_budget_is_distinguished_from_zero() -> None:
    project = _project(ProjectType.MAINTENANCE, None, start_date=date(2026, 1, 1), end_date=date(2026, 2, 28))

    unset = resolve_monthly_budget(project, [], relevant_months(project, [], []))
    with_override = resolve_monthly_budget(
        project,
        [_override(project, 2026, 1, 0)],
        relevant_months(project, [], []),
    )

    assert unset.total == 0 and unset.is_set is False
    assert with_override.total == 0 and with_override.is_set is True


def test_relevant_months_union_of_range_assignments_and_overrides() -> None:
    member = _member()
    project = _q1_maintenance()

    months = relevant_months(
        project,
        [_assignment(member, project, 2026, 5, "0.5").period],
        [YearMonth(2025, 12)],
    )

    assert months == [
        YearMonth(2025, 12),
        YearMonth(2026, 1),
        YearMonth(2026, 2),
        YearMonth(2026, 3),
        YearMonth(2026, 5),
    ]


def test_relevant_months_without_start_or_open_end() -> None:
    no_dates = _project(ProjectType.MAINTENANCE, 100)
    open_ended = _project(ProjectType.MAINTENANCE, 100, start_date=date(2026, 7, 1))

    assert relevant_months(no_dates, [YearMonth(2026, 2)], []) == [YearMonth(2026, 2)]
    assert relevant_months(open_ended, [], []) == []
    assert relevant_months(open_ended, [], [], open_ended=OpenEnded(as_of=date(2026, 8, 1))) == [
        YearMonth(2026, 7),
        YearMonth(2026, 8),
        YearMonth(2026, 9),
    ]


def test_development_profit_from_labor_cost() -> None:
    member = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, 10000000)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0")],
        None,
        members={member.id: member},
    )

    assert result.cost == Decimal("800000")
    assert result.budget == Decimal("10000000")
    assert result.profit == Decimal("9200000")
    assert result.is_over_budget is False
    assert result.consumption_percent == 8
    assert result.anomalies == ()


def test_development_over_budget_caps_consumption() -> None:
    member = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, 500000)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0")],
        None,
        members={member.id: member},
    )

    assert result.profit == Decimal("-300000")
    assert result.is_over_budget is True
    assert result.consumption_percent == 100


def test_development_without_budget_is_not_flagged_over_budget() -> None:
    member = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, None)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "0.5")],
        None,
        members={member.id: member},
    )

    assert result.budget_is_set is False
    assert result.budget == 0
    assert result.profit == Decimal("-400000")
    assert result.is_over_budget is False
    assert result.consumption_percent == 0


def test_management_counts_cost_but_no_budget_or_profit() -> None:
    member = _member(5000)
    project = _project(ProjectType.MANAGEMENT, 9999999)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0")],
        None,
        members={member.id: member},
    )

    assert result.budget == 0
    assert result.profit == 0
    assert result.cost == Decimal("800000")
    assert result.is_over_budget is False


def test_other_counts_nothing() -> None:
    member = _member(5000)
    project = _project(ProjectType.OTHER, 5000000)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0"), _assignment(member, project, 2026, 5, "0.5")],
        None,
        members={member.id: member},
    )

    assert (result.budget, result.cost, result.profit) == (0, 0, 0)
    assert result.total_man_month == Decimal("1.5")


def test_maintenance_uses_resolved_budget() -> None:
    member = _member(5000)
    project = _q1_maintenance()
    rows = [_assignment(member, project, 2026, 1, "0.5")]
    resolved = resolve_monthly_budget(project, [], relevant_months(project, [row.period for row in rows], []))

    result = compute_project_financials(project, rows, resolved, members={member.id: member})

    assert result.budget == Decimal("1500000")
    assert result.cost == Decimal("400000")
    assert result.profit == Decimal("1100000")


def test_maintenance_requires_resolved_budget() -> None:
    with pytest.raises(ValueError):
        compute_project_financials(_q1_maintenance(), [], None, members={})


def test_dangling_member_is_costed_at_policy_default() -> None:
    ghost = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, 1000000)

    result = compute_project_financials(
        project,
        [_assignment(ghost, project, 2026, 4, "0.5")],
        None,
        members={},
        policy=CostPolicy(default_hourly_rate=Decimal("6000")),
    )

    assert result.cost == Decimal("480000")
    assert [anomaly.kind for anomaly in result.anomalies] == [AnomalyKind.DANGLING_MEMBER]


def test_missing_member_rate_uses_default_rate() -> None:
    member = _member(None)
    project = _project(ProjectType.DEVELOPMENT, 1000000)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0")],
        None,
        members={member.id: member},
    )

    assert result.cost == Decimal("800000")
    assert result.anomalies[0].kind is AnomalyKind.MISSING_RATE


def test_custom_hours_per_month() -> None:
    member = _member(1000)
    project = _project(ProjectType.DEVELOPMENT, 1000000)

    result = compute_project_financials(
        project,
        [_assignment(member, project, 2026, 4, "1.0")],
        None,
        members={member.id: member},
        policy=CostPolicy(hours_per_month=150),
    )

    assert result.cost == Decimal("150000")


def test_assignments_of_other_projects_are_ignored() -> None:
    member = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, 1000000)
    other = _project(ProjectType.DEVELOPMENT, 1000000)

    result = compute_project_financials(
        project,
        [_assignment(member, other, 2026, 4, "1.0")],
        None,
        members={member.id: member},
    )

    assert result.cost == 0
    assert result.total_man_month == 0


def test_treatment_table_covers_every_project_type() -> None:
    assert set(FINANCIAL_TREATMENT) == set(ProjectType)
    assert FINANCIAL_TREATMENT[ProjectType.MAINTENANCE].uses_monthly_budget is True
    assert FINANCIAL_TREATMENT[ProjectType.MANAGEMENT].has_profit is False
    assert FINANCIAL_TREATMENT[ProjectType.OTHER].counts_cost is False


def test_monthly_cost_breakdown_zero_fills_months() -> None:
    member = _member(5000)
    project = _q1_maintenance()
    rows = [_assignment(member, project, 2026, 2, "0.25")]

    breakdown = monthly_cost_breakdown(
        project,
        rows,
        [YearMonth(2026, 1), YearMonth(2026, 2), YearMonth(2026, 3)],
        members={member.id: member},
    )

    assert [item.cost for item in breakdown] == [Decimal("0"), Decimal("200000"), Decimal("0")]
    assert breakdown[1].man_month == Decimal("0.25")


def test_monthly_cost_breakdown_reports_rate_fallbacks() -> None:
    ghost = _member(5000)
    project = _project(ProjectType.DEVELOPMENT, 1000000)
    anomalies: list = []

    breakdown = monthly_cost_breakdown(
        project,
        [_assignment(ghost, project, 2026, 4, "0.5")],
        [YearMonth(2026, 4)],
        members={},
        policy=CostPolicy(default_hourly_rate=Decimal("6000")),
        anomalies=anomalies,
    )

    assert breakdown[0].cost == Decimal("480000")
    assert [anomaly.kind for anomaly in anomalies] == [AnomalyKind.DANGLING_MEMBER]
