"""Aggregation and utilization engine.

Pure, synchronous calculations over in-memory records. Nothing in this package
performs I/O, reads the clock or keeps state between calls.
"""

from staffplan.engine.budget import ResolvedBudget, effective_month_budget, relevant_months, resolve_monthly_budget
from staffplan.engine.financials import (
    FINANCIAL_TREATMENT,
    CostPolicy,
    ProjectFinancials,
    compute_project_financials,
    monthly_cost_breakdown,
)
from staffplan.engine.months import (
    MONTH_RANGE_LIMIT,
    OpenEnded,
    OpenEndedPolicy,
    expand_month_range,
    fiscal_year_months,
    fiscal_year_of,
)
from staffplan.engine.records import (
    Anomaly,
    AnomalyKind,
    AssignmentRecord,
    BudgetOverrideRecord,
    InvalidRecordError,
    MemberRecord,
    ProjectRecord,
    YearMonth,
)
from staffplan.engine.rollup import FleetRollup, ReportingWindow, compute_fleet_rollup
from staffplan.engine.utilization import Utilization, compute_utilization

__all__ = [
    "FINANCIAL_TREATMENT",
    "MONTH_RANGE_LIMIT",
    "Anomaly",
    "AnomalyKind",
    "AssignmentRecord",
    "BudgetOverrideRecord",
    "CostPolicy",
    "FleetRollup",
    "InvalidRecordError",
    "MemberRecord",
    "OpenEnded",
    "OpenEndedPolicy",
    "ProjectFinancials",
    "ProjectRecord",
    "ReportingWindow",
    "ResolvedBudget",
    "Utilization",
    "YearMonth",
    "compute_fleet_rollup",
    "compute_project_financials",
    "compute_utilization",
    "effective_month_budget",
    "expand_month_range",
    "fiscal_year_months",
    "fiscal_year_of",
    "monthly_cost_breakdown",
    "relevant_months",
    "resolve_monthly_budget",
]
