"""Immutable input records and shared value types for the aggregation engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import NamedTuple
from uuid import UUID

from staffplan.models.entities import ProjectStatus, ProjectType

ZERO = Decimal("0")


class InvalidRecordError(ValueError):
    """Raised for structurally invalid input such as month 13 or a negative man-month."""


class YearMonth(NamedTuple):
    """Calendar month key; tuple ordering is chronological."""

    year: int
    month: int

    @classmethod
    def from_date(cls, value: date) -> YearMonth:
        return cls(value.year, value.month)

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month}"

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def shift(self, months: int) -> YearMonth:
        index = self.year * 12 + (self.month - 1) + months
        return YearMonth(index // 12, index % 12 + 1)

    def next(self) -> YearMonth:
        if self.month == 12:
            return YearMonth(self.year + 1, 1)
        return YearMonth(self.year, self.month + 1)


class AnomalyKind(str, enum.Enum):
    INVALID_MONTH = "invalid_month"
    NEGATIVE_MAN_MONTH = "negative_man_month"
    NEGATIVE_CAPACITY = "negative_capacity"
    DANGLING_MEMBER = "dangling_member"
    DANGLING_PROJECT = "dangling_project"
    MISSING_RATE = "missing_rate"
    INVALID_DATE = "invalid_date"


@dataclass(frozen=True, slots=True)
class Anomaly:
    """Odd record that was skipped or defaulted instead of failing a rollup."""

    kind: AnomalyKind
    message: str
    entity_id: str | None = None


@dataclass(frozen=True, slots=True)
class MemberRecord:
    id: UUID
    name: str
    hourly_rate: Decimal | None
    work_capacity: Decimal
    role: str = ""
    sort_order: int = 0


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: UUID
    name: str
    type: ProjectType
    status: ProjectStatus = ProjectStatus.CONFIRMED
    budget: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    sort_order: int = 0

    @property
    def is_open_ended(self) -> bool:
        return self.end_date is None


@dataclass(frozen=True, slots=True)
class AssignmentRecord:
    member_id: UUID
    project_id: UUID
    year: int
    month: int
    man_month: Decimal

    @property
    def period(self) -> YearMonth:
        return YearMonth(self.year, self.month)


@dataclass(frozen=True, slots=True)
class BudgetOverrideRecord:
    project_id: UUID
    year: int
    month: int
    amount: Decimal

    @property
    def period(self) -> YearMonth:
        return YearMonth(self.year, self.month)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert numbers to Decimal; floats go through ``str`` to keep their printed value."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)
