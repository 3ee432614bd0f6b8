"""Capacity and utilization calculator for one member in one month."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from staffplan.engine.records import ZERO, InvalidRecordError, to_decimal

HUNDRED = Decimal("100")
DISPLAY_CEILING = 999


def round_percent(value: Decimal) -> int:
    """Round half away from zero to a whole percentage."""

    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class Utilization:
    total_man_month: Decimal
    capacity: Decimal
    rate: Decimal
    utilization_percent: int
    is_over_allocated: bool

    @property
    def status(self) -> str:
        if self.is_over_allocated:
            return "over"
        if self.utilization_percent == 100:
            return "exact"
        return "under"

    def display_percent(self, ceiling: int = DISPLAY_CEILING) -> int:
        return min(self.utilization_percent, ceiling)


def compute_utilization(capacity: Decimal, man_months: Iterable[Decimal]) -> Utilization:
    """Sum allocations against capacity.

    Zero capacity yields a zero rate rather than infinity. Over-allocation is
    strictly more than 100 % after rounding, so exactly 100 % is not over.
    """

    capacity = to_decimal(capacity)
    if capacity < ZERO:
        raise InvalidRecordError(f"capacity must be greater or equal zero, got {capacity}.")

    total = ZERO
    for value in man_months:
        value = to_decimal(value)
        if value < ZERO:
            raise InvalidRecordError(f"man_month must be greater or equal zero, got {value}.")
        total += value

    rate = ZERO if capacity == ZERO else total / capacity
    percent = round_percent(rate * HUNDRED)
    return Utilization(
        total_man_month=total,
        capacity=capacity,
        rate=rate,
        utilization_percent=percent,
        is_over_allocated=percent > 100,
    )
