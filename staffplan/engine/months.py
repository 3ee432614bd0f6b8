"""Month-range expansion and fiscal-year calendar helpers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date

from staffplan.engine.records import InvalidRecordError, YearMonth

# Hard cap on expanded ranges (10 years); longer ranges are truncated silently.
MONTH_RANGE_LIMIT = 120
FISCAL_YEAR_START_MONTH = 10


class OpenEndedPolicy(str, enum.Enum):
    DETAIL_VIEW = "detail_view"
    FISCAL_YEAR = "fiscal_year"


@dataclass(frozen=True, slots=True)
class OpenEnded:
    """Synthetic end boundary for a range whose end date is unset.

    ``DETAIL_VIEW`` ends ``buffer_months`` after the later of the as-of month and
    the last known assignment month. ``FISCAL_YEAR`` ends with the September that
    closes the fiscal year containing ``as_of``.
    """

    as_of: date
    policy: OpenEndedPolicy = OpenEndedPolicy.FISCAL_YEAR
    last_known: YearMonth | None = None
    buffer_months: int = 3

    def resolve(self) -> YearMonth:
        if self.policy is OpenEndedPolicy.FISCAL_YEAR:
            return fiscal_year_end(fiscal_year_of(self.as_of))
        anchor = YearMonth.from_date(self.as_of)
        if self.last_known is not None and self.last_known > anchor:
            anchor = self.last_known
        return anchor.shift(self.buffer_months)


def validate_month(year: int, month: int) -> YearMonth:
    if not 1 <= month <= 12:
        raise InvalidRecordError(f"month must be within 1..12, got {month}.")
    if not 1000 <= year <= 9999:
        raise InvalidRecordError(f"year must be a four-digit calendar year, got {year}.")
    return YearMonth(year, month)


def expand_month_range(
    start: YearMonth,
    end: YearMonth | OpenEnded,
    *,
    limit: int = MONTH_RANGE_LIMIT,
) -> list[YearMonth]:
    """Return ascending month keys from ``start`` to ``end`` inclusive, at most ``limit`` long."""

    stop = end.resolve() if isinstance(end, OpenEnded) else end
    cursor = validate_month(*start)
    validate_month(*stop)

    months: list[YearMonth] = []
    while cursor <= stop and len(months) < limit:
        months.append(cursor)
        cursor = cursor.next()
    return months


def fiscal_year_of(day: date) -> int:
    if day.month >= FISCAL_YEAR_START_MONTH:
        return day.year
    return day.year - 1


def fiscal_year_start(fiscal_year: int) -> YearMonth:
    return YearMonth(fiscal_year, FISCAL_YEAR_START_MONTH)


def fiscal_year_end(fiscal_year: int) -> YearMonth:
    return YearMonth(fiscal_year + 1, FISCAL_YEAR_START_MONTH - 1)


def fiscal_year_months(fiscal_year: int) -> list[YearMonth]:
    return expand_month_range(fiscal_year_start(fiscal_year), fiscal_year_end(fiscal_year))
