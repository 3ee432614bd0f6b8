from __future__ import annotations

from datetime import date

import pytest

from staffplan.engine.months import (
    MONTH_RANGE_LIMIT,
    OpenEnded,
    OpenEndedPolicy,
    expand_month_range,
    fiscal_year_end,
    fiscal_year_months,
    fiscal_year_of,
    validate_month,
)
from staffplan.engine.records import InvalidRecordError, YearMonth


def test_expand_month_range_is_inclusive_and_rolls_the_year() -> None:
    months = expand_month_range(YearMonth(2025, 11), YearMonth(2026, 2))

    assert months == [
        YearMonth(2025, 11),
        YearMonth(2025, 12),
        YearMonth(2026, 1),
        YearMonth(2026, 2),
    ]


def test_expand_month_range_single_month_and_reversed_bounds() -> None:
    assert expand_month_range(YearMonth(2026, 4), YearMonth(2026, 4)) == [YearMonth(2026, 4)]
    assert expand_month_range(YearMonth(2026, 5), YearMonth(2026, 4)) == []


def test_expand_month_range_truncates_silently_at_cap() -> None:
    months = expand_month_range(YearMonth(2000, 1), YearMonth(2030, 12))

    assert len(months) == MONTH_RANGE_LIMIT == 120
    assert months[0] == YearMonth(2000, 1)
    assert months[-1] == YearMonth(2009, 12)


def test_expand_month_range_honours_custom_limit() -> None:
    months = expand_month_range(YearMonth(2026, 1), YearMonth(2026, 12), limit=5)

    assert months[-1] == YearMonth(2026, 5)
    assert len(months) == 5


def test_expand_month_range_is_idempotent_ascending_and_contiguous() -> None:
    first = expand_month_range(YearMonth(2023, 7), YearMonth(2027, 2))
    second = expand_month_range(YearMonth(2023, 7), YearMonth(2027, 2))

    assert first == second
    assert len(set(first)) == len(first)
    for previous, current in zip(first, first[1:]):
        assert previous < current
        assert previous.next() == current


def test_expand_month_range_rejects_invalid_month() -> None:
    with pytest.raises(InvalidRecordError):
        expand_month_range(YearMonth(2026, 13), YearMonth(2027, 1))


def test_open_ended_fiscal_year_policy_ends_in_september() -> None:
    spring = OpenEnded(as_of=date(2026, 4, 15), policy=OpenEndedPolicy.FISCAL_YEAR)
    autumn = OpenEnded(as_of=date(2026, 10, 16), policy=OpenEndedPolicy.FISCAL_YEAR)

    assert spring.resolve() == YearMonth(2026, 9)
    assert autumn.resolve() == YearMonth(2027, 9)
    assert expand_month_range(YearMonth(2026, 7), spring) == [
        YearMonth(2026, 7),
        YearMonth(2026, 8),
        YearMonth(2026, 9),
    ]


def test_open_ended_detail_view_buffers_past_latest_known_month() -> None:
    as_of = date(2026, 4, 15)

    assert OpenEnded(as_of=as_of, policy=OpenEndedPolicy.DETAIL_VIEW).resolve() == YearMonth(2026, 7)
    assert OpenEnded(
        as_of=as_of,
        policy=OpenEndedPolicy.DETAIL_VIEW,
        last_known=YearMonth(2026, 11),
    ).resolve() == YearMonth(2027, 2)
    assert OpenEnded(
        as_of=as_of,
        policy=OpenEndedPolicy.DETAIL_VIEW,
        last_known=YearMonth(2025, 1),
        buffer_months=0,
    ).resolve() == YearMonth(2026, 4)


def test_fiscal_year_helpers() -> None:
    assert fiscal_year_of(date(2026, 9, 30)) == 2025
    assert fiscal_year_of(date(2026, 10, 1)) == 2026
    assert fiscal_year_end(2024) == YearMonth(2025, 9)

    months = fiscal_year_months(2024)
    assert len(months) == 12
    assert months[0] == YearMonth(2024, 10)
    assert months[-1] == YearMonth(2025, 9)


def test_year_month_shift_and_key() -> None:
    assert YearMonth(2026, 1).shift(-1) == YearMonth(2025, 12)
    assert YearMonth(2026, 11).shift(3) == YearMonth(2027, 2)
    assert YearMonth(2026, 4).key == "2026-4"


@pytest.mark.parametrize(("year", "month"), [(2026, 0), (2026, 13), (999, 5), (10000, 1)])
def test_validate_month_rejects_out_of_range(year: int, month: int) -> None:
    with pytest.raises(InvalidRecordError):
        validate_month(year, month)
