from datetime import date, timedelta

import pytest

from openpro_sync.core.errors import ValidationError
from openpro_sync.services.period_compactor import (
    DailyValues,
    compact_periods,
    expand_periods,
)

FIELDS = ("price", "min_stay")


def _days(start: date, prices: list) -> list[DailyValues]:
    return [
        DailyValues(day=start + timedelta(days=i), values={"price": p})
        for i, p in enumerate(prices)
    ]


def test_equal_consecutive_days_collapse_into_one_period():
    days = _days(date(2025, 6, 1), [100, 100, 100, 120])

    periods = compact_periods(days, FIELDS)

    assert [(p.start, p.end, p.values) for p in periods] == [
        (date(2025, 6, 1), date(2025, 6, 3), {"price": 100}),
        (date(2025, 6, 4), date(2025, 6, 4), {"price": 120}),
    ]
    assert periods[0].days == 3


def test_gap_closes_period_even_with_equal_values():
    days = [
        DailyValues(day=date(2025, 6, 1), values={"price": 80}),
        DailyValues(day=date(2025, 6, 2), values={"price": 80}),
        DailyValues(day=date(2025, 6, 5), values={"price": 80}),
    ]

    periods = compact_periods(days, FIELDS)

    assert [(p.start, p.end) for p in periods] == [
        (date(2025, 6, 1), date(2025, 6, 2)),
        (date(2025, 6, 5), date(2025, 6, 5)),
    ]


def test_missing_field_and_none_compare_equal():
    days = [
        DailyValues(day=date(2025, 6, 1), values={"price": 90}),
        DailyValues(day=date(2025, 6, 2), values={"price": 90, "min_stay": None}),
    ]

    periods = compact_periods(days, FIELDS)

    assert len(periods) == 1
    assert periods[0].values == {"price": 90}


def test_fields_outside_the_comparison_are_ignored():
    days = [
        DailyValues(day=date(2025, 6, 1), values={"price": 90, "note": "a"}),
        DailyValues(day=date(2025, 6, 2), values={"price": 90, "note": "b"}),
    ]

    assert len(compact_periods(days, FIELDS)) == 1


def test_empty_input_gives_no_periods():
    assert compact_periods([], FIELDS) == []


def test_unordered_days_are_rejected():
    days = [
        DailyValues(day=date(2025, 6, 2), values={"price": 1}),
        DailyValues(day=date(2025, 6, 1), values={"price": 1}),
    ]
    with pytest.raises(ValidationError):
        compact_periods(days, FIELDS)


def test_duplicate_day_is_rejected():
    days = [
        DailyValues(day=date(2025, 6, 1), values={"price": 1}),
        DailyValues(day=date(2025, 6, 1), values={"price": 2}),
    ]
    with pytest.raises(ValidationError):
        compact_periods(days, FIELDS)


@pytest.mark.parametrize(
    "prices",
    [
        [100],
        [100, 100, 100, 120],
        [50, 60, 50, 60, 50],
        [70, 70, 70, 70, 70, 70, 70],
        [10, None, None, 10],
    ],
)
def test_expand_reverses_compact(prices):
    days = [
        DailyValues(day=d.day, values={k: v for k, v in d.values.items() if v is not None})
        for d in _days(date(2025, 12, 28), prices)
    ]

    expanded = expand_periods(compact_periods(days, FIELDS))

    assert [(d.day, dict(d.values)) for d in expanded] == [(d.day, dict(d.values)) for d in days]
