"""
Period Compactor

Per-date values -> minimal list of contiguous periods, and back.

Used by both the bulk update push and the full accommodation export so that
the two produce identical periods for identical data.

Rules:
- comparison key = tuple of values.get(field) over `fields`;
  a missing field and an explicit None compare equal
- a period is extended only when the key matches AND the date is exactly
  one day after the period's current end; a gap always closes the period
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Sequence

from openpro_sync.core.errors import ValidationError


@dataclass(frozen=True)
class DailyValues:
    day: date
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Period:
    start: date
    end: date
    values: dict[str, Any]

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


_MISSING = object()


def _key(values: Mapping[str, Any], fields: Sequence[str]) -> tuple:
    return tuple(
        _MISSING if values.get(f) is None else values.get(f)
        for f in fields
    )


def normalize_values(values: Mapping[str, Any], fields: Sequence[str]) -> dict[str, Any]:
    """Keep only the compared fields that carry a value."""
    return {f: values[f] for f in fields if values.get(f) is not None}


def compact_periods(days: Iterable[DailyValues], fields: Sequence[str]) -> list[Period]:
    """
    Args:
        days: strictly increasing by date
        fields: value names that take part in the comparison

    Returns:
        periods in date order; Period.values holds the normalized values
    """
    periods: list[Period] = []
    current: Period | None = None
    current_key: tuple | None = None

    for item in days:
        key = _key(item.values, fields)

        if current is not None and item.day <= current.end:
            raise ValidationError(
                f"Days must be strictly increasing: {item.day} after {current.end}"
            )

        if current is not None and key == current_key and item.day == current.end + timedelta(days=1):
            current.end = item.day
            continue

        if current is not None:
            periods.append(current)
        current = Period(start=item.day, end=item.day, values=normalize_values(item.values, fields))
        current_key = key

    if current is not None:
        periods.append(current)
    return periods


def expand_periods(periods: Iterable[Period]) -> list[DailyValues]:
    """Inverse of compact_periods: one DailyValues per covered day."""
    days: list[DailyValues] = []
    for period in periods:
        day = period.start
        while day <= period.end:
            days.append(DailyValues(day=day, values=dict(period.values)))
            day += timedelta(days=1)
    return days
