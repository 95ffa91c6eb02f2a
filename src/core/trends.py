"""Completion trends — pure business logic.

Builds a fixed-length, date-ordered series counting distinct completed tasks
per day over a trailing 7- or 30-day window ending on an injected "today".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import IntEnum
from typing import Iterable

from src.core.completion import day_key_of
from src.data.models import ActivityRecord

# English month abbreviations, independent of LC_TIME
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class TrendWindow(IntEnum):
    WEEK = 7
    MONTH = 30

    @classmethod
    def from_label(cls, value: str | int) -> TrendWindow:
        """Accept "week"/"month" (any case) or the day count itself."""
        if isinstance(value, str):
            key = value.strip().lower()
            if key in ("week", "w", "7"):
                return cls.WEEK
            if key in ("month", "m", "30"):
                return cls.MONTH
            raise ValueError(f"Unknown trend window: {value!r}")
        return cls(value)


def day_label(day: date) -> str:
    """Short chart label, e.g. "May 01"."""
    return f"{_MONTHS[day.month - 1]} {day.day:02d}"


@dataclass
class TrendPoint:
    date: str        # short label, e.g. "May 01"
    day: date
    completed: int


def build_series(
    records: Iterable[ActivityRecord],
    window_days: int,
    today: date,
) -> list[TrendPoint]:
    """Count distinct completed tasks per day for the trailing window.

    Args:
        records: Activity records; ones with unparseable dates are ignored.
        window_days: 7 or 30. Anything else raises ValueError.
        today: Last day of the window (inclusive).

    Returns:
        Exactly window_days points, oldest first.
    """
    window = TrendWindow(window_days)
    start = today - timedelta(days=window - 1)

    tasks_by_day: dict[str, set[int]] = {}
    for record in records:
        key = day_key_of(record)
        if key is None:
            continue
        tasks_by_day.setdefault(key, set()).add(record.task_id)

    series: list[TrendPoint] = []
    for offset in range(window):
        day = start + timedelta(days=offset)
        series.append(TrendPoint(
            date=day_label(day),
            day=day,
            completed=len(tasks_by_day.get(day.isoformat(), ())),
        ))
    return series


def series_total(series: list[TrendPoint]) -> int:
    return sum(p.completed for p in series)


def busiest_day(series: list[TrendPoint]) -> TrendPoint | None:
    """The earliest point with the highest count, or None if all are zero."""
    best: TrendPoint | None = None
    for point in series:
        if point.completed and (best is None or point.completed > best.completed):
            best = point
    return best
