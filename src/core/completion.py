"""Completion matching — pure business logic.

Decides whether a task has been recorded as done on a calendar day and
filters task lists by that status.

No I/O: this module only transforms data. Records whose date cannot be
parsed are skipped, never raised on.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Iterable

from src.data.models import ActivityRecord, Task

logger = logging.getLogger(__name__)


class ViewMode(str, Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


def record_day(value: object, tz: tzinfo | None = None) -> date | None:
    """Truncate a stored date/timestamp to its calendar day.

    Accepts date, datetime, "YYYY-MM-DD" or a full ISO timestamp. Aware
    timestamps are converted to tz (when given) before truncation.
    Returns None for anything that can't be parsed.
    """
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    raw = value.strip()
    try:
        if len(raw) == 10:
            return date.fromisoformat(raw)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if tz is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.date()


def day_key(day: date | datetime | str) -> str | None:
    """Format a reference day as YYYY-MM-DD for string comparison."""
    parsed = record_day(day)
    return parsed.isoformat() if parsed is not None else None


def is_completed_for_date(
    records: Iterable[ActivityRecord],
    task_id: int,
    day: date | datetime | str,
) -> bool:
    """Return True iff a record exists for task_id on the given calendar day."""
    wanted = day_key(day)
    if wanted is None:
        return False
    for record in records:
        if record.task_id != task_id:
            continue
        if day_key_of(record) == wanted:
            return True
    return False


def day_key_of(record: ActivityRecord) -> str | None:
    """Calendar-day key of a record, or None when its date is malformed."""
    parsed = record_day(getattr(record, "date", None))
    if parsed is None:
        logger.debug("Skipping record with unparseable date: %r", record)
        return None
    return parsed.isoformat()


def completed_task_ids(
    records: Iterable[ActivityRecord], day: date | datetime | str,
) -> set[int]:
    """Distinct task ids with at least one valid record on day."""
    wanted = day_key(day)
    if wanted is None:
        return set()
    return {r.task_id for r in records if day_key_of(r) == wanted}


def filter_by_status(
    tasks: list[Task],
    records: Iterable[ActivityRecord],
    day: date | datetime | str,
    mode: ViewMode | str = ViewMode.ALL,
) -> list[Task]:
    """Keep tasks matching mode for the reference day, preserving order.

    Raises ValueError for an unknown mode.
    """
    mode = ViewMode(mode)
    if mode is ViewMode.ALL:
        return list(tasks)

    done = completed_task_ids(records, day)
    if mode is ViewMode.PENDING:
        return [t for t in tasks if t.id not in done]
    return [t for t in tasks if t.id in done]


def records_for_task(
    records: Iterable[ActivityRecord], task_id: int,
) -> list[ActivityRecord]:
    """All valid records of one task, newest day first."""
    matching = [
        r for r in records
        if r.task_id == task_id and day_key_of(r) is not None
    ]
    matching.sort(key=lambda r: day_key_of(r), reverse=True)
    return matching
