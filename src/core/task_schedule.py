"""Task schedule helpers.

Answers "is this task active on that day?" from its start/end window, and
renders a task's frequency the way the task list shows it.
"""

from __future__ import annotations

from datetime import date

from src.core.completion import record_day
from src.data.models import Frequency, Task


def is_out_of_window(task: Task, day: date) -> bool:
    """True when the task has a start/end window and day falls outside it.

    Tasks without both bounds (e.g. one-off tasks) are never out of window.
    """
    if not task.start_date or not task.end_date:
        return False
    start = record_day(task.start_date)
    end = record_day(task.end_date)
    if start is None or end is None:
        return False
    return day < start or day > end


def tasks_for_day(tasks: list[Task], day: date) -> list[Task]:
    return [t for t in tasks if not is_out_of_window(t, day)]


def frequency_text(task: Task) -> str:
    """Human-readable schedule, e.g. "Every 3 days (2024-05-01 – 2024-05-31)"."""
    frequency = Frequency(task.frequency)
    if frequency is Frequency.ONCE:
        return f"Due: {task.due_date}"

    if frequency is Frequency.DAILY:
        text = "Daily"
    elif frequency is Frequency.WEEKLY:
        text = "Weekly"
    else:
        text = f"Every {task.custom_days} days"

    if task.start_date and task.end_date:
        text += f" ({task.start_date} – {task.end_date})"
    return text
