"""
HomeTasks — Daily Reminder.

A proactive daily push to each family owner listing the tasks still pending
today, grouped by the member they're assigned to.

This module depends on the NotificationPort protocol, not on Telegram.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from src.core.household_service import ErrorResponse, TaskListResponse
from src.data.models import Session

if TYPE_CHECKING:
    from src.core.household_service import HouseholdService
    from src.data.db import FamilyDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def send_daily_reminders(
    notifier: NotificationPort,
    family_db: FamilyDB,
    service: HouseholdService,
    today: date | None = None,
) -> int:
    """Send today's pending tasks to every family owner.

    Families with nothing pending get no message. A failure for one family
    is logged and the rest still get their reminder.

    Returns the number of reminders sent.
    """
    day = today or service.today()
    sent = 0

    for family in family_db.list_families():
        try:
            response = service.pending_by_member(Session(user_id=family.created_by), day)
            if isinstance(response, ErrorResponse):
                logger.warning(
                    "Daily reminder skipped for family #%d: %s", family.id, response.message,
                )
                continue
            text = build_reminder_text(family.name, day, response)
            if text is None:
                continue
            await notifier.send_message(family.created_by, text)
            sent += 1
            logger.info("Daily reminder sent to user %d", family.created_by)
        except Exception as exc:
            logger.error(
                "Failed to send daily reminder for family #%d: %s", family.id, exc,
            )

    return sent


def build_reminder_text(family_name: str, day: date, response: TaskListResponse) -> str | None:
    """Reminder body, or None when no task is pending."""
    if not any(response.groups.values()):
        return None

    lines = [f"Good morning, {family_name} family! Still to do on {day.isoformat()}:"]
    for member_name, tasks in response.groups.items():
        lines.append("")
        lines.append(f"{member_name}:")
        lines.extend(f"  - #{t.id} {t.title}" for t in tasks)
    lines.append("")
    lines.append("Mark tasks done with /record or /done <task_id>.")
    return "\n".join(lines)
