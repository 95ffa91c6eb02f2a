"""
HomeTasks — Household Service.

The one layer that talks to storage. Loads a family's tasks and records,
hands them to the pure core functions (completion, grouping, trends) and
returns structured response objects.

Each UI adapter (Telegram today) calls this service with an explicit
Session and renders the responses in its own way.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from src.core.completion import (
    ViewMode,
    completed_task_ids,
    filter_by_status,
    is_completed_for_date,
    records_for_task,
)
from src.core.forms import FamilyDraft, MemberDraft, TaskDraft, first_error
from src.core.grouping import GroupBy, group_by_assignee, group_tasks
from src.core.task_schedule import is_out_of_window, tasks_for_day
from src.core.trends import TrendPoint, TrendWindow, build_series, busiest_day, series_total

if TYPE_CHECKING:
    from src.data.db import FamilyDB, RecordDB, TaskDB
    from src.data.models import ActivityRecord, Family, Session, Task

logger = logging.getLogger(__name__)

UNKNOWN_MEMBER = "Unknown"
NO_FAMILY_MESSAGE = "Set up your family first with /setfamily Name: Alice (parent), Bob (child)"


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    QUERY_RESULT = "query_result"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class SuccessResponse(ServiceResponse):
    family: Family | None = None
    task: Task | None = None
    records: list[ActivityRecord] = field(default_factory=list)


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class TaskListResponse(ServiceResponse):
    groups: dict[str, list[Task]] = field(default_factory=dict)
    group_by: GroupBy = GroupBy.INDIVIDUAL
    family: Family | None = None


@dataclass
class DayStatusResponse(ServiceResponse):
    day: date | None = None
    mode: ViewMode = ViewMode.ALL
    tasks: list[Task] = field(default_factory=list)
    completed_ids: set[int] = field(default_factory=set)
    family: Family | None = None


@dataclass
class HistoryEntry:
    record_id: int
    task_id: int
    task_title: str
    member_name: str
    date: str


@dataclass
class HistoryResponse(ServiceResponse):
    entries: list[HistoryEntry] = field(default_factory=list)


@dataclass
class TrendsResponse(ServiceResponse):
    window: TrendWindow = TrendWindow.WEEK
    series: list[TrendPoint] = field(default_factory=list)
    total: int = 0
    busiest: TrendPoint | None = None


def _error(message: str) -> ErrorResponse:
    return ErrorResponse(kind=ResponseKind.ERROR, message=message)


def storage_errors(method):
    """Turn storage failures inside a service method into an ErrorResponse."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (sqlite3.Error, ValueError) as exc:
            logger.error("%s failed: %s", method.__name__, exc)
            return _error("Sorry, something went wrong while saving. Please try again.")
    return wrapper


# ---------------------------------------------------------------------------
# HouseholdService
# ---------------------------------------------------------------------------


class HouseholdService:
    """Family, task and completion operations scoped to the session's family.

    Returns structured response objects, never sends messages directly.
    """

    def __init__(
        self,
        family_db: FamilyDB,
        task_db: TaskDB,
        record_db: RecordDB,
        tz: tzinfo | None = None,
    ) -> None:
        self._family_db = family_db
        self._task_db = task_db
        self._record_db = record_db
        self._tz = tz

    def today(self) -> date:
        """Current calendar day in the household timezone."""
        return datetime.now(self._tz).date()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _family(self, session: Session) -> Family | None:
        return self._family_db.get_family_for_owner(session.user_id)

    def _family_task(self, family: Family, task_id: int) -> Task | None:
        task = self._task_db.get_task(task_id)
        if task is None or task.family_id != family.id:
            return None
        return task

    def _family_record(self, family: Family, record_id: int) -> ActivityRecord | None:
        record = self._record_db.get_record(record_id)
        if record is None or self._family_task(family, record.task_id) is None:
            return None
        return record

    @staticmethod
    def _resolve_names(family: Family, names: list[str]) -> list[int] | ErrorResponse:
        """Map member names to ids, refusing the lot on the first unknown name."""
        member_ids: list[int] = []
        for name in names:
            member = family.member_by_name(name)
            if member is None:
                return _error(f"Family member not found: {name.strip()}")
            if member.id not in member_ids:
                member_ids.append(member.id)
        return member_ids

    @staticmethod
    def _named_groups(family: Family, tasks: list[Task]) -> dict[str, list[Task]]:
        """Group by assignee id, then label each bucket with the member's name."""
        names = family.member_names()
        return {
            names.get(member_id, UNKNOWN_MEMBER): bucket
            for member_id, bucket in group_by_assignee(tasks).items()
        }

    # ------------------------------------------------------------------
    # Family
    # ------------------------------------------------------------------

    @storage_errors
    def setup_family(self, session: Session, draft: FamilyDraft | dict) -> ServiceResponse:
        """Create the session's family, or rename it and add new members."""
        try:
            if not isinstance(draft, FamilyDraft):
                draft = FamilyDraft.model_validate(draft)
        except ValidationError as exc:
            return _error(first_error(exc))

        family = self._family(session)
        if family is None:
            family = self._family_db.create_family(
                draft.name,
                session.user_id,
                [(m.name, m.role) for m in draft.members],
            )
            return SuccessResponse(
                kind=ResponseKind.SUCCESS,
                message=f"Family '{family.name}' created with {len(family.members)} member(s).",
                family=family,
            )

        self._family_db.rename_family(family.id, draft.name)
        added = 0
        for member in draft.members:
            if family.member_by_name(member.name) is None:
                self._family_db.add_member(family.id, member.name, member.role)
                added += 1
        family = self._family(session)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Family '{family.name}' updated ({added} new member(s)).",
            family=family,
        )

    @storage_errors
    def get_family(self, session: Session) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        return SuccessResponse(kind=ResponseKind.SUCCESS, message=family.name, family=family)

    @storage_errors
    def add_member(self, session: Session, name: str, role: str = "member") -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        try:
            draft = MemberDraft(name=name, role=role)
        except ValidationError as exc:
            return _error(first_error(exc))
        if family.member_by_name(draft.name) is not None:
            return _error(f"{draft.name} is already in the family.")

        self._family_db.add_member(family.id, draft.name, draft.role)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Added {draft.name} ({draft.role}).",
            family=self._family(session),
        )

    @storage_errors
    def rename_member(self, session: Session, old_name: str, new_name: str) -> ServiceResponse:
        """Rename a member. Tasks and records reference ids, so nothing else changes."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        member = family.member_by_name(old_name)
        if member is None:
            return _error(f"Family member not found: {old_name.strip()}")
        try:
            draft = MemberDraft(name=new_name, role=member.role)
        except ValidationError as exc:
            return _error(first_error(exc))
        clash = family.member_by_name(draft.name)
        if clash is not None and clash.id != member.id:
            return _error(f"{draft.name} is already in the family.")

        self._family_db.rename_member(member.id, draft.name)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Renamed {member.name} to {draft.name}.",
            family=self._family(session),
        )

    @storage_errors
    def remove_member(self, session: Session, name: str) -> ServiceResponse:
        """Remove a member and their assignments; tasks left unassigned are deleted."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        member = family.member_by_name(name)
        if member is None:
            return _error(f"Family member not found: {name.strip()}")

        self._family_db.remove_member(member.id)
        removed_tasks = self._task_db.cleanup_orphaned_tasks(family.id)
        message = f"Removed {member.name}."
        if removed_tasks:
            message += f" {removed_tasks} task(s) with no one left assigned were deleted."
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=message, family=self._family(session),
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @storage_errors
    def create_task(self, session: Session, draft: TaskDraft | dict) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        try:
            if not isinstance(draft, TaskDraft):
                draft = TaskDraft.model_validate(draft)
        except ValidationError as exc:
            return _error(first_error(exc))

        member_ids = self._resolve_names(family, draft.assignees)
        if isinstance(member_ids, ErrorResponse):
            return member_ids

        task = self._task_db.add_task(family.id, draft.storage_fields(), member_ids)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Task #{task.id} '{task.title}' created.",
            task=task,
        )

    @storage_errors
    def update_task(
        self, session: Session, task_id: int, draft: TaskDraft | dict,
    ) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        if self._family_task(family, task_id) is None:
            return _error(f"Task #{task_id} not found.")
        try:
            if not isinstance(draft, TaskDraft):
                draft = TaskDraft.model_validate(draft)
        except ValidationError as exc:
            return _error(first_error(exc))

        member_ids = self._resolve_names(family, draft.assignees)
        if isinstance(member_ids, ErrorResponse):
            return member_ids

        task = self._task_db.update_task(task_id, draft.storage_fields(), member_ids)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Task #{task.id} '{task.title}' updated.",
            task=task,
        )

    @storage_errors
    def get_task(self, session: Session, task_id: int) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        task = self._family_task(family, task_id)
        if task is None:
            return _error(f"Task #{task_id} not found.")
        return SuccessResponse(
            kind=ResponseKind.SUCCESS, message=task.title, family=family, task=task,
        )

    @storage_errors
    def delete_task(self, session: Session, task_id: int) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        task = self._family_task(family, task_id)
        if task is None:
            return _error(f"Task #{task_id} not found.")

        self._task_db.delete_task(task_id)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Task #{task_id} '{task.title}' deleted.",
            task=task,
        )

    @storage_errors
    def list_tasks(
        self, session: Session, group_by: GroupBy | str = GroupBy.INDIVIDUAL,
    ) -> ServiceResponse:
        """Family tasks bucketed by member name, or shared vs individual."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        try:
            group_by = GroupBy(group_by)
        except ValueError:
            return _error("Group tasks by 'individual' or 'shared'.")

        self._task_db.cleanup_orphaned_tasks(family.id)
        tasks = self._task_db.list_tasks(family.id)

        if group_by is GroupBy.INDIVIDUAL:
            groups = self._named_groups(family, tasks)
        else:
            groups = group_tasks(tasks, group_by)

        return TaskListResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=f"{len(tasks)} task(s)" if tasks else "No tasks yet. Add one with /addtask.",
            groups=groups,
            group_by=group_by,
            family=family,
        )

    # ------------------------------------------------------------------
    # Completion records
    # ------------------------------------------------------------------

    @storage_errors
    def day_status(
        self, session: Session, day: date, mode: ViewMode | str = ViewMode.ALL,
    ) -> ServiceResponse:
        """Tasks scheduled on day, filtered by their completion status."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        try:
            mode = ViewMode(mode)
        except ValueError:
            return _error("Show 'all', 'pending' or 'completed' tasks.")

        tasks = tasks_for_day(self._task_db.list_tasks(family.id), day)
        records = self._record_db.list_records(family.id)
        return DayStatusResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=day.isoformat(),
            day=day,
            mode=mode,
            tasks=filter_by_status(tasks, records, day, mode),
            completed_ids=completed_task_ids(records, day),
            family=family,
        )

    @storage_errors
    def pending_by_member(self, session: Session, day: date) -> ServiceResponse:
        """Pending in-window tasks for day, bucketed by member name."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        tasks = tasks_for_day(self._task_db.list_tasks(family.id), day)
        records = self._record_db.list_records(family.id)
        pending = filter_by_status(tasks, records, day, ViewMode.PENDING)
        return TaskListResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=f"{len(pending)} pending task(s) for {day.isoformat()}",
            groups=self._named_groups(family, pending),
            family=family,
        )

    @storage_errors
    def record_completion(
        self,
        session: Session,
        task_id: int,
        member_names: list[str] | None,
        day: date,
    ) -> ServiceResponse:
        """Record that members completed a task on day, one record per member.

        A task already completed that day is refused. With no names, an
        individual task is credited to its sole assignee.
        """
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        task = self._family_task(family, task_id)
        if task is None:
            return _error(f"Task #{task_id} not found.")
        if is_out_of_window(task, day):
            return _error(f"'{task.title}' isn't scheduled on {day.isoformat()}.")

        records = self._record_db.list_records(family.id)
        if is_completed_for_date(records, task.id, day):
            return _error(f"'{task.title}' is already done for {day.isoformat()}.")

        if member_names:
            member_ids = self._resolve_names(family, member_names)
            if isinstance(member_ids, ErrorResponse):
                return member_ids
        elif len(task.assigned_to) == 1:
            member_ids = list(task.assigned_to)
        else:
            return _error(f"Who completed '{task.title}'? Name one or more members.")

        saved = self._record_db.add_records(task.id, member_ids, day.isoformat())
        names = family.member_names()
        who = ", ".join(names.get(mid, UNKNOWN_MEMBER) for mid in member_ids)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"'{task.title}' done on {day.isoformat()} by {who}.",
            task=task,
            records=saved,
        )

    @storage_errors
    def edit_record(self, session: Session, record_id: int, member_name: str) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        record = self._family_record(family, record_id)
        if record is None:
            return _error(f"Record #{record_id} not found.")
        member = family.member_by_name(member_name)
        if member is None:
            return _error(f"Family member not found: {member_name.strip()}")

        self._record_db.update_completed_by(record_id, member.id)
        record.completed_by = member.id
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Record #{record_id} now credited to {member.name}.",
            records=[record],
        )

    @storage_errors
    def delete_record(self, session: Session, record_id: int) -> ServiceResponse:
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        record = self._family_record(family, record_id)
        if record is None:
            return _error(f"Record #{record_id} not found.")

        self._record_db.delete_record(record_id)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Record #{record_id} deleted.",
            records=[record],
        )

    @storage_errors
    def history(
        self, session: Session, limit: int | None = None, task_id: int | None = None,
    ) -> ServiceResponse:
        """Most recent completion records with task titles and member names.

        With task_id, only that task's records are listed, newest day first.
        """
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        if task_id is None:
            records = self._record_db.list_records(family.id, limit=limit)
        else:
            if self._family_task(family, task_id) is None:
                return _error(f"Task #{task_id} not found.")
            records = records_for_task(self._record_db.list_records(family.id), task_id)[:limit]

        titles = {t.id: t.title for t in self._task_db.list_tasks(family.id)}
        names = family.member_names()
        entries = [
            HistoryEntry(
                record_id=r.id,
                task_id=r.task_id,
                task_title=titles.get(r.task_id, f"Task #{r.task_id}"),
                member_name=names.get(r.completed_by, UNKNOWN_MEMBER),
                date=r.date,
            )
            for r in records
        ]
        return HistoryResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=f"{len(entries)} record(s)" if entries else "Nothing recorded yet.",
            entries=entries,
        )

    @storage_errors
    def trends(
        self, session: Session, window: TrendWindow | str | int, today: date,
    ) -> ServiceResponse:
        """Completed-task counts per day over the trailing week or month."""
        family = self._family(session)
        if family is None:
            return _error(NO_FAMILY_MESSAGE)
        try:
            window = TrendWindow.from_label(window)
        except ValueError:
            return _error("Trends cover a 'week' or a 'month'.")

        series = build_series(self._record_db.list_records(family.id), window, today)
        total = series_total(series)
        return TrendsResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=f"{total} completion(s) in the last {int(window)} days",
            window=window,
            series=series,
            total=total,
            busiest=busiest_day(series),
        )
