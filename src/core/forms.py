"""
HomeTasks — Form contracts.

Write-path validation: every family, member and task change is built as
one of these pydantic models before it reaches the database, so stored rows
can be trusted afterwards. Also holds the small text parsers the bot uses
to turn chat replies into form fields.
"""

from __future__ import annotations

import re
from datetime import date, timedelta

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from src.data.models import Frequency, Priority

MAX_NAME_LENGTH = 50
MAX_TITLE_LENGTH = 100


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class MemberDraft(BaseModel):
    """A family member as entered by the user.

    JSON example:
    {"name": "Alice", "role": "parent"}
    """
    name: str
    role: str = "member"

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Member name can't be empty")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"Member name is longer than {MAX_NAME_LENGTH} characters")
        return v

    @field_validator("role")
    @classmethod
    def check_role(cls, v: str) -> str:
        return v.strip().lower() or "member"


class FamilyDraft(BaseModel):
    """A family and its initial members.

    JSON example:
    {"name": "Smith", "members": [{"name": "Alice", "role": "parent"}]}
    """
    name: str
    members: list[MemberDraft]

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Family name can't be empty")
        return v

    @field_validator("members")
    @classmethod
    def check_members(cls, v: list[MemberDraft]) -> list[MemberDraft]:
        if not v:
            raise ValueError("A family needs at least one member")
        seen: set[str] = set()
        for member in v:
            key = member.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate member name: {member.name}")
            seen.add(key)
        return v


class TaskDraft(BaseModel):
    """A task as entered in the task form, before names are resolved to ids.

    JSON example:
    {
        "title": "Take out trash",
        "priority": "high",
        "frequency": "custom",
        "custom_days": 3,
        "start_date": "2024-05-01",
        "end_date": "2024-05-31",
        "assignees": ["Alice", "Bob"]
    }
    """
    title: str
    priority: Priority = Priority.MEDIUM
    frequency: Frequency = Frequency.ONCE
    custom_days: int | None = None
    due_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    assignees: list[str]

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Task title can't be empty")
        if len(v) > MAX_TITLE_LENGTH:
            raise ValueError(f"Task title is longer than {MAX_TITLE_LENGTH} characters")
        return v

    @field_validator("assignees")
    @classmethod
    def check_assignees(cls, v: list[str]) -> list[str]:
        names: list[str] = []
        seen: set[str] = set()
        for raw in v:
            name = raw.strip()
            if name and name.lower() not in seen:
                seen.add(name.lower())
                names.append(name)
        if not names:
            raise ValueError("Assign the task to at least one family member")
        return names

    @model_validator(mode="after")
    def check_schedule(self) -> TaskDraft:
        if self.frequency is Frequency.CUSTOM:
            if self.custom_days is None or self.custom_days <= 0:
                raise ValueError("Custom frequency needs a positive number of days")
        elif self.custom_days is not None:
            raise ValueError("custom_days is only allowed with custom frequency")

        if self.frequency is Frequency.ONCE:
            if self.due_date is None:
                raise ValueError("One-off tasks need a due date")
            if self.start_date is not None or self.end_date is not None:
                raise ValueError("One-off tasks can't have a start/end window")
        else:
            if self.start_date is None or self.end_date is None:
                raise ValueError("Recurring tasks need a start and end date")
            if self.due_date is not None:
                raise ValueError("Recurring tasks can't have a due date")
            if self.end_date < self.start_date:
                raise ValueError("End date is before start date")
        return self

    def storage_fields(self) -> dict:
        """Column values for the tasks table (dates as ISO strings)."""
        return {
            "title": self.title,
            "priority": self.priority.value,
            "frequency": self.frequency.value,
            "custom_days": self.custom_days,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def first_error(exc: ValidationError) -> str:
    """Short, user-facing message for the first validation error."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    msg = errors[0].get("msg", "Invalid input")
    return msg.removeprefix("Value error, ")


# ---------------------------------------------------------------------------
# Chat text parsers. Each returns None on input it can't understand
# ---------------------------------------------------------------------------

_MEMBER_RE = re.compile(r"^(?P<name>[^()]+?)\s*(?:\((?P<role>[^()]*)\))?$")
_DAY_TOKEN_RE = re.compile(r"\d{4}-\d{2}-\d{2}|today|tomorrow|yesterday", re.IGNORECASE)

_PRIORITY_ALIASES = {
    "low": Priority.LOW, "l": Priority.LOW,
    "medium": Priority.MEDIUM, "med": Priority.MEDIUM, "m": Priority.MEDIUM,
    "high": Priority.HIGH, "h": Priority.HIGH,
}


def parse_member_text(text: str) -> MemberDraft | None:
    """Parse "Alice (parent)" or "Alice"."""
    match = _MEMBER_RE.match(text.strip())
    if match is None:
        return None
    try:
        return MemberDraft(name=match["name"], role=match["role"] or "member")
    except ValidationError:
        return None


def parse_family_text(text: str) -> FamilyDraft | None:
    """Parse "Smith: Alice (parent), Bob (child), Carol"."""
    if ":" not in text:
        return None
    family_name, _, members_part = text.partition(":")
    members: list[MemberDraft] = []
    for chunk in members_part.split(","):
        if not chunk.strip():
            continue
        member = parse_member_text(chunk)
        if member is None:
            return None
        members.append(member)
    try:
        return FamilyDraft(name=family_name, members=members)
    except ValidationError:
        return None


def parse_priority(text: str) -> Priority | None:
    return _PRIORITY_ALIASES.get(text.strip().lower())


def parse_frequency(text: str) -> tuple[Frequency, int | None] | None:
    """Parse "once", "daily", "weekly", "custom 3", "every 3 days" or "3".

    Returns (frequency, custom_days).
    """
    value = text.strip().lower()
    for freq in (Frequency.ONCE, Frequency.DAILY, Frequency.WEEKLY):
        if value == freq.value:
            return freq, None

    numbers = re.findall(r"\d+", value)
    if len(numbers) != 1:
        return None
    words = re.sub(r"\d+", " ", value).split()
    if any(w not in ("custom", "every", "days", "day") for w in words):
        return None
    days = int(numbers[0])
    if days <= 0:
        return None
    if days == 1:
        return Frequency.DAILY, None
    if days == 7:
        return Frequency.WEEKLY, None
    return Frequency.CUSTOM, days


def parse_day(text: str, today: date) -> date | None:
    """Parse "today", "yesterday", "tomorrow" or an ISO date."""
    value = text.strip().lower()
    if value == "today":
        return today
    if value == "yesterday":
        return today - timedelta(days=1)
    if value == "tomorrow":
        return today + timedelta(days=1)
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_date_range(text: str, today: date) -> tuple[date, date] | None:
    """Parse two days, e.g. "2024-05-01 to 2024-05-31" or "today 2024-06-30"."""
    tokens = _DAY_TOKEN_RE.findall(text)
    if len(tokens) != 2:
        return None
    start = parse_day(tokens[0], today)
    end = parse_day(tokens[1], today)
    if start is None or end is None:
        return None
    return start, end


def parse_names(text: str) -> list[str]:
    """Split "Alice, Bob and Carol" into names."""
    parts = re.split(r",|\band\b|&", text)
    return [p.strip() for p in parts if p.strip()]
