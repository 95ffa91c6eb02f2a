"""
HomeTasks — Data Models.

Plain value shapes shared by the storage layer, the core functions and the
bot. Relations use stable member/task ids; display names are resolved only
when something is shown to a user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Frequency(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


@dataclass
class Session:
    """Identity of the user behind a request.

    Passed explicitly into every service call that reads or writes
    household data.
    """

    user_id: int
    display_name: str = ""


@dataclass
class FamilyMember:
    """A person tasks can be assigned to."""

    id: int
    name: str
    role: str = "member"
    family_id: int | None = None


@dataclass
class Family:
    """A household, owned by the Telegram user who created it."""

    id: int
    name: str
    created_by: int
    members: list[FamilyMember] = field(default_factory=list)
    created_at: str = ""

    def member_by_id(self, member_id: int) -> FamilyMember | None:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def member_by_name(self, name: str) -> FamilyMember | None:
        """Case-insensitive lookup by display name."""
        wanted = name.strip().lower()
        for member in self.members:
            if member.name.lower() == wanted:
                return member
        return None

    def member_names(self) -> dict[int, str]:
        return {m.id: m.name for m in self.members}


@dataclass
class Task:
    """A chore with a schedule and one or more assignees.

    Exactly one of due_date (frequency == once) or the start_date/end_date
    pair (every other frequency) is populated. custom_days is set only for
    custom frequency. assigned_to holds FamilyMember ids.
    """

    id: int
    title: str
    priority: Priority = Priority.MEDIUM
    frequency: Frequency = Frequency.ONCE
    assigned_to: list[int] = field(default_factory=list)
    custom_days: int | None = None
    due_date: str | None = None       # ISO date YYYY-MM-DD
    start_date: str | None = None     # ISO date YYYY-MM-DD
    end_date: str | None = None       # ISO date YYYY-MM-DD
    family_id: int | None = None


@dataclass
class ActivityRecord:
    """One member completing one task on one calendar day.

    Absence of a record means "not completed", so completed is always True
    for stored records.
    """

    task_id: int
    date: str                         # calendar day YYYY-MM-DD
    completed_by: int                 # FamilyMember id
    completed: bool = True
    id: int | None = None
