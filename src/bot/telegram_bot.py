"""
HomeTasks — Telegram Bot.

Telegram is the household's user interface: setting up the family,
managing tasks, recording completions, browsing history and trends all
flow through this bot. Handlers translate chat input into HouseholdService
calls and render the response objects.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)
from telegram.helpers import escape_markdown

from src.config import settings
from src.core.completion import ViewMode
from src.core.forms import (
    parse_date_range,
    parse_day,
    parse_family_text,
    parse_frequency,
    parse_member_text,
    parse_names,
    parse_priority,
)
from src.core.grouping import GroupBy, is_shared
from src.core.household_service import ErrorResponse, ServiceResponse
from src.core.task_schedule import frequency_text
from src.data.models import Frequency, Priority, Session, Task

if TYPE_CHECKING:
    from src.core.household_service import HouseholdService
    from src.data.db import FamilyDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

BAR = "█"


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session(update: Update) -> Session:
    user = update.effective_user
    return Session(user_id=user.id, display_name=user.first_name or "")


def _service(context: ContextTypes.DEFAULT_TYPE) -> HouseholdService:
    return context.bot_data["service"]


def _esc(text: str) -> str:
    return escape_markdown(str(text), version=1)


def _response_text(response: ServiceResponse) -> str:
    if isinstance(response, ErrorResponse):
        return response.message
    return f"✅ {response.message}"


async def _reply(update: Update, response: ServiceResponse, **kwargs: Any) -> None:
    """Reply with a plain-text rendering of a success/error response."""
    await update.message.reply_text(_response_text(response), **kwargs)


def _task_line(task: Task, done: bool | None = None) -> str:
    mark = "" if done is None else ("✅ " if done else "⬜ ")
    return (
        f"{mark}`{task.id}` — {_esc(task.title)} "
        f"· {task.priority.value} · {_esc(frequency_text(task))}"
    )


# ---------------------------------------------------------------------------
# General commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *HomeTasks*!\n\n"
        "I keep track of your family's chores:\n"
        "• Set up your family with /setfamily\n"
        "• Add chores with /addtask and assign them to members\n"
        "• Mark chores done with /record or /done\n"
        "• See who did what with /history and /trends\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Family*\n"
        "/family — Show your family\n"
        "/setfamily Name: Alice (parent), Bob (child) — Create or update it\n"
        "/addmember <name> [(role)] — Add a member\n"
        "/renamemember <old name>, <new name> — Rename a member\n"
        "/removemember <name> — Remove a member\n\n"
        "*Tasks*\n"
        "/addtask — Add a task\n"
        "/edittask <id> — Edit a task\n"
        "/tasks [individual|shared] — List tasks\n"
        "/deletetask — Delete a task\n\n"
        "*Completions*\n"
        "/today [all|pending|completed] [date] — Status for a day\n"
        "/record — Tap a pending task to mark it done\n"
        "/done <task id> [names] [@date] — Mark a task done\n"
        "/history [#task id] [n] — Recent completions\n"
        "/editrecord <record id> <name> — Change who did it\n"
        "/deleterecord <record id> — Remove a completion\n"
        "/trends [week|month] — Completions per day\n\n"
        "/cancel — Abort the current conversation",
        parse_mode="Markdown",
    )


# ---------------------------------------------------------------------------
# Family commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_family(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /family — show the family and its members."""
    response = _service(context).get_family(_session(update))
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    family = response.family
    lines = [f"*{_esc(family.name)} family*\n"]
    for m in family.members:
        lines.append(f"• {_esc(m.name)} ({_esc(m.role)})")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_setfamily(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /setfamily Name: Alice (parent), Bob (child)."""
    draft = parse_family_text(" ".join(context.args or []))
    if draft is None:
        await update.message.reply_text(
            "Usage: /setfamily Smith: Alice (parent), Bob (child), Carol\n"
            "Member names must be unique."
        )
        return
    await _reply(update, _service(context).setup_family(_session(update), draft))


@authorized_only
async def cmd_addmember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addmember <name> [(role)], e.g. /addmember Mary Ann (child)."""
    member = parse_member_text(" ".join(context.args or []))
    if member is None:
        await update.message.reply_text("Usage: /addmember <name> [(role)]")
        return
    await _reply(
        update, _service(context).add_member(_session(update), member.name, member.role)
    )


@authorized_only
async def cmd_renamemember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /renamemember <old name>, <new name>."""
    names = [n.strip() for n in " ".join(context.args or []).split(",")]
    if len(names) != 2 or not all(names):
        await update.message.reply_text("Usage: /renamemember <old name>, <new name>")
        return
    await _reply(update, _service(context).rename_member(_session(update), names[0], names[1]))


@authorized_only
async def cmd_removemember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /removemember <name>."""
    name = " ".join(context.args or []).strip()
    if not name:
        await update.message.reply_text("Usage: /removemember <name>")
        return
    await _reply(update, _service(context).remove_member(_session(update), name))


# ---------------------------------------------------------------------------
# Task form conversation (/addtask and /edittask)
# ---------------------------------------------------------------------------

# ConversationHandler states for the task form
(
    TASK_TITLE,
    TASK_PRIORITY,
    TASK_FREQUENCY,
    TASK_DATES,
    TASK_ASSIGNEES,
    TASK_CONFIRM,
) = range(6)

_TASK_KEYS = [
    "task_edit_id", "task_title", "task_priority", "task_frequency",
    "task_custom_days", "task_due_date", "task_start_date", "task_end_date",
    "task_assignees", "task_member_names",
]


def _clear_task_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Remove all task-form keys from user_data."""
    for k in _TASK_KEYS:
        context.user_data.pop(k, None)


def _task_draft(context: ContextTypes.DEFAULT_TYPE) -> dict:
    data = context.user_data
    return {
        "title": data["task_title"],
        "priority": data["task_priority"],
        "frequency": data["task_frequency"],
        "custom_days": data.get("task_custom_days"),
        "due_date": data.get("task_due_date"),
        "start_date": data.get("task_start_date"),
        "end_date": data.get("task_end_date"),
        "assignees": data["task_assignees"],
    }


def _member_keyboard(names: list[str]) -> ReplyKeyboardMarkup:
    rows = [names[i:i + 3] for i in range(0, len(names), 3)]
    return ReplyKeyboardMarkup(rows, one_time_keyboard=True, resize_keyboard=True)


async def _start_task_form(
    update: Update, context: ContextTypes.DEFAULT_TYPE, task: Task | None, member_names: list[str],
) -> int:
    _clear_task_data(context)
    context.user_data["task_edit_id"] = task.id if task else None
    context.user_data["task_member_names"] = member_names
    if task is None:
        await update.message.reply_text(
            "What's the task? (e.g., 'Take out trash')\nSend /cancel to stop.",
        )
    else:
        await update.message.reply_text(
            f"Editing task #{task.id}. New title?",
            reply_markup=ReplyKeyboardMarkup(
                [[task.title]], one_time_keyboard=True, resize_keyboard=True,
            ),
        )
    return TASK_TITLE


@authorized_only
async def cmd_addtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /addtask — start the task form."""
    response = _service(context).get_family(_session(update))
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return ConversationHandler.END
    names = [m.name for m in response.family.members]
    return await _start_task_form(update, context, None, names)


@authorized_only
async def cmd_edittask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /edittask <id> — start the task form prefilled from a task."""
    args = context.args or []
    try:
        task_id = int(args[0])
    except (IndexError, ValueError):
        await update.message.reply_text("Usage: /edittask <task_id>\nUse /tasks to see IDs.")
        return ConversationHandler.END

    response = _service(context).get_task(_session(update), task_id)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return ConversationHandler.END
    names = [m.name for m in response.family.members]
    return await _start_task_form(update, context, response.task, names)


async def task_title(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the title, ask for priority."""
    context.user_data["task_title"] = update.message.text.strip()
    keyboard = ReplyKeyboardMarkup(
        [["Low", "Medium", "High"]], one_time_keyboard=True, resize_keyboard=True,
    )
    await update.message.reply_text("Priority?", reply_markup=keyboard)
    return TASK_PRIORITY


async def task_priority(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the priority, ask for frequency."""
    priority = parse_priority(update.message.text)
    if priority is None:
        await update.message.reply_text("Please pick Low, Medium or High.")
        return TASK_PRIORITY
    context.user_data["task_priority"] = priority.value
    keyboard = ReplyKeyboardMarkup(
        [["Once", "Daily", "Weekly"], ["Every 3 days"]],
        one_time_keyboard=True,
        resize_keyboard=True,
    )
    await update.message.reply_text(
        "How often?\nPick an option or type 'every N days'.", reply_markup=keyboard,
    )
    return TASK_FREQUENCY


async def task_frequency(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the frequency, ask for a due date or a start/end window."""
    parsed = parse_frequency(update.message.text)
    if parsed is None:
        await update.message.reply_text(
            "I couldn't understand that. Try 'once', 'daily', 'weekly' or 'every 3 days'."
        )
        return TASK_FREQUENCY
    frequency, custom_days = parsed
    context.user_data["task_frequency"] = frequency.value
    context.user_data["task_custom_days"] = custom_days

    if frequency is Frequency.ONCE:
        await update.message.reply_text(
            "When is it due? (YYYY-MM-DD, 'today' or 'tomorrow')",
            reply_markup=ReplyKeyboardMarkup(
                [["Today", "Tomorrow"]], one_time_keyboard=True, resize_keyboard=True,
            ),
        )
    else:
        await update.message.reply_text(
            "From when to when? (e.g., 'today to 2024-12-31')",
            reply_markup=ReplyKeyboardRemove(),
        )
    return TASK_DATES


async def task_dates(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the date(s), ask for assignees."""
    text = update.message.text
    today = _service(context).today()
    data = context.user_data

    if data["task_frequency"] == Frequency.ONCE.value:
        due = parse_day(text, today)
        if due is None:
            await update.message.reply_text("Please send a date like 2024-05-01 or 'tomorrow'.")
            return TASK_DATES
        data["task_due_date"] = due.isoformat()
        data["task_start_date"] = data["task_end_date"] = None
    else:
        window = parse_date_range(text, today)
        if window is None:
            await update.message.reply_text(
                "Please send two dates, e.g. '2024-05-01 to 2024-05-31'."
            )
            return TASK_DATES
        data["task_start_date"], data["task_end_date"] = (d.isoformat() for d in window)
        data["task_due_date"] = None

    await update.message.reply_text(
        "Who is it assigned to? Separate names with commas.",
        reply_markup=_member_keyboard(data.get("task_member_names", [])),
    )
    return TASK_ASSIGNEES


async def task_assignees(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive assignee names, show a summary and ask to confirm."""
    names = parse_names(update.message.text)
    if not names:
        await update.message.reply_text("Please name at least one family member.")
        return TASK_ASSIGNEES
    context.user_data["task_assignees"] = names

    data = context.user_data
    preview = Task(
        id=0,
        title=data["task_title"],
        frequency=Frequency(data["task_frequency"]),
        custom_days=data.get("task_custom_days"),
        due_date=data.get("task_due_date"),
        start_date=data.get("task_start_date"),
        end_date=data.get("task_end_date"),
    )
    heading = "Update task" if data.get("task_edit_id") else "New task"
    lines = [
        f"*{heading}:*\n",
        f"  Title: {_esc(preview.title)}",
        f"  Priority: {Priority(data['task_priority']).value}",
        f"  Schedule: {_esc(frequency_text(preview))}",
        f"  Assigned to: {_esc(', '.join(names))}",
        "\nSave?",
    ]
    keyboard = ReplyKeyboardMarkup([["Yes", "No"]], one_time_keyboard=True, resize_keyboard=True)
    await update.message.reply_text(
        "\n".join(lines), parse_mode="Markdown", reply_markup=keyboard,
    )
    return TASK_CONFIRM


async def task_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle confirmation — validate and save through the service."""
    answer = update.message.text.strip().lower()
    if answer not in ("yes", "y"):
        await update.message.reply_text("Task not saved.", reply_markup=ReplyKeyboardRemove())
        _clear_task_data(context)
        return ConversationHandler.END

    service = _service(context)
    edit_id = context.user_data.get("task_edit_id")
    draft = _task_draft(context)
    if edit_id:
        response = service.update_task(_session(update), edit_id, draft)
    else:
        response = service.create_task(_session(update), draft)

    await _reply(update, response, reply_markup=ReplyKeyboardRemove())
    _clear_task_data(context)
    return ConversationHandler.END


async def task_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel the task form."""
    _clear_task_data(context)
    await update.message.reply_text("Cancelled.", reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Task commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks [individual|shared] — list tasks grouped."""
    args = context.args or []
    group_by = args[0].lower() if args else GroupBy.INDIVIDUAL
    response = _service(context).list_tasks(_session(update), group_by)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    if not any(response.groups.values()):
        await update.message.reply_text(response.message)
        return

    lines: list[str] = []
    for label, tasks in response.groups.items():
        lines.append(f"\n*{_esc(label)}*")
        if not tasks:
            lines.append("  (none)")
        lines.extend(_task_line(t) for t in tasks)
    await update.message.reply_text("\n".join(lines).strip(), parse_mode="Markdown")


@authorized_only
async def cmd_deletetask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deletetask — show tasks as buttons to pick from."""
    response = _service(context).list_tasks(_session(update), GroupBy.SHARED)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    tasks = [t for bucket in response.groups.values() for t in bucket]
    if not tasks:
        await update.message.reply_text("No tasks to delete.")
        return

    tasks.sort(key=lambda t: t.id)
    keyboard = [
        [InlineKeyboardButton(t.title, callback_data=f"deltask:{t.id}")]
        for t in tasks
    ]
    await update.message.reply_text(
        "Which task do you want to delete?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_deletetask_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete a task."""
    query = update.callback_query
    await query.answer()

    # Verify the user is authorized
    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    task_id = int(query.data.split(":")[1])
    response = _service(context).delete_task(_session(update), task_id)
    await query.edit_message_text(_response_text(response))


# ---------------------------------------------------------------------------
# Completion commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today [all|pending|completed] [date] — task status for a day."""
    service = _service(context)
    mode = ViewMode.ALL
    day = service.today()

    for arg in context.args or []:
        if arg.lower() in {m.value for m in ViewMode}:
            mode = ViewMode(arg.lower())
            continue
        parsed = parse_day(arg, service.today())
        if parsed is None:
            await update.message.reply_text(
                "Usage: /today [all|pending|completed] [YYYY-MM-DD|yesterday]"
            )
            return
        day = parsed

    response = service.day_status(_session(update), day, mode)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    if not response.tasks:
        empty = {
            ViewMode.ALL: "No tasks scheduled",
            ViewMode.PENDING: "Nothing pending",
            ViewMode.COMPLETED: "Nothing completed yet",
        }[mode]
        await update.message.reply_text(f"{empty} for {day.isoformat()}.")
        return

    lines = [f"*{day.isoformat()} — {mode.value}:*\n"]
    lines.extend(_task_line(t, t.id in response.completed_ids) for t in response.tasks)
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <task_id> [names…] [@date] — record a completion."""
    service = _service(context)
    args = context.args or []
    if not args:
        await update.message.reply_text(
            "Usage: /done <task_id> [names] [@date]\nUse /tasks to see IDs."
        )
        return

    try:
        task_id = int(args[0])
    except ValueError:
        await update.message.reply_text("Invalid task ID. Use /tasks to see valid IDs.")
        return

    day = service.today()
    name_args: list[str] = []
    for arg in args[1:]:
        if arg.startswith("@"):
            parsed = parse_day(arg[1:], service.today())
            if parsed is None:
                await update.message.reply_text("Invalid date. Use @YYYY-MM-DD or @yesterday.")
                return
            day = parsed
        else:
            name_args.append(arg)

    names = parse_names(" ".join(name_args))
    await _reply(update, service.record_completion(_session(update), task_id, names, day))


@authorized_only
async def cmd_record(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /record — show today's pending tasks as buttons."""
    service = _service(context)
    response = service.day_status(_session(update), service.today(), ViewMode.PENDING)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    if not response.tasks:
        await update.message.reply_text("Everything's done for today 🎉")
        return

    keyboard = [
        [InlineKeyboardButton(t.title, callback_data=f"record:{t.id}")]
        for t in response.tasks
    ]
    await update.message.reply_text(
        "Which task was completed?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_record_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle a tap on a pending task (record:<task_id>).

    Individual tasks are recorded at once; shared tasks ask who did it.
    """
    query = update.callback_query

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        await query.answer()
        return

    if context.user_data.get("record_pending"):
        await query.answer("Still saving the previous one…")
        return
    await query.answer()

    service = _service(context)
    task_id = int(query.data.split(":")[1])
    response = service.get_task(_session(update), task_id)
    if isinstance(response, ErrorResponse):
        await query.edit_message_text(response.message)
        return

    task = response.task
    if is_shared(task):
        keyboard = [
            [InlineKeyboardButton(
                response.family.member_names().get(mid, "Unknown"),
                callback_data=f"recordby:{task.id}:{mid}",
            )]
            for mid in task.assigned_to
        ]
        keyboard.append([InlineKeyboardButton("Everyone", callback_data=f"recordby:{task.id}:all")])
        await query.edit_message_text(
            f"Who completed '{task.title}'?", reply_markup=InlineKeyboardMarkup(keyboard),
        )
        return

    await _record_from_callback(update, context, task.id, None)


async def _handle_recordby_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the completer choice for a shared task (recordby:<task_id>:<member_id|all>)."""
    query = update.callback_query

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        await query.answer()
        return

    if context.user_data.get("record_pending"):
        await query.answer("Still saving the previous one…")
        return
    await query.answer()

    _, task_id, who = query.data.split(":")
    response = _service(context).get_task(_session(update), int(task_id))
    if isinstance(response, ErrorResponse):
        await query.edit_message_text(response.message)
        return

    names_by_id = response.family.member_names()
    member_ids = response.task.assigned_to if who == "all" else [int(who)]
    names = [names_by_id[mid] for mid in member_ids if mid in names_by_id]
    if not names:
        await query.edit_message_text("That member is no longer in the family.")
        return
    await _record_from_callback(update, context, response.task.id, names)


async def _record_from_callback(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    task_id: int,
    names: list[str] | None,
) -> None:
    """Write one completion while holding the per-user record_pending flag."""
    service = _service(context)
    context.user_data["record_pending"] = True
    try:
        response = await asyncio.to_thread(
            service.record_completion, _session(update), task_id, names, service.today(),
        )
    finally:
        context.user_data.pop("record_pending", None)
    await update.callback_query.edit_message_text(_response_text(response))


@authorized_only
async def cmd_history(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /history [#task_id] [n] — most recent completions."""
    args = list(context.args or [])
    task_id = None
    try:
        if args and args[0].startswith("#"):
            task_id = int(args.pop(0)[1:])
        limit = int(args[0]) if args else settings.HISTORY_LIMIT
        if limit < 1 or len(args) > 1:
            raise ValueError
    except ValueError:
        await update.message.reply_text("Usage: /history [#task id] [number of records]")
        return

    response = _service(context).history(_session(update), limit, task_id=task_id)
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    if not response.entries:
        await update.message.reply_text(response.message)
        return

    lines = ["*Recent completions:*\n"]
    for e in response.entries:
        lines.append(
            f"`{e.record_id}` {_esc(e.date)} — {_esc(e.task_title)} — {_esc(e.member_name)}"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_editrecord(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /editrecord <record_id> <name> — change who completed it."""
    args = context.args or []
    try:
        record_id = int(args[0])
        name = " ".join(args[1:]).strip()
        if not name:
            raise ValueError
    except (IndexError, ValueError):
        await update.message.reply_text(
            "Usage: /editrecord <record_id> <name>\nUse /history to see IDs."
        )
        return
    await _reply(update, _service(context).edit_record(_session(update), record_id, name))


@authorized_only
async def cmd_deleterecord(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deleterecord <record_id>."""
    args = context.args or []
    try:
        record_id = int(args[0])
    except (IndexError, ValueError):
        await update.message.reply_text(
            "Usage: /deleterecord <record_id>\nUse /history to see IDs."
        )
        return
    await _reply(update, _service(context).delete_record(_session(update), record_id))


@authorized_only
async def cmd_trends(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /trends [week|month] — completed tasks per day as a bar chart."""
    service = _service(context)
    args = context.args or []
    window = args[0] if args else settings.DEFAULT_TREND_WINDOW

    response = service.trends(_session(update), window, service.today())
    if isinstance(response, ErrorResponse):
        await _reply(update, response)
        return

    lines = [f"*Completed tasks, last {int(response.window)} days*\n", "```"]
    for point in response.series:
        lines.append(f"{point.date} {BAR * point.completed} {point.completed}")
    lines.append("```")
    lines.append(f"Total: {response.total}")
    if response.busiest is not None:
        lines.append(f"Busiest day: {response.busiest.date} ({response.busiest.completed})")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    service: HouseholdService | None = None,
    family_db: FamilyDB | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: Household service. Defaults to one over the SQLite stores
                 at settings.DATABASE_PATH.
        family_db: Family store used by the daily reminder.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    # Wire default adapters if not provided
    if family_db is None:
        from src.data.db import FamilyDB
        family_db = FamilyDB()

    if service is None:
        from src.core.household_service import HouseholdService
        from src.data.db import RecordDB, TaskDB

        tz = ZoneInfo(settings.TIMEZONE)
        service = HouseholdService(family_db, TaskDB(), RecordDB(tz=tz), tz=tz)

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    # Store the service in bot_data for handler access
    app.bot_data["service"] = service

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("family", cmd_family))
    app.add_handler(CommandHandler("setfamily", cmd_setfamily))
    app.add_handler(CommandHandler("addmember", cmd_addmember))
    app.add_handler(CommandHandler("renamemember", cmd_renamemember))
    app.add_handler(CommandHandler("removemember", cmd_removemember))
    app.add_handler(CommandHandler("tasks", cmd_tasks))
    app.add_handler(CommandHandler("deletetask", cmd_deletetask))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("record", cmd_record))
    app.add_handler(CommandHandler("history", cmd_history))
    app.add_handler(CommandHandler("editrecord", cmd_editrecord))
    app.add_handler(CommandHandler("deleterecord", cmd_deleterecord))
    app.add_handler(CommandHandler("trends", cmd_trends))
    app.add_handler(CallbackQueryHandler(_handle_deletetask_callback, pattern=r"^deltask:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_record_callback, pattern=r"^record:\d+$"))
    app.add_handler(
        CallbackQueryHandler(_handle_recordby_callback, pattern=r"^recordby:\d+:(\d+|all)$")
    )

    # /addtask and /edittask share one conversation
    _text = filters.TEXT & ~filters.COMMAND
    task_conv = ConversationHandler(
        entry_points=[
            CommandHandler("addtask", cmd_addtask),
            CommandHandler("edittask", cmd_edittask),
        ],
        states={
            TASK_TITLE: [MessageHandler(_text, task_title)],
            TASK_PRIORITY: [MessageHandler(_text, task_priority)],
            TASK_FREQUENCY: [MessageHandler(_text, task_frequency)],
            TASK_DATES: [MessageHandler(_text, task_dates)],
            TASK_ASSIGNEES: [MessageHandler(_text, task_assignees)],
            TASK_CONFIRM: [MessageHandler(_text, task_confirm)],
        },
        fallbacks=[CommandHandler("cancel", task_cancel)],
    )
    app.add_handler(task_conv)

    # Daily reminder, scheduled on the Telegram job queue
    _setup_daily_reminder(app, family_db, service, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_daily_reminder(
    app: Application,
    family_db: FamilyDB,
    service: HouseholdService,
    notifier: NotificationPort,
) -> None:
    """Register the daily pending-tasks reminder at DAILY_REMINDER_HOUR in TIMEZONE."""
    from src.core.scheduler import send_daily_reminders

    tz = ZoneInfo(settings.TIMEZONE)
    reminder_time = dt_time(hour=settings.DAILY_REMINDER_HOUR, minute=0, tzinfo=tz)

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_daily_reminders(notifier, family_db, service)

    app.job_queue.run_daily(
        _reminder_job_callback,
        time=reminder_time,
        name="daily_reminder",
    )

    logger.info(
        "Daily reminder scheduled at %02d:00 %s",
        settings.DAILY_REMINDER_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting HomeTasks bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
