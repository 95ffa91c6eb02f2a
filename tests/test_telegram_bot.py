"""Tests for src.bot.telegram_bot — Telegram bot handlers.

Tests the task-form conversation, command handlers, inline-button callbacks
and authorization. Handlers talk to a real HouseholdService over a temp DB;
Telegram objects are mocked.
"""

import asyncio

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from telegram.ext import ConversationHandler

from src.bot.telegram_bot import (
    TASK_ASSIGNEES,
    TASK_CONFIRM,
    TASK_DATES,
    TASK_FREQUENCY,
    TASK_PRIORITY,
    TASK_TITLE,
    _clear_task_data,
)

DAY = date(2024, 5, 10)


def _make_update(text="", user_id=12345, first_name="Dana"):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.effective_user.first_name = first_name
    update.message.reply_text = AsyncMock()
    return update


def _make_callback_update(data, user_id=12345):
    """Create a mock Update carrying an inline-button tap."""
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_user.first_name = "Dana"
    update.callback_query.data = data
    update.callback_query.from_user.id = user_id
    update.callback_query.answer = AsyncMock()
    update.callback_query.edit_message_text = AsyncMock()
    return update


def _make_context(service, args=None):
    """Create a mock context with user_data dict and bot_data with the service."""
    context = MagicMock()
    context.user_data = {}
    context.args = args or []
    context.bot_data = {"service": service}
    return context


def _reply_text(update):
    return update.message.reply_text.call_args.args[0]


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_unknown_user_is_ignored(self, service):
        from src.bot.telegram_bot import cmd_start

        update = _make_update(user_id=999)
        await cmd_start(update, _make_context(service))
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_user_gets_reply(self, service):
        from src.bot.telegram_bot import cmd_help

        update = _make_update()
        await cmd_help(update, _make_context(service))
        assert "/addtask" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_callback_from_unknown_user_is_ignored(self, service, family, task_form):
        from src.bot.telegram_bot import _handle_deletetask_callback

        update = _make_callback_update("deltask:1", user_id=999)
        await _handle_deletetask_callback(update, _make_context(service))
        update.callback_query.edit_message_text.assert_not_called()


# ---------------------------------------------------------------------------
# Family commands
# ---------------------------------------------------------------------------


class TestFamilyCommands:
    @pytest.mark.asyncio
    async def test_setfamily_creates_family(self, service, session):
        from src.bot.telegram_bot import cmd_setfamily

        update = _make_update()
        args = ["Smith:", "Alice", "(parent),", "Bob"]
        await cmd_setfamily(update, _make_context(service, args))
        assert _reply_text(update).startswith("✅ Family 'Smith' created")
        assert [m.name for m in service.get_family(session).family.members] == ["Alice", "Bob"]

    @pytest.mark.asyncio
    async def test_setfamily_usage(self, service):
        from src.bot.telegram_bot import cmd_setfamily

        update = _make_update()
        await cmd_setfamily(update, _make_context(service, ["Smith"]))
        assert _reply_text(update).startswith("Usage: /setfamily")

    @pytest.mark.asyncio
    async def test_family_lists_members(self, service, family):
        from src.bot.telegram_bot import cmd_family

        update = _make_update()
        await cmd_family(update, _make_context(service))
        text = _reply_text(update)
        assert "Smith family" in text
        assert "Alice (parent)" in text

    @pytest.mark.asyncio
    async def test_addmember_with_role(self, service, session, family):
        from src.bot.telegram_bot import cmd_addmember

        update = _make_update()
        await cmd_addmember(update, _make_context(service, ["Carol", "(child)"]))
        assert service.get_family(session).family.member_by_name("Carol").role == "child"

    @pytest.mark.asyncio
    async def test_addmember_two_word_name(self, service, session, family):
        from src.bot.telegram_bot import cmd_addmember

        update = _make_update()
        await cmd_addmember(update, _make_context(service, ["Mary", "Ann", "(child)"]))
        member = service.get_family(session).family.member_by_name("Mary Ann")
        assert member is not None
        assert member.role == "child"

    @pytest.mark.asyncio
    async def test_addmember_usage(self, service, family):
        from src.bot.telegram_bot import cmd_addmember

        update = _make_update()
        await cmd_addmember(update, _make_context(service))
        assert _reply_text(update).startswith("Usage: /addmember")

    @pytest.mark.asyncio
    async def test_renamemember_two_word_names(self, service, session, family):
        from src.bot.telegram_bot import cmd_renamemember

        service.add_member(session, "Mary Ann", "child")
        update = _make_update()
        await cmd_renamemember(update, _make_context(service, ["Mary", "Ann,", "Mary", "Jo"]))
        family = service.get_family(session).family
        assert family.member_by_name("Mary Ann") is None
        assert family.member_by_name("Mary Jo") is not None

    @pytest.mark.asyncio
    async def test_renamemember_needs_two_names(self, service, family):
        from src.bot.telegram_bot import cmd_renamemember

        update = _make_update()
        await cmd_renamemember(update, _make_context(service, ["Alice", "Alicia"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_removemember_unknown(self, service, family):
        from src.bot.telegram_bot import cmd_removemember

        update = _make_update()
        await cmd_removemember(update, _make_context(service, ["Zed"]))
        assert _reply_text(update) == "Family member not found: Zed"


# ---------------------------------------------------------------------------
# Task form conversation
# ---------------------------------------------------------------------------


class TestClearTaskData:
    def test_clears_all_keys(self):
        context = MagicMock()
        context.user_data = {
            "task_title": "Dishes",
            "task_priority": "high",
            "task_frequency": "daily",
            "task_assignees": ["Alice"],
            "task_edit_id": 3,
            "record_pending": True,
        }
        _clear_task_data(context)
        assert "task_title" not in context.user_data
        assert "task_edit_id" not in context.user_data
        assert "record_pending" in context.user_data


class TestTaskForm:
    @pytest.mark.asyncio
    async def test_addtask_needs_family(self, service):
        from src.bot.telegram_bot import cmd_addtask

        update = _make_update()
        result = await cmd_addtask(update, _make_context(service))
        assert result == ConversationHandler.END
        assert "Set up your family first" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_full_conversation_creates_task(self, service, session, family):
        from src.bot.telegram_bot import (
            cmd_addtask,
            task_assignees,
            task_confirm,
            task_dates,
            task_frequency,
            task_priority,
            task_title,
        )

        context = _make_context(service)
        steps = [
            (cmd_addtask, "/addtask", TASK_TITLE),
            (task_title, "Take out trash", TASK_PRIORITY),
            (task_priority, "High", TASK_FREQUENCY),
            (task_frequency, "every 3 days", TASK_DATES),
            (task_dates, "2024-05-01 to 2024-05-31", TASK_ASSIGNEES),
            (task_assignees, "Alice, Bob", TASK_CONFIRM),
            (task_confirm, "Yes", ConversationHandler.END),
        ]
        for handler, text, expected in steps:
            update = _make_update(text)
            assert await handler(update, context) == expected

        assert "created" in _reply_text(update)
        assert "task_title" not in context.user_data
        tasks = service.list_tasks(session, "shared").groups["Shared Tasks"]
        assert len(tasks) == 1
        assert tasks[0].title == "Take out trash"
        assert tasks[0].custom_days == 3
        assert tasks[0].priority.value == "high"

    @pytest.mark.asyncio
    async def test_invalid_priority_retries(self, service):
        from src.bot.telegram_bot import task_priority

        update = _make_update("urgent")
        assert await task_priority(update, _make_context(service)) == TASK_PRIORITY

    @pytest.mark.asyncio
    async def test_invalid_frequency_retries(self, service):
        from src.bot.telegram_bot import task_frequency

        update = _make_update("now and then")
        assert await task_frequency(update, _make_context(service)) == TASK_FREQUENCY

    @pytest.mark.asyncio
    async def test_once_task_asks_for_due_date(self, service):
        from src.bot.telegram_bot import task_dates, task_frequency

        context = _make_context(service)
        update = _make_update("once")
        assert await task_frequency(update, context) == TASK_DATES
        assert "due" in _reply_text(update)

        with patch.object(service, "today", return_value=DAY):
            update = _make_update("tomorrow")
            assert await task_dates(update, context) == TASK_ASSIGNEES
        assert context.user_data["task_due_date"] == "2024-05-11"
        assert context.user_data["task_start_date"] is None

    @pytest.mark.asyncio
    async def test_bad_dates_retry(self, service):
        from src.bot.telegram_bot import task_dates

        context = _make_context(service)
        context.user_data["task_frequency"] = "daily"
        update = _make_update("next month sometime")
        assert await task_dates(update, context) == TASK_DATES

    @pytest.mark.asyncio
    async def test_unknown_assignee_reported_on_confirm(self, service, session, family):
        from src.bot.telegram_bot import task_confirm

        context = _make_context(service)
        context.user_data.update({
            "task_title": "Dishes",
            "task_priority": "medium",
            "task_frequency": "daily",
            "task_start_date": "2024-05-01",
            "task_end_date": "2024-05-31",
            "task_assignees": ["Zed"],
        })
        update = _make_update("yes")
        assert await task_confirm(update, context) == ConversationHandler.END
        assert _reply_text(update) == "Family member not found: Zed"
        assert service.list_tasks(session).groups == {}

    @pytest.mark.asyncio
    async def test_decline_does_not_save(self, service, session, family):
        from src.bot.telegram_bot import task_confirm

        context = _make_context(service)
        context.user_data["task_title"] = "Dishes"
        update = _make_update("No")
        assert await task_confirm(update, context) == ConversationHandler.END
        assert "not saved" in _reply_text(update)
        assert context.user_data == {}

    @pytest.mark.asyncio
    async def test_edittask_updates_existing(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_edittask, task_confirm

        task = service.create_task(session, task_form()).task
        context = _make_context(service, [str(task.id)])
        assert await cmd_edittask(_make_update(), context) == TASK_TITLE
        assert context.user_data["task_edit_id"] == task.id

        context.user_data.update({
            "task_title": "Laundry",
            "task_priority": "low",
            "task_frequency": "weekly",
            "task_start_date": "2024-05-01",
            "task_end_date": "2024-06-30",
            "task_assignees": ["Bob"],
        })
        update = _make_update("Yes")
        await task_confirm(update, context)
        assert "updated" in _reply_text(update)
        assert service.get_task(session, task.id).task.title == "Laundry"

    @pytest.mark.asyncio
    async def test_edittask_bad_id(self, service, family):
        from src.bot.telegram_bot import cmd_edittask

        update = _make_update()
        result = await cmd_edittask(update, _make_context(service, ["abc"]))
        assert result == ConversationHandler.END
        assert _reply_text(update).startswith("Usage")


# ---------------------------------------------------------------------------
# Task and completion commands
# ---------------------------------------------------------------------------


class TestTaskCommands:
    @pytest.mark.asyncio
    async def test_tasks_grouped_by_member(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_tasks

        service.create_task(session, task_form("Dishes", ["Alice", "Bob"]))
        update = _make_update()
        await cmd_tasks(update, _make_context(service))
        text = _reply_text(update)
        assert "*Alice*" in text and "*Bob*" in text
        assert "Daily (2024-05-01 – 2024-05-31)" in text

    @pytest.mark.asyncio
    async def test_tasks_empty(self, service, family):
        from src.bot.telegram_bot import cmd_tasks

        update = _make_update()
        await cmd_tasks(update, _make_context(service))
        assert "No tasks yet" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_deletetask_flow(self, service, session, family, task_form):
        from src.bot.telegram_bot import _handle_deletetask_callback, cmd_deletetask

        task = service.create_task(session, task_form()).task
        update = _make_update()
        await cmd_deletetask(update, _make_context(service))
        markup = update.message.reply_text.call_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data == f"deltask:{task.id}"

        cb = _make_callback_update(f"deltask:{task.id}")
        await _handle_deletetask_callback(cb, _make_context(service))
        assert "deleted" in cb.callback_query.edit_message_text.call_args.args[0]


class TestCompletionCommands:
    @pytest.mark.asyncio
    async def test_done_with_date(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_done

        task = service.create_task(session, task_form()).task
        update = _make_update()
        await cmd_done(update, _make_context(service, [str(task.id), "@2024-05-10"]))
        assert _reply_text(update) == "✅ 'Dishes' done on 2024-05-10 by Alice."

    @pytest.mark.asyncio
    async def test_done_with_names(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_done

        task = service.create_task(session, task_form(assignees=["Alice", "Bob"])).task
        update = _make_update()
        args = [str(task.id), "Alice,", "Bob", "@2024-05-10"]
        await cmd_done(update, _make_context(service, args))
        assert "by Alice, Bob" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_done_with_two_word_member(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_done

        service.add_member(session, "Mary Ann", "child")
        task = service.create_task(session, task_form(assignees=["Alice", "Mary Ann"])).task
        update = _make_update()
        args = [str(task.id), "Mary", "Ann", "@2024-05-10"]
        await cmd_done(update, _make_context(service, args))
        assert _reply_text(update) == "✅ 'Dishes' done on 2024-05-10 by Mary Ann."

    @pytest.mark.asyncio
    async def test_done_invalid_id(self, service, family):
        from src.bot.telegram_bot import cmd_done

        update = _make_update()
        await cmd_done(update, _make_context(service, ["trash"]))
        assert "Invalid task ID" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_today_marks_completed(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_today

        done = service.create_task(session, task_form("Dishes")).task
        service.create_task(session, task_form("Trash"))
        service.record_completion(session, done.id, None, DAY)

        update = _make_update()
        await cmd_today(update, _make_context(service, ["all", "2024-05-10"]))
        text = _reply_text(update)
        assert f"✅ `{done.id}`" in text
        assert "⬜" in text

    @pytest.mark.asyncio
    async def test_today_bad_argument(self, service, family):
        from src.bot.telegram_bot import cmd_today

        update = _make_update()
        await cmd_today(update, _make_context(service, ["soonish"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_record_lists_pending_buttons(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_record

        task = service.create_task(session, task_form()).task
        update = _make_update()
        with patch.object(service, "today", return_value=DAY):
            await cmd_record(update, _make_context(service))
        markup = update.message.reply_text.call_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data == f"record:{task.id}"

    @pytest.mark.asyncio
    async def test_record_individual_task(self, service, session, family, task_form):
        from src.bot.telegram_bot import _handle_record_callback

        task = service.create_task(session, task_form()).task
        update = _make_callback_update(f"record:{task.id}")
        context = _make_context(service)
        with patch.object(service, "today", return_value=DAY):
            await _handle_record_callback(update, context)
        text = update.callback_query.edit_message_text.call_args.args[0]
        assert text.startswith("✅")
        assert "record_pending" not in context.user_data
        assert len(service.history(session).entries) == 1

    @pytest.mark.asyncio
    async def test_record_shared_task_asks_who(self, service, session, family, task_form):
        from src.bot.telegram_bot import _handle_record_callback

        task = service.create_task(session, task_form(assignees=["Alice", "Bob"])).task
        update = _make_callback_update(f"record:{task.id}")
        await _handle_record_callback(update, _make_context(service))
        kwargs = update.callback_query.edit_message_text.call_args.kwargs
        buttons = [row[0].callback_data for row in kwargs["reply_markup"].inline_keyboard]
        assert buttons[-1] == f"recordby:{task.id}:all"
        assert service.history(session).entries == []

    @pytest.mark.asyncio
    async def test_recordby_everyone(self, service, session, family, task_form):
        from src.bot.telegram_bot import _handle_recordby_callback

        task = service.create_task(session, task_form(assignees=["Alice", "Bob"])).task
        update = _make_callback_update(f"recordby:{task.id}:all")
        with patch.object(service, "today", return_value=DAY):
            await _handle_recordby_callback(update, _make_context(service))
        assert len(service.history(session).entries) == 2

    @pytest.mark.asyncio
    async def test_second_tap_ignored_while_first_is_saving(self, service, session, family, task_form):
        from src.bot.telegram_bot import _handle_record_callback

        task = service.create_task(session, task_form()).task
        first = _make_callback_update(f"record:{task.id}")
        second = _make_callback_update(f"record:{task.id}")
        context = _make_context(service)

        with patch.object(service, "today", return_value=DAY):
            await asyncio.gather(
                _handle_record_callback(first, context),
                _handle_record_callback(second, context),
            )

        second.callback_query.answer.assert_awaited_once_with("Still saving the previous one…")
        second.callback_query.edit_message_text.assert_not_called()
        assert first.callback_query.edit_message_text.call_args.args[0].startswith("✅")
        assert "record_pending" not in context.user_data
        assert len(service.history(session).entries) == 1

    @pytest.mark.asyncio
    async def test_history_for_one_task(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_history

        dishes = service.create_task(session, task_form("Dishes")).task
        trash = service.create_task(session, task_form("Trash")).task
        service.record_completion(session, dishes.id, None, DAY)
        service.record_completion(session, trash.id, None, DAY)
        update = _make_update()
        await cmd_history(update, _make_context(service, [f"#{dishes.id}"]))
        text = _reply_text(update)
        assert "Dishes" in text
        assert "Trash" not in text

    @pytest.mark.asyncio
    async def test_history_bad_task_reference(self, service, family):
        from src.bot.telegram_bot import cmd_history

        update = _make_update()
        await cmd_history(update, _make_context(service, ["#dishes"]))
        assert _reply_text(update).startswith("Usage: /history")

    @pytest.mark.asyncio
    async def test_history(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_history

        task = service.create_task(session, task_form()).task
        record = service.record_completion(session, task.id, None, DAY).records[0]
        update = _make_update()
        await cmd_history(update, _make_context(service, ["5"]))
        assert f"`{record.id}` 2024-05-10 — Dishes — Alice" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_editrecord_usage(self, service, family):
        from src.bot.telegram_bot import cmd_editrecord

        update = _make_update()
        await cmd_editrecord(update, _make_context(service, ["3"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_deleterecord(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_deleterecord

        task = service.create_task(session, task_form()).task
        record = service.record_completion(session, task.id, None, DAY).records[0]
        update = _make_update()
        await cmd_deleterecord(update, _make_context(service, [str(record.id)]))
        assert _reply_text(update) == f"✅ Record #{record.id} deleted."

    @pytest.mark.asyncio
    async def test_trends_chart(self, service, session, family, task_form):
        from src.bot.telegram_bot import cmd_trends

        task = service.create_task(session, task_form()).task
        service.record_completion(session, task.id, None, DAY)
        update = _make_update()
        with patch.object(service, "today", return_value=DAY):
            await cmd_trends(update, _make_context(service, ["week"]))
        text = _reply_text(update)
        assert "last 7 days" in text
        assert "May 10 █ 1" in text
        assert "Total: 1" in text
