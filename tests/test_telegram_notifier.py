"""Tests for src.adapters.telegram_notifier — TelegramNotifier."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.adapters.telegram_notifier import TelegramNotifier, split_message


class TestSplitMessage:
    def test_short_text_is_one_chunk(self):
        assert split_message("hello\nworld") == ["hello\nworld"]

    def test_splits_on_line_boundaries(self):
        text = "\n".join(["a" * 6] * 3)
        assert split_message(text, limit=13) == ["aaaaaa\naaaaaa", "aaaaaa"]

    def test_long_line_is_cut(self):
        assert split_message("a" * 25, limit=10) == ["a" * 10, "a" * 10, "a" * 5]

    def test_keeps_leading_blank_line(self):
        assert split_message("\nStill to do:") == ["\nStill to do:"]


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_message(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        await TelegramNotifier(bot).send_message(12345, "Still to do: Dishes")
        bot.send_message.assert_awaited_once_with(chat_id=12345, text="Still to do: Dishes")

    @pytest.mark.asyncio
    async def test_long_message_sent_in_parts(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        text = "\n".join(["x" * 100] * 60)
        await TelegramNotifier(bot).send_message(12345, text)
        assert bot.send_message.await_count == 2
