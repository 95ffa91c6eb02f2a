"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance. Long reminders are split to stay under
Telegram's per-message limit.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.constants import MessageLimit

logger = logging.getLogger(__name__)


def split_message(text: str, limit: int = MessageLimit.MAX_TEXT_LENGTH) -> list[str]:
    """Split text on line boundaries into chunks of at most limit characters."""
    chunks: list[str] = []
    current: str | None = None
    for line in text.split("\n"):
        while len(line) > limit:
            if current is not None:
                chunks.append(current)
                current = None
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = line if current is None else f"{current}\n{line}"
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        chunks = split_message(text)
        for chunk in chunks:
            await self._bot.send_message(chat_id=user_id, text=chunk)
        logger.debug("Sent %d message(s) to %d", len(chunks), user_id)
