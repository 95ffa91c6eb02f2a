"""Notification port — how core code reaches a family owner.

The daily reminder depends on this protocol, never on Telegram directly.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Push a plain-text message to a user (Telegram chat id for the bot)."""

    async def send_message(self, user_id: int, text: str) -> None: ...
