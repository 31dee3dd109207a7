"""
Chat command interpreter.

Handles the bot commands typed in chat or sent by the quick-reply buttons.
Replies go to the chat the command came from.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from .config import ClaimDeskConfig
from .notifications.queries import (
    build_pending_reminders_message,
    build_today_message,
    build_weekly_digest,
)
from .notifications.templates import get_message

logger = logging.getLogger(__name__)


@dataclass
class ChatEvent:
    """An inbound chat message or inline-button press, normalized."""

    event_key: str
    text: str
    chat_id: str
    chat_type: str
    sender: str
    callback_query_id: str | None = None


def normalize_command(text: str) -> str:
    """Reduce "/today@SomeBot extra" to "/today"."""
    if not text:
        return ""
    head = text.strip().split(maxsplit=1)[0] if text.strip() else ""
    return head.split("@", 1)[0].lower()


class CommandInterpreter:
    def __init__(self, config: ClaimDeskConfig, store, dispatcher):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher
        self._handlers = {
            "/start": self.start,
            "/today": self.today,
            "/summary": self.summary,
            "/reminders": self.reminders,
        }

    async def handle(self, event: ChatEvent, now: datetime | None = None) -> str | None:
        """
        Run the command in an event.

        Returns:
            The command name handled, or None if the text was not a command
        """
        command = normalize_command(event.text)
        logger.info(
            f"Command {command or event.text!r} from {event.sender} "
            f"in chat {event.chat_id} ({event.chat_type})"
        )
        handler = self._handlers.get(command)
        if handler is None:
            return None
        await handler(event, now or datetime.now(timezone.utc))
        return command

    async def start(self, event: ChatEvent, now: datetime) -> None:
        room_type = "私訊" if event.chat_type == "private" else "群組/頻道"
        await self.dispatcher.send_template(
            "start", {"room_type": room_type}, chat_id=event.chat_id
        )

    async def today(self, event: ChatEvent, now: datetime) -> None:
        cases = await self.store.load_cases()
        text = build_today_message(cases, now, self.config.timezone)
        await self.dispatcher.send(text, chat_id=event.chat_id)

    async def summary(self, event: ChatEvent, now: datetime) -> None:
        cases = await self.store.load_cases()
        text = build_weekly_digest(cases, now, self.config.timezone)
        if text is None:
            await self.dispatcher.send(
                get_message("weekly_summary", "empty"), chat_id=event.chat_id
            )
            return
        if await self.dispatcher.send(text, chat_id=event.chat_id):
            await self.dispatcher.send(
                get_message("weekly_summary", "triggered"), chat_id=event.chat_id
            )

    async def reminders(self, event: ChatEvent, now: datetime) -> None:
        reminders = await self.store.load_reminders()
        text = build_pending_reminders_message(reminders, self.config.timezone)
        await self.dispatcher.send(text, chat_id=event.chat_id)
