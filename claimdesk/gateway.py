"""
Request gateway - the single entry point for inbound calls.

Every call runs under the shared request lock (bounded wait). Chat updates
are deduplicated by event key before any side effect; client calls are
routed to read, login, or sync. Errors never escape: they become
{"status": "error", "message": ...} responses.
"""

import hmac
import logging

import sentry_sdk

from .commands import ChatEvent, CommandInterpreter
from .config import ClaimDeskConfig
from .exceptions import ClaimDeskError, PayloadValidationError

logger = logging.getLogger(__name__)

DEFAULT_ADMIN = ("admin", "admin")


class WebhookSecretError(Exception):
    """Raised when a chat update does not carry the configured secret token."""

    pass


def verify_webhook_secret(header_value: str | None, secret: str | None) -> None:
    """
    Check the X-Telegram-Bot-Api-Secret-Token header.

    A no-op when no secret is configured.

    Raises:
        WebhookSecretError: If a secret is configured and the header does not match
    """
    if not secret:
        return
    if not header_value or not hmac.compare_digest(header_value, secret):
        raise WebhookSecretError("Webhook secret token mismatch")


def is_chat_update(body) -> bool:
    return isinstance(body, dict) and ("message" in body or "callback_query" in body)


def parse_chat_event(body: dict) -> ChatEvent:
    """
    Normalize a Telegram update into a ChatEvent.

    Raises:
        PayloadValidationError: If the update lacks the ids needed for dedup
    """
    callback = body.get("callback_query")
    if callback:
        if not callback.get("id"):
            raise PayloadValidationError("callback_query without id")
        message = callback.get("message") or {}
        sender = callback.get("from") or {}
        return ChatEvent(
            event_key=f"cb_{callback['id']}",
            text=callback.get("data") or "",
            chat_id=str((message.get("chat") or {}).get("id", "")),
            chat_type=(message.get("chat") or {}).get("type", ""),
            sender=str(sender.get("username") or sender.get("id", "unknown")),
            callback_query_id=str(callback["id"]),
        )

    message = body.get("message") or {}
    if message.get("message_id") is None:
        raise PayloadValidationError("message without message_id")
    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    return ChatEvent(
        event_key=f"msg_{message['message_id']}",
        text=message.get("text") or "",
        chat_id=str(chat.get("id", "")),
        chat_type=chat.get("type", ""),
        sender=str(sender.get("username") or sender.get("id", "unknown")),
    )


class RequestGateway:
    def __init__(
        self,
        config: ClaimDeskConfig,
        store,
        dispatcher,
        sync,
        commands: CommandInterpreter,
        lock,
        ledger,
    ):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher
        self.sync = sync
        self.commands = commands
        self.lock = lock
        self.ledger = ledger

    async def handle(self, params: dict | None = None, body=None) -> dict:
        """
        Handle one inbound call.

        Args:
            params: Query parameters (action, u, p)
            body: Decoded JSON body, or None for a bare GET

        Returns:
            Response dict; always has a "status" key
        """
        params = params or {}
        action = params.get("action")
        try:
            async with self.lock.hold(f"request action={action or '-'}"):
                return await self._route(action, params, body)
        except ClaimDeskError as e:
            logger.warning(f"Request action={action} rejected: {e}")
            return {"status": "error", "message": str(e)}
        except Exception as e:
            logger.exception(f"Request action={action} failed: {e}")
            sentry_sdk.capture_exception(e)
            return {"status": "error", "message": str(e)}

    async def _route(self, action: str | None, params: dict, body) -> dict:
        if is_chat_update(body):
            return await self.handle_chat_update(body)
        if isinstance(body, dict) and "update_id" in body:
            # Other update kinds (membership changes, edits) carry no command
            return {"status": "ok", "ignored": True}

        if action == "login":
            return await self.login(params.get("u"), params.get("p"))
        if body is None or action == "get":
            return await self.read()
        return await self.sync.apply(body)

    async def handle_chat_update(self, body: dict) -> dict:
        event = parse_chat_event(body)
        if not await self.ledger.record_if_new(event.event_key):
            logger.info(f"Duplicate chat update {event.event_key} ignored")
            return {"status": "ok", "duplicate": True}

        try:
            await self.commands.handle(event)
        finally:
            if event.callback_query_id:
                await self.dispatcher.acknowledge_interaction(event.callback_query_id)
        return {"status": "ok"}

    async def read(self) -> dict:
        cases = await self.store.load_cases()
        reminders = await self.store.load_reminders()
        settings = await self.store.load_settings()
        return {
            "status": "success",
            "data": {
                "cases": [case.to_client() for case in cases],
                "reminders": [reminder.to_client() for reminder in reminders],
                "settings": settings.to_client(),
            },
        }

    async def login(self, username: str | None, password: str | None) -> dict:
        settings = await self.store.load_settings()
        if not settings.users:
            if (username, password) == DEFAULT_ADMIN:
                return {"status": "success", "message": "Default Admin"}
            return {
                "status": "error",
                "message": "No users defined (Default: admin/admin)",
            }

        if any(user.u == username and user.p == password for user in settings.users):
            return {"status": "success"}
        logger.info(f"Failed login for {username!r}")
        return {"status": "error", "message": "Invalid credentials"}
