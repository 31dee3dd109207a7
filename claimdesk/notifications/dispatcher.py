"""
Notification dispatcher - formats messages and delivers them to the chat channel.

Delivery is best-effort: a failed send is logged and reported as False so a
notification problem never aborts the caller's broader operation.
"""

import logging

import sentry_sdk

from claimdesk.config import ClaimDeskConfig
from claimdesk.models import Settings
from claimdesk.notifications.channels.telegram import TelegramClient
from claimdesk.notifications.templates import get_message

logger = logging.getLogger(__name__)


# Inline buttons attached to outgoing messages; callback data is the command
QUICK_REPLY_KEYBOARD = {
    "inline_keyboard": [
        [
            {"text": "📅 今日行程", "callback_data": "/today"},
            {"text": "📊 本週匯總", "callback_data": "/summary"},
        ],
        [
            {"text": "🔔 待辦提醒", "callback_data": "/reminders"},
        ],
    ]
}


class MessageDispatcher:
    def __init__(self, config: ClaimDeskConfig, store, client: TelegramClient | None = None):
        self.config = config
        self.store = store
        self.client = client or TelegramClient(
            api_base=config.telegram_api_base,
            timeout_seconds=config.telegram_timeout_seconds,
        )

    async def _load_settings(self) -> Settings:
        try:
            return await self.store.load_settings()
        except Exception as e:
            logger.error(f"Could not read settings for Telegram credentials: {e}")
            sentry_sdk.capture_exception(e)
            return Settings()

    async def credentials(self, settings: Settings | None = None) -> tuple[str | None, str | None]:
        """
        Resolve (token, default chat id).

        Stored settings win; environment config is the fallback.
        """
        if settings is None:
            settings = await self._load_settings()
        token = settings.telegram_token or self.config.telegram_bot_token
        chat_id = settings.telegram_chat_id or self.config.telegram_chat_id
        return token, chat_id

    async def send(
        self,
        text: str,
        chat_id: str | None = None,
        with_actions: bool = True,
        settings: Settings | None = None,
    ) -> bool:
        """
        Send a message to `chat_id`, or to the configured default chat.

        Args:
            text: Telegram HTML body (bold/code subset)
            chat_id: Target chat; defaults to the configured chat
            with_actions: Attach the quick-reply keyboard
            settings: Already-loaded settings, to skip a store read

        Returns:
            True if sent successfully, False otherwise
        """
        token, default_chat_id = await self.credentials(settings)
        target = chat_id or default_chat_id
        if not token or not target:
            logger.warning("Telegram token or chat id not configured, message not sent")
            return False

        try:
            return await self.client.send_message(
                token,
                str(target),
                text,
                reply_markup=QUICK_REPLY_KEYBOARD if with_actions else None,
            )
        except Exception as e:
            logger.error(f"Failed to send Telegram message to {target}: {e}")
            sentry_sdk.capture_exception(e)
            return False

    async def send_template(
        self,
        message_type: str,
        context: dict,
        chat_id: str | None = None,
        settings: Settings | None = None,
    ) -> bool:
        """Render the `telegram` part of a message type and send it."""
        text = get_message(message_type, "telegram", context)
        return await self.send(text, chat_id=chat_id, settings=settings)

    async def acknowledge_interaction(self, callback_query_id: str) -> bool:
        """Answer an inline-button press so the client stops showing a spinner."""
        token, _ = await self.credentials()
        if not token:
            return False
        try:
            return await self.client.answer_callback_query(token, callback_query_id)
        except Exception as e:
            logger.error(f"Failed to answer callback query {callback_query_id}: {e}")
            sentry_sdk.capture_exception(e)
            return False

    # --- Bot webhook management ---

    async def set_webhook(self, url: str) -> dict:
        token, _ = await self.credentials()
        if not token:
            return {"ok": False, "description": "Bot token not configured"}
        return await self.client.set_webhook(
            token, url, secret_token=self.config.telegram_webhook_secret
        )

    async def delete_webhook(self, drop_pending_updates: bool = True) -> dict:
        token, _ = await self.credentials()
        if not token:
            return {"ok": False, "description": "Bot token not configured"}
        return await self.client.delete_webhook(token, drop_pending_updates)

    async def get_webhook_info(self) -> dict:
        token, _ = await self.credentials()
        if not token:
            return {"ok": False, "description": "Bot token not configured"}
        return await self.client.get_webhook_info(token)
