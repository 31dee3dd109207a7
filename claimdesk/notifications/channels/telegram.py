"""Telegram Bot API delivery channel (messages, callback answers, webhook admin)."""

import logging

import httpx
import sentry_sdk

logger = logging.getLogger(__name__)


class TelegramClient:
    """
    Thin async wrapper over the Bot API.

    All methods are best-effort: transport errors and non-ok API responses are
    logged and reported as a falsy result, never raised.
    """

    def __init__(
        self,
        api_base: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    async def call(self, token: str, method: str, payload: dict | None = None) -> dict:
        """
        POST a Bot API method and return the decoded response.

        Returns {"ok": False, "description": ...} on transport failure.
        """
        url = f"{self.api_base}/bot{token}/{method}"
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    url, json=payload or {}, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=payload or {})
        except httpx.HTTPError as e:
            logger.warning(f"Telegram {method} failed: {e}")
            sentry_sdk.capture_exception(e)
            return {"ok": False, "description": str(e)}

        try:
            data = response.json()
        except ValueError:
            data = {"ok": False, "description": f"HTTP {response.status_code}"}

        if not data.get("ok"):
            logger.warning(
                f"Telegram {method} rejected: {data.get('description', response.status_code)}"
            )
        return data

    async def send_message(
        self,
        token: str,
        chat_id: str,
        text: str,
        reply_markup: dict | None = None,
    ) -> bool:
        """Send an HTML-formatted message. Returns True if Telegram accepted it."""
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        data = await self.call(token, "sendMessage", payload)
        return bool(data.get("ok"))

    async def answer_callback_query(self, token: str, callback_query_id: str) -> bool:
        """Stop the client's loading spinner for an inline button press."""
        data = await self.call(
            token, "answerCallbackQuery", {"callback_query_id": callback_query_id}
        )
        return bool(data.get("ok"))

    async def set_webhook(
        self, token: str, url: str, secret_token: str | None = None
    ) -> dict:
        payload = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        return await self.call(token, "setWebhook", payload)

    async def delete_webhook(self, token: str, drop_pending_updates: bool = True) -> dict:
        return await self.call(
            token, "deleteWebhook", {"drop_pending_updates": drop_pending_updates}
        )

    async def get_webhook_info(self, token: str) -> dict:
        return await self.call(token, "getWebhookInfo")
