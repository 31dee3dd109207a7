"""
Client and chat entry points.

Endpoints:
- GET/POST /api/exec - Client read, login and sync calls; also accepts
  Telegram updates so a single URL can serve both
- POST /api/telegram/webhook - Dedicated Telegram webhook URL
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request

from claimdesk.gateway import WebhookSecretError, is_chat_update, verify_webhook_secret
from claimdesk.services import get_services

router = APIRouter(tags=["gateway"])

logger = logging.getLogger(__name__)


async def _read_json_body(request: Request) -> Any:
    """
    Decode the request body as JSON regardless of content type.

    Browser clients post JSON as text/plain to avoid a CORS preflight.
    Returns None for an empty body.
    """
    raw = await request.body()
    if not raw.strip():
        return None
    return json.loads(raw)


def _check_secret(secret_header: str | None) -> None:
    services = get_services()
    try:
        verify_webhook_secret(secret_header, services.config.telegram_webhook_secret)
    except WebhookSecretError as e:
        logger.warning(f"Rejected Telegram update: {e}")
        raise HTTPException(status_code=401, detail=str(e))


@router.api_route("/api/exec", methods=["GET", "POST"])
async def exec_endpoint(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(None),
) -> dict:
    """
    Route a client call or chat update through the request gateway.

    The response body always carries a "status" field; failures are
    reported there rather than as HTTP errors, except for a wrong webhook
    secret.
    """
    params = dict(request.query_params)
    body = None
    if request.method == "POST":
        try:
            body = await _read_json_body(request)
        except ValueError as e:
            return {"status": "error", "message": f"Invalid JSON body: {e}"}

    if is_chat_update(body):
        _check_secret(x_telegram_bot_api_secret_token)

    return await get_services().gateway.handle(params, body)


@router.post("/api/telegram/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(None),
) -> dict:
    """Handle a Telegram update posted by the Bot API."""
    _check_secret(x_telegram_bot_api_secret_token)
    try:
        body = await _read_json_body(request)
    except ValueError as e:
        return {"status": "error", "message": f"Invalid JSON body: {e}"}
    if body is None:
        return {"status": "ok", "ignored": True}

    return await get_services().gateway.handle({}, body)
