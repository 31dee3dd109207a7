"""
Operator API routes.

All endpoints require the X-Admin-Token header.

Endpoints:
- GET /api/admin/status - System diagnostic report
- POST /api/admin/test-notifications - Send sample notifications
- POST /api/admin/reset - Soft or deep bot reset (?deep=true)
- GET /api/admin/webhook - Telegram webhook info
- POST /api/admin/webhook - Register the webhook (defaults to PUBLIC_WEBHOOK_URL)
- DELETE /api/admin/webhook - Delete the webhook
- POST /api/admin/tick - Run a notification tick now
- POST /api/admin/digest - Send the weekly digest now
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from claimdesk.diagnostics import check_system_status, reset_bot, send_test_notifications
from claimdesk.services import get_services
from web_api.auth import require_admin

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class WebhookRequest(BaseModel):
    """Request body for webhook registration."""

    url: str | None = None


class DigestRequest(BaseModel):
    """Request body for a manual digest."""

    chat_id: str | None = None


@router.get("/status")
async def status_endpoint() -> dict[str, Any]:
    services = get_services()
    return await check_system_status(services.config, services.store, services.dispatcher)


@router.post("/test-notifications")
async def test_notifications_endpoint() -> dict[str, Any]:
    return await send_test_notifications(get_services().dispatcher)


@router.post("/reset")
async def reset_endpoint(deep: bool = False) -> dict[str, Any]:
    services = get_services()
    return await reset_bot(services.config, services.dispatcher, services.ledger, deep=deep)


@router.get("/webhook")
async def get_webhook_endpoint() -> dict[str, Any]:
    return await get_services().dispatcher.get_webhook_info()


@router.post("/webhook")
async def set_webhook_endpoint(request: WebhookRequest) -> dict[str, Any]:
    services = get_services()
    url = request.url or services.config.public_webhook_url
    if not url:
        raise HTTPException(status_code=400, detail="No webhook URL given and PUBLIC_WEBHOOK_URL not set")
    return await services.dispatcher.set_webhook(url)


@router.delete("/webhook")
async def delete_webhook_endpoint() -> dict[str, Any]:
    return await get_services().dispatcher.delete_webhook(drop_pending_updates=True)


@router.post("/tick")
async def tick_endpoint() -> dict[str, Any]:
    report = await get_services().scheduler.tick()
    return {
        "stages_fired": [list(item) for item in report.stages_fired],
        "reminders_fired": report.reminders_fired,
        "cases_escalated": report.cases_escalated,
        "failures": report.failures,
    }


@router.post("/digest")
async def digest_endpoint(request: DigestRequest) -> dict[str, Any]:
    sent = await get_services().scheduler.send_weekly_digest(chat_id=request.chat_id)
    return {"sent": sent}
