"""Operator diagnostics and bot maintenance: status report, test sends, reset."""

import asyncio
import logging

import sentry_sdk

from .config import ClaimDeskConfig
from .notifications.templates import get_message

logger = logging.getLogger(__name__)


async def check_system_status(config: ClaimDeskConfig, store, dispatcher) -> dict:
    """
    Build a diagnostic report.

    Returns:
        {"ok": bool, "lines": [...], "report": str} where report is the
        Telegram-formatted text
    """
    lines = []
    ok = True

    try:
        await store.load_settings()
        await store.load_cases()
        lines.append("✅ 資料庫讀取：正常")
    except Exception as e:
        ok = False
        lines.append(f"❌ 資料庫讀取：失敗 ({e})")
        sentry_sdk.capture_exception(e)

    token, chat_id = await dispatcher.credentials()
    lines.append("ℹ️ Token 設定：" + (f"已設定 (末四碼 {token[-4:]})" if token else "未設定"))
    lines.append("ℹ️ Chat ID 設定：" + (f"已設定 ({chat_id})" if chat_id else "未設定"))

    if token:
        info = await dispatcher.get_webhook_info()
        lines.append("🤖 Telegram Webhook 狀態：" + ("成功" if info.get("ok") else "失敗"))
        result = info.get("result") or {}
        if result:
            lines.append(f"🔗 目前連結網址：{result.get('url') or '無'}")
            lines.append(f"🔴 等待中訊息數：{result.get('pending_update_count', 0)}")
            if result.get("last_error_message"):
                lines.append(f"⚠️ 最後錯誤訊息：{result['last_error_message']}")
        if not info.get("ok"):
            ok = False
    else:
        ok = False
        lines.append("⚠️ 無法檢查 Webhook：未設定 Token")

    report = get_message("diagnostics", "header") + "\n\n" + "\n".join(lines)
    logger.info(f"System status check: {'ok' if ok else 'problems found'}")
    return {"ok": ok, "lines": lines, "report": report}


async def send_test_notifications(dispatcher) -> dict:
    """
    Send one sample of each notification kind to the default chat.

    Returns:
        {"sent": n, "failed": n}
    """
    parts = ["intro", "connectivity", "status", "itinerary", "case_30_day"]
    sent = 0
    failed = 0
    for part in parts:
        if await dispatcher.send(get_message("test_notifications", part), with_actions=False):
            sent += 1
        else:
            failed += 1
    logger.info(f"Test notifications: {sent} sent, {failed} failed")
    return {"sent": sent, "failed": failed}


async def reset_bot(config: ClaimDeskConfig, dispatcher, ledger, deep: bool = False) -> dict:
    """
    Reset the bot's delivery state.

    A soft reset only logs. A deep reset deletes the webhook (dropping
    pending updates), clears the dedup ledger and registers the webhook
    again at PUBLIC_WEBHOOK_URL.
    """
    if not deep:
        logger.info("Soft reset requested, nothing to clear")
        return {"ok": True, "deep": False}

    deleted = await dispatcher.delete_webhook(drop_pending_updates=True)
    cleared = await ledger.clear()
    # Pause between deleteWebhook and setWebhook
    await asyncio.sleep(1)

    registered = None
    if config.public_webhook_url:
        registered = await dispatcher.set_webhook(config.public_webhook_url)
    else:
        logger.warning("PUBLIC_WEBHOOK_URL not set, webhook not re-registered")

    logger.info(f"Deep reset: webhook deleted={deleted.get('ok')}, {cleared} dedup keys cleared")
    return {
        "ok": bool(deleted.get("ok")) and (registered is None or bool(registered.get("ok"))),
        "deep": True,
        "dedup_cleared": cleared,
        "webhook_deleted": deleted,
        "webhook_registered": registered,
    }
