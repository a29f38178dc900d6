import logging
from typing import Any, Dict

import requests
from fastapi import APIRouter, Depends, HTTPException, Request

from timesheet import telegram
from timesheet.schemas import SystemNotification, TelegramMessage
from timesheet.security import get_current_user, require_admin

logger = logging.getLogger("api.notify")

router = APIRouter(tags=["telegram"])


@router.post("/api/notify/telegram")
def notify_admins(payload: TelegramMessage, _: Dict[str, Any] = Depends(get_current_user)):
    if not payload.message:
        raise HTTPException(status_code=400, detail="Message required")
    service = telegram.telegram_service
    if not service.configured:
        logger.warning("Telegram bot token not configured")
        return {"success": False, "message": "Bot token not configured"}

    results = service.send_to_admins(payload.message)
    successful = sum(1 for r in results if r["success"])
    logger.info("Telegram notifications: %d/%d successful", successful, len(service.admin_chat_ids))
    return {
        "success": True,
        "message": f"Sent to {successful}/{len(service.admin_chat_ids)} chats",
        "results": results,
    }


@router.get("/api/telegram/test")
def test_bot(_: Dict[str, Any] = Depends(require_admin)):
    try:
        bot_info = telegram.telegram_service.test_bot()
    except (requests.RequestException, RuntimeError, ValueError) as e:
        logger.error("Telegram test error: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to connect to Telegram bot: {e}")
    return {"success": True, "message": "Telegram bot connection successful", "botInfo": bot_info}


@router.post("/api/telegram/notify")
def system_notify(payload: SystemNotification, _: Dict[str, Any] = Depends(require_admin)):
    if not payload.message:
        raise HTTPException(status_code=400, detail="Message is required")
    results = telegram.telegram_service.send_system_notification(payload.message, payload.type)
    return {"success": True, "message": "Notification sent", "results": results}


@router.get("/api/telegram/status")
def telegram_status(request: Request, admin: Dict[str, Any] = Depends(require_admin)):
    service = telegram.telegram_service
    client = request.client.host if request.client else "unknown"
    logger.warning("SECURITY EVENT: bot status checked by %s from %s", admin.get("username"), client)
    return {
        "success": True,
        "status": {
            "configured": service.configured,
            "adminChatIds": len(service.admin_chat_ids),
            "token": "Configured" if service.configured else "Missing",
        },
    }
