import logging
from datetime import datetime
from html import escape
from typing import Any, Dict, Iterable, List, Optional, Union

import requests

from timesheet import config
from timesheet.shift_time import from_storage

logger = logging.getLogger("telegram")

API_BASE = "https://api.telegram.org"

ENTRY_ACTIONS = {
    "added": ("🔔", "New time entry added"),
    "updated": ("✏️", "Time entry updated"),
    "deleted": ("🗑️", "Time entry deleted"),
}

ANNOUNCEMENT_ACTIONS = {
    "created": ("📢", "New announcement"),
    "updated": ("✏️", "Announcement updated"),
    "deleted": ("🗑️", "Announcement deleted"),
}

ANNOUNCEMENT_TYPES = {"info": "ℹ️", "warning": "⚠️", "success": "✅"}
SYSTEM_TYPES = {"info": "ℹ️", "warning": "⚠️", "error": "🚨"}


class TelegramService:
    """Sends HTML-formatted messages to the admins' Telegram chats.

    Delivery is best effort: every chat is tried on its own, failures are
    logged and reported in the per-chat results, never raised.
    """

    def __init__(self, bot_token: Optional[str] = None, admin_chat_ids: Optional[List[str]] = None,
                 timeout: Optional[float] = None):
        self.bot_token = config.TELEGRAM_BOT_TOKEN if bot_token is None else bot_token
        self.admin_chat_ids = list(config.TELEGRAM_ADMIN_CHAT_IDS if admin_chat_ids is None else admin_chat_ids)
        self.timeout = config.TELEGRAM_TIMEOUT if timeout is None else timeout
        if not self.bot_token:
            logger.warning("Telegram bot token not configured")
        elif not config.TOKEN_PATTERN.match(self.bot_token):
            logger.warning("Telegram bot token format looks invalid")

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    @property
    def base_url(self) -> Optional[str]:
        return f"{API_BASE}/bot{self.bot_token}" if self.bot_token else None

    def send_message(self, chat_ids: Union[str, Iterable[str]], text: str,
                     parse_mode: str = "HTML") -> List[Dict[str, Any]]:
        if not self.configured:
            logger.error("Telegram bot token not configured - cannot send message")
            return []
        ids = [chat_ids] if isinstance(chat_ids, str) else list(chat_ids)
        results = []
        for chat_id in ids:
            try:
                resp = requests.post(
                    f"{self.base_url}/sendMessage",
                    json={"chat_id": chat_id, "text": text, "parse_mode": parse_mode},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                logger.info("Telegram message sent to %s", chat_id)
                results.append({"chatId": chat_id, "success": True})
            except requests.RequestException as e:
                logger.error("Failed to send Telegram message to %s: %s", chat_id, e)
                results.append({"chatId": chat_id, "success": False, "error": str(e)})
        return results

    def send_to_admins(self, text: str, parse_mode: str = "HTML") -> List[Dict[str, Any]]:
        return self.send_message(self.admin_chat_ids, text, parse_mode=parse_mode)

    def send_time_entry_notification(self, entry: Dict[str, Any], user: Dict[str, Any],
                                     action: str = "added") -> List[Dict[str, Any]]:
        return self.send_to_admins(format_time_entry(entry, user, action))

    def send_announcement_notification(self, announcement: Dict[str, Any],
                                       action: str = "created") -> List[Dict[str, Any]]:
        return self.send_to_admins(format_announcement(announcement, action))

    def send_user_registration_notification(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self.send_to_admins(format_registration(user))

    def send_system_notification(self, message: str, type: str = "info") -> List[Dict[str, Any]]:
        return self.send_to_admins(format_system(message, type))

    def test_bot(self) -> Dict[str, Any]:
        """Return the bot's ``getMe`` profile; raises when Telegram is unreachable."""
        if not self.configured:
            raise RuntimeError("Telegram bot token not configured")
        resp = requests.get(f"{self.base_url}/getMe", timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok"):
            raise RuntimeError(data.get("description") or "Telegram getMe failed")
        return data["result"]


def _clock(value: Optional[datetime]) -> str:
    return from_storage(value).strftime("%H:%M") if value else "--:--"


def format_time_entry(entry: Dict[str, Any], user: Dict[str, Any], action: str = "added") -> str:
    emoji, title = ENTRY_ACTIONS.get(action, ENTRY_ACTIONS["added"])
    who = user.get("username") or user.get("name") or "Unknown"
    day = entry.get("date")
    lines = [
        f"{emoji} <b>{title}</b>",
        "",
        f"👤 <b>Employee:</b> {escape(who)}",
        f"📅 <b>Date:</b> {day.strftime('%d/%m/%Y') if day else '-'}",
        f"⏰ <b>Start:</b> {_clock(entry.get('start_time'))}",
        f"🏁 <b>End:</b> {_clock(entry.get('end_time'))}",
        f"⏱️ <b>Hours:</b> {entry.get('hours')}h",
    ]
    if entry.get("overtime_reason"):
        lines.append(f"⚠️ <b>Overtime:</b> {escape(entry['overtime_reason'])}")
    if entry.get("responsible_person"):
        lines.append(f"👨‍💼 <b>Responsible:</b> {escape(entry['responsible_person'])}")
    return "\n".join(lines)


def format_announcement(announcement: Dict[str, Any], action: str = "created") -> str:
    emoji, title = ANNOUNCEMENT_ACTIONS.get(action, ANNOUNCEMENT_ACTIONS["created"])
    type_emoji = ANNOUNCEMENT_TYPES.get(announcement.get("type"), "ℹ️")
    return (
        f"{emoji} <b>{title}</b>\n\n"
        f"{type_emoji} <b>{escape(announcement.get('title', ''))}</b>\n\n"
        f"{escape(announcement.get('content', ''))}"
    )


def format_registration(user: Dict[str, Any]) -> str:
    lines = [
        "👤 <b>New user registered!</b>",
        "",
        f"👤 <b>Username:</b> {escape(user.get('username', ''))}",
        f"🆔 <b>Employee ID:</b> {escape(user.get('employee_id', ''))}",
        f"💼 <b>Position:</b> {user.get('position', '').capitalize()}",
    ]
    if user.get("name"):
        lines.append(f"📝 <b>Name:</b> {escape(user['name'])}")
    lines.append(f"📅 <b>Date:</b> {datetime.now().strftime('%d/%m/%Y')}")
    return "\n".join(lines)


def format_system(message: str, type: str = "info") -> str:
    return (
        f"{SYSTEM_TYPES.get(type, SYSTEM_TYPES['info'])} <b>System Notification</b>\n\n"
        f"{escape(message)}\n\n"
        f"📅 <b>Time:</b> {datetime.now().strftime('%d/%m/%Y, %H:%M:%S')}"
    )


telegram_service = TelegramService()
