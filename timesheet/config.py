"""
Runtime configuration for the time-tracking API.

Values are read from the environment once, at import time.
Run ``python -m timesheet.config`` to check a deployment's environment.
"""
import os
import re
from typing import List

MONGODB_URI = os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "timesheet")
DB_RETRY_SECONDS = float(os.getenv("DB_RETRY_SECONDS", "5"))

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))
MASTER_ADMIN_KEY = os.getenv("MASTER_ADMIN_KEY", "")

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
TELEGRAM_TIMEOUT = float(os.getenv("TELEGRAM_TIMEOUT", "10"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "")
PORT = int(os.getenv("PORT", "5000"))

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
EDIT_WINDOW_DAYS = int(os.getenv("EDIT_WINDOW_DAYS", "2"))

BRAND_NAME = os.getenv("BRAND_NAME", "King Kebab")

TOKEN_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]+$")


def parse_chat_ids(raw: str) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


TELEGRAM_ADMIN_CHAT_IDS = parse_chat_ids(os.getenv("TELEGRAM_ADMIN_CHAT_IDS", ""))


def cors_origins() -> List[str]:
    origins = ["http://localhost:3000"]
    if FRONTEND_URL:
        origins.insert(0, FRONTEND_URL)
    return origins


def _mask(value: str) -> str:
    if len(value) > 10:
        return f"{value[:6]}...{value[-4:]}"
    return "***"


REQUIRED_VARS = ["TELEGRAM_BOT_TOKEN", "JWT_SECRET", "MONGODB_URI"]
OPTIONAL_VARS = ["TELEGRAM_ADMIN_CHAT_IDS", "MASTER_ADMIN_KEY", "PORT", "FRONTEND_URL", "APP_TIMEZONE"]


def check_env(environ=None) -> dict:
    """Inspect the environment and report what is set, masking secrets.

    Returns ``{"ok": bool, "lines": [...]}``; ``ok`` is False when a
    required variable is missing or a Telegram value is malformed.
    """
    env = os.environ if environ is None else environ
    ok = True
    lines = ["Required variables:"]
    for name in REQUIRED_VARS:
        value = env.get(name, "")
        if not value:
            lines.append(f"  MISSING {name}")
            ok = False
            continue
        secret = any(tag in name for tag in ("TOKEN", "SECRET", "URI"))
        lines.append(f"  OK {name}: {_mask(value) if secret else value}")
        if name == "TELEGRAM_BOT_TOKEN" and not TOKEN_PATTERN.match(value.strip()):
            lines.append("     token format looks invalid (expected 123456789:ABCdef...)")
            ok = False

    lines.append("Optional variables:")
    for name in OPTIONAL_VARS:
        value = env.get(name, "")
        if not value:
            lines.append(f"  not set {name}")
        elif "KEY" in name or "SECRET" in name:
            lines.append(f"  OK {name}: {_mask(value)}")
        else:
            lines.append(f"  OK {name}: {value}")

    for index, chat_id in enumerate(parse_chat_ids(env.get("TELEGRAM_ADMIN_CHAT_IDS", "")), start=1):
        if chat_id.lstrip("-").isdigit():
            lines.append(f"  chat id {index}: {chat_id}")
        else:
            lines.append(f"  chat id {index}: {chat_id} is not numeric")
            ok = False
    return {"ok": ok, "lines": lines}


if __name__ == "__main__":
    report = check_env()
    print("\n".join(report["lines"]))
    print("All required environment variables are set." if report["ok"] else "Environment is incomplete.")
