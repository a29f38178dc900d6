from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from timesheet import config, database, telegram
from timesheet.database import COL_BRANCHES, COL_USERS
from timesheet.main import app
from timesheet.schemas import Branch, User
from timesheet.security import create_access_token, hash_password

_PASSWORD_HASH = {}


def password_hash(password: str) -> str:
    # bcrypt is slow; hash each test password once per session
    if password not in _PASSWORD_HASH:
        _PASSWORD_HASH[password] = hash_password(password)
    return _PASSWORD_HASH[password]


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    mock_db = mongomock.MongoClient()["timesheet_test"]
    monkeypatch.setattr(database, "db", mock_db)
    database.ensure_indexes()
    return mock_db


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    monkeypatch.setattr(config, "APP_TIMEZONE", "UTC")
    monkeypatch.setattr(config, "EDIT_WINDOW_DAYS", 2)
    monkeypatch.setattr(config, "MASTER_ADMIN_KEY", "")
    return config


@pytest.fixture(autouse=True)
def silent_telegram(monkeypatch):
    service = telegram.TelegramService(bot_token="", admin_chat_ids=[])
    monkeypatch.setattr(telegram, "telegram_service", service)
    return service


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(username=None, is_admin=False, position="worker", password="secret", **extra):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            password=password_hash(password),
            employee_id=extra.pop("employee_id", f"EMP{counter['n']:03d}"),
            position=position,
            is_admin=is_admin,
            **extra,
        )
        return database.create_document(COL_USERS, user.model_dump())

    return _make


@pytest.fixture
def headers_for():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("boss", is_admin=True)


@pytest.fixture
def worker(make_user):
    return make_user("ali", employee_id="KK-7")


@pytest.fixture
def make_branch():
    def _make(name="Downtown", code="DT", **extra):
        branch = Branch(name=name, code=code, location={"address": "1 Main St", "city": "Tashkent"}, **extra)
        return database.create_document(COL_BRANCHES, branch.model_dump())

    return _make


@pytest.fixture
def today():
    return datetime.now(timezone.utc).date()
