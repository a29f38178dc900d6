from timesheet import config

GOOD_ENV = {
    "TELEGRAM_BOT_TOKEN": "123456789:ABCdefGhIJKlmNoPQRstuVWXyz",
    "JWT_SECRET": "a-long-random-secret",
    "MONGODB_URI": "mongodb://db:27017/timesheet",
    "TELEGRAM_ADMIN_CHAT_IDS": "111, -222",
}


def test_complete_environment():
    report = config.check_env(GOOD_ENV)
    assert report["ok"] is True
    assert "  chat id 2: -222" in report["lines"]


def test_secrets_are_masked():
    lines = "\n".join(config.check_env(GOOD_ENV)["lines"])
    assert GOOD_ENV["JWT_SECRET"] not in lines
    assert GOOD_ENV["TELEGRAM_BOT_TOKEN"] not in lines


def test_missing_variables():
    report = config.check_env({})
    assert report["ok"] is False
    assert "  MISSING JWT_SECRET" in report["lines"]


def test_malformed_token_and_chat_id():
    assert config.check_env({**GOOD_ENV, "TELEGRAM_BOT_TOKEN": "not-a-token"})["ok"] is False
    assert config.check_env({**GOOD_ENV, "TELEGRAM_ADMIN_CHAT_IDS": "111,abc"})["ok"] is False


def test_parse_chat_ids():
    assert config.parse_chat_ids(" 1, ,2 ,") == ["1", "2"]
    assert config.parse_chat_ids("") == []


def test_cors_origins(monkeypatch):
    monkeypatch.setattr(config, "FRONTEND_URL", "https://kebab.example")
    assert config.cors_origins() == ["https://kebab.example", "http://localhost:3000"]
