from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from timesheet import telegram
from timesheet.telegram import TelegramService, format_announcement, format_time_entry


@pytest.fixture
def service():
    return TelegramService(bot_token="123456:ABC-def", admin_chat_ids=["111", "222"], timeout=3)


@pytest.fixture
def live_service(service, monkeypatch):
    monkeypatch.setattr(telegram, "telegram_service", service)
    return service


def ok_response(payload=None):
    resp = MagicMock()
    resp.json.return_value = payload or {"ok": True, "result": {}}
    return resp


def test_send_to_admins(service):
    with patch("timesheet.telegram.requests.post", return_value=ok_response()) as post:
        results = service.send_to_admins("hello")
    assert results == [{"chatId": "111", "success": True}, {"chatId": "222", "success": True}]
    url = post.call_args.args[0]
    assert url == "https://api.telegram.org/bot123456:ABC-def/sendMessage"
    assert post.call_args.kwargs["json"] == {"chat_id": "222", "text": "hello", "parse_mode": "HTML"}
    assert post.call_args.kwargs["timeout"] == 3


def test_failed_chat_does_not_stop_the_rest(service):
    side_effect = [requests.ConnectionError("boom"), ok_response()]
    with patch("timesheet.telegram.requests.post", side_effect=side_effect):
        results = service.send_to_admins("hello")
    assert results[0] == {"chatId": "111", "success": False, "error": "boom"}
    assert results[1]["success"] is True


def test_unconfigured_service_sends_nothing():
    service = TelegramService(bot_token="", admin_chat_ids=["111"])
    with patch("timesheet.telegram.requests.post") as post:
        assert service.send_to_admins("hello") == []
    post.assert_not_called()


def test_bot_check(service):
    profile = {"ok": True, "result": {"username": "kebab_bot"}}
    with patch("timesheet.telegram.requests.get", return_value=ok_response(profile)):
        assert service.test_bot() == {"username": "kebab_bot"}

    with patch("timesheet.telegram.requests.get", return_value=ok_response({"ok": False, "description": "Unauthorized"})):
        with pytest.raises(RuntimeError, match="Unauthorized"):
            service.test_bot()


def test_time_entry_message():
    entry = {
        "date": datetime(2024, 6, 10),
        "start_time": datetime(2024, 6, 10, 21, 0),
        "end_time": datetime(2024, 6, 11, 5, 0),
        "hours": 7.5,
        "overtime_reason": "Company Request",
        "responsible_person": "Karim <boss>",
    }
    text = format_time_entry(entry, {"username": "ali"}, "updated")
    assert text.startswith("✏️ <b>Time entry updated</b>")
    assert "10/06/2024" in text
    assert "21:00" in text and "05:00" in text
    assert "7.5h" in text
    assert "Karim &lt;boss&gt;" in text


def test_announcement_message_escapes_html():
    text = format_announcement({"title": "<script>", "content": "a & b", "type": "warning"})
    assert "&lt;script&gt;" in text
    assert "a &amp; b" in text
    assert "⚠️" in text


# -----------------
# Routes
# -----------------

def test_notify_route_reports_delivery(client, worker, headers_for, live_service):
    side_effect = [ok_response(), requests.Timeout("slow")]
    with patch("timesheet.telegram.requests.post", side_effect=side_effect):
        res = client.post("/api/notify/telegram", json={"message": "Oven broke"}, headers=headers_for(worker))
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Sent to 1/2 chats"
    assert [r["success"] for r in body["results"]] == [True, False]


def test_notify_route_without_token(client, worker, headers_for):
    res = client.post("/api/notify/telegram", json={"message": "hi"}, headers=headers_for(worker))
    assert res.json() == {"success": False, "message": "Bot token not configured"}


def test_notify_route_requires_message(client, worker, headers_for):
    res = client.post("/api/notify/telegram", json={"message": ""}, headers=headers_for(worker))
    assert res.status_code == 400
    assert res.json()["message"] == "Message required"


def test_bot_test_route_failure(client, admin, headers_for, live_service):
    with patch("timesheet.telegram.requests.get", side_effect=requests.ConnectionError("down")):
        res = client.get("/api/telegram/test", headers=headers_for(admin))
    assert res.status_code == 500
    assert "Failed to connect" in res.json()["message"]


def test_status_route(client, admin, worker, headers_for, live_service):
    assert client.get("/api/telegram/status", headers=headers_for(worker)).status_code == 403
    body = client.get("/api/telegram/status", headers=headers_for(admin)).json()
    assert body["status"] == {"configured": True, "adminChatIds": 2, "token": "Configured"}


def test_system_notification_route(client, admin, headers_for, live_service):
    with patch("timesheet.telegram.requests.post", return_value=ok_response()) as post:
        res = client.post("/api/telegram/notify", json={"message": "Deploy done", "type": "warning"},
                          headers=headers_for(admin))
    assert res.status_code == 200
    assert post.call_count == 2
    assert "Deploy done" in post.call_args.kwargs["json"]["text"]
