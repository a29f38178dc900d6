from unittest.mock import MagicMock

import pytest


@pytest.fixture
def notify(silent_telegram, monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr(silent_telegram, "send_announcement_notification", mock)
    return mock


def create(client, admin, headers_for, **overrides):
    payload = {"title": "Menu change", "content": "New lavash from Monday", "type": "info"}
    payload.update(overrides)
    return client.post("/api/announcements", json=payload, headers=headers_for(admin))


def test_create_and_list(client, admin, worker, headers_for, notify):
    res = create(client, admin, headers_for)
    assert res.status_code == 201
    assert res.json()["isActive"] is True
    create(client, admin, headers_for, title="Holiday", type="success")

    listed = client.get("/api/announcements", headers=headers_for(worker)).json()
    assert [a["title"] for a in listed] == ["Holiday", "Menu change"]
    assert notify.call_count == 2
    assert notify.call_args.args[1] == "created"


def test_worker_cannot_create(client, worker, headers_for):
    res = create(client, worker, headers_for)
    assert res.status_code == 403


def test_create_validates(client, admin, headers_for):
    assert create(client, admin, headers_for, title="").status_code == 400
    assert create(client, admin, headers_for, type="urgent").status_code == 400


def test_update_keeps_blank_fields(client, admin, headers_for, notify):
    announcement = create(client, admin, headers_for).json()
    res = client.put(f"/api/announcements/{announcement['id']}", json={"title": "", "content": "Changed"},
                     headers=headers_for(admin))
    assert res.status_code == 200
    body = res.json()
    assert body["title"] == "Menu change"
    assert body["content"] == "Changed"
    assert notify.call_args.args[1] == "updated"


def test_delete(client, admin, headers_for, notify):
    announcement = create(client, admin, headers_for).json()
    url = f"/api/announcements/{announcement['id']}"
    assert client.delete(url, headers=headers_for(admin)).status_code == 200
    assert client.delete(url, headers=headers_for(admin)).status_code == 404
    assert notify.call_args.args[1] == "deleted"
