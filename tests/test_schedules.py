from datetime import datetime, timedelta

import pytest

from timesheet import database, scheduling
from timesheet.database import COL_SCHEDULE_LOCKS, COL_SCHEDULES, SlotBusyError
from timesheet.shift_time import ScheduleConflictError


def plan(worker, branch, admin, day, start="09:00", end="17:00", **extra):
    doc = {
        "branch_id": branch["_id"],
        "worker_id": worker["_id"],
        "date": day,
        "start_time": start,
        "end_time": end,
        "shift_type": "day",
        "role": "worker",
        "status": "scheduled",
        "notes": "",
        "created_by": admin["_id"],
    }
    doc.update(extra)
    return doc


@pytest.fixture
def branch(make_branch):
    return make_branch()


@pytest.fixture
def bulk_payload(worker, branch):
    return {
        "branchId": str(branch["_id"]),
        "workerId": str(worker["_id"]),
        "startTime": "09:00",
        "endTime": "17:00",
        "shiftType": "day",
        "role": "worker",
        "workingDays": ["Monday", "Wednesday"],
    }


def midnight(value):
    return datetime(value.year, value.month, value.day)


# -----------------
# Service layer
# -----------------

def test_overlapping_insert_is_rejected(worker, branch, admin):
    day = datetime(2024, 6, 10)
    scheduling.insert_schedule(plan(worker, branch, admin, day))
    with pytest.raises(ScheduleConflictError) as exc:
        scheduling.insert_schedule(plan(worker, branch, admin, day, "12:00", "20:00"))
    assert "09:00-17:00" in str(exc.value)
    assert database.count_documents(COL_SCHEDULES) == 1


def test_cancelled_schedule_frees_the_slot(worker, branch, admin):
    day = datetime(2024, 6, 10)
    scheduling.insert_schedule(plan(worker, branch, admin, day, status="cancelled"))
    scheduling.insert_schedule(plan(worker, branch, admin, day))
    assert database.count_documents(COL_SCHEDULES) == 2


def test_lock_is_released_after_write(worker, branch, admin):
    scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    assert database.count_documents(COL_SCHEDULE_LOCKS) == 0


def test_busy_slot_raises(worker, branch, admin):
    day = datetime(2024, 6, 10)
    database.collection(COL_SCHEDULE_LOCKS).insert_one(
        {"worker_id": worker["_id"], "date": day, "expires_at": database.utcnow() + timedelta(minutes=5)}
    )
    with pytest.raises(SlotBusyError):
        scheduling.insert_schedule(plan(worker, branch, admin, day))
    assert database.count_documents(COL_SCHEDULES) == 0


def test_expired_claim_is_reclaimed(worker, branch, admin):
    day = datetime(2024, 6, 10)
    database.collection(COL_SCHEDULE_LOCKS).insert_one(
        {"worker_id": worker["_id"], "date": day, "expires_at": database.utcnow() - timedelta(minutes=5)}
    )
    scheduling.insert_schedule(plan(worker, branch, admin, day))
    assert database.count_documents(COL_SCHEDULES) == 1


def test_update_skips_own_interval(worker, branch, admin):
    current = scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    updated = scheduling.update_schedule(current, {"start_time": "10:00", "end_time": "18:00"})
    assert updated["start_time"] == "10:00"


def test_generate_schedules_links_series(worker, branch, admin):
    template = plan(worker, branch, admin, None)
    start = datetime(2024, 6, 10)
    created, skipped = scheduling.generate_schedules(template, ["monday", "wednesday"], start)
    assert len(created) == 8
    assert skipped == []
    assert all(s["date"].weekday() in (0, 2) for s in created)
    assert "original_schedule_id" not in created[0]
    assert all(s["original_schedule_id"] == created[0]["_id"] for s in created[1:])


def test_generate_schedules_skips_conflicting_days(worker, branch, admin):
    scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 12), "12:00", "20:00"))
    template = plan(worker, branch, admin, None)
    created, skipped = scheduling.generate_schedules(template, ["monday", "wednesday"], datetime(2024, 6, 10))
    assert len(created) == 7
    assert [s["date"] for s in skipped] == [datetime(2024, 6, 12)]


def test_find_by_date_range(worker, branch, admin):
    for offset in range(3):
        scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10) + timedelta(days=offset)))
    found = scheduling.find_by_date_range(datetime(2024, 6, 11), datetime(2024, 6, 12), worker_id=worker["_id"])
    assert [s["date"].day for s in found] == [11, 12]


# -----------------
# Routes
# -----------------

def test_bulk_create(client, admin, headers_for, bulk_payload):
    res = client.post("/api/schedules", json=bulk_payload, headers=headers_for(admin))
    assert res.status_code == 201
    body = res.json()
    assert body["createdCount"] == 8
    assert body["skippedCount"] == 0
    assert "Monday, Wednesday" in body["message"]
    assert body["schedule"]["worker"]["username"] == "ali"
    assert body["schedule"]["branch"]["code"] == "DT"
    assert body["schedule"]["duration"] == 8.0


def test_bulk_create_fully_conflicting(client, admin, headers_for, bulk_payload):
    client.post("/api/schedules", json=bulk_payload, headers=headers_for(admin))
    res = client.post("/api/schedules", json={**bulk_payload, "startTime": "12:00", "endTime": "20:00"},
                      headers=headers_for(admin))
    assert res.status_code == 400
    assert "Worker already scheduled" in res.json()["message"]


def test_bulk_create_validates_input(client, admin, headers_for, bulk_payload):
    res = client.post("/api/schedules", json={**bulk_payload, "startTime": "9am"}, headers=headers_for(admin))
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid time format. Use HH:MM"

    res = client.post("/api/schedules", json={**bulk_payload, "workingDays": []}, headers=headers_for(admin))
    assert res.status_code == 400

    res = client.post("/api/schedules", json={**bulk_payload, "branchId": "nope"}, headers=headers_for(admin))
    assert res.json()["message"] == "Invalid branch ID"


def test_bulk_create_inactive_worker(client, admin, headers_for, bulk_payload, make_user):
    idle = make_user("idle", is_active=False)
    res = client.post("/api/schedules", json={**bulk_payload, "workerId": str(idle["_id"])},
                      headers=headers_for(admin))
    assert res.status_code == 400
    assert res.json()["message"] == "Worker not found or inactive"


def test_bulk_create_requires_admin(client, worker, headers_for, bulk_payload):
    res = client.post("/api/schedules", json=bulk_payload, headers=headers_for(worker))
    assert res.status_code == 403


def test_worker_sees_only_own_schedules(client, admin, worker, make_user, branch, headers_for, bulk_payload, today):
    other = make_user("sam")
    client.post("/api/schedules", json=bulk_payload, headers=headers_for(admin))
    client.post("/api/schedules", json={**bulk_payload, "workerId": str(other["_id"])}, headers=headers_for(admin))

    params = {"startDate": today.isoformat(), "endDate": (today + timedelta(days=27)).isoformat()}
    mine = client.get("/api/schedules", params=params, headers=headers_for(worker)).json()
    assert mine["pagination"]["total"] == 8
    assert {s["workerId"] for s in mine["schedules"]} == {str(worker["_id"])}

    everyone = client.get("/api/schedules", params=params, headers=headers_for(admin)).json()
    assert everyone["pagination"]["total"] == 16

    page = client.get("/api/schedules", params={**params, "limit": 5, "page": 2}, headers=headers_for(admin)).json()
    assert len(page["schedules"]) == 5
    assert page["pagination"]["pages"] == 4


def test_get_other_workers_schedule_forbidden(client, admin, worker, make_user, branch, headers_for):
    other = make_user("sam")
    doc = scheduling.insert_schedule(plan(other, branch, admin, datetime(2024, 6, 10)))
    res = client.get(f"/api/schedules/{doc['_id']}", headers=headers_for(worker))
    assert res.status_code == 403
    assert client.get(f"/api/schedules/{doc['_id']}", headers=headers_for(admin)).status_code == 200


def test_conflict_check(client, admin, worker, branch, headers_for):
    doc = scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    params = {"workerId": str(worker["_id"]), "startDate": "2024-06-10", "startTime": "12:00", "endTime": "20:00"}

    body = client.get("/api/schedules/conflicts/check", params=params, headers=headers_for(admin)).json()
    assert body["hasConflicts"] is True
    assert body["conflicts"][0]["id"] == str(doc["_id"])
    assert body["conflicts"][0]["startTime"] == "09:00"

    body = client.get("/api/schedules/conflicts/check", params={**params, "excludeId": str(doc["_id"])},
                      headers=headers_for(admin)).json()
    assert body == {"hasConflicts": False, "conflicts": []}


def test_update_into_conflict_is_rejected(client, admin, worker, branch, headers_for):
    day = datetime(2024, 6, 10)
    scheduling.insert_schedule(plan(worker, branch, admin, day))
    evening = scheduling.insert_schedule(plan(worker, branch, admin, day, "18:00", "22:00"))

    res = client.put(f"/api/schedules/{evening['_id']}", json={"startTime": "16:00"}, headers=headers_for(admin))
    assert res.status_code == 400
    assert "Conflicting schedule: 09:00-17:00" in res.json()["details"]

    res = client.put(f"/api/schedules/{evening['_id']}", json={"startTime": "17:00", "notes": "close"},
                     headers=headers_for(admin))
    assert res.status_code == 200
    assert res.json()["schedule"]["startTime"] == "17:00"
    assert res.json()["schedule"]["notes"] == "close"


def test_confirm_own_schedule(client, admin, worker, branch, headers_for):
    doc = scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    res = client.patch(f"/api/schedules/{doc['_id']}/confirm", headers=headers_for(worker))
    assert res.status_code == 200
    schedule = res.json()["schedule"]
    assert schedule["status"] == "confirmed"
    assert schedule["confirmedBy"]["username"] == "ali"


def test_confirm_others_schedule_forbidden(client, admin, worker, make_user, branch, headers_for):
    other = make_user("sam")
    doc = scheduling.insert_schedule(plan(other, branch, admin, datetime(2024, 6, 10)))
    res = client.patch(f"/api/schedules/{doc['_id']}/confirm", headers=headers_for(worker))
    assert res.status_code == 403


def test_busy_slot_returns_conflict(client, admin, worker, branch, headers_for):
    day = datetime(2024, 6, 10)
    doc = scheduling.insert_schedule(plan(worker, branch, admin, day))
    database.collection(COL_SCHEDULE_LOCKS).insert_one(
        {"worker_id": worker["_id"], "date": day, "expires_at": database.utcnow() + timedelta(minutes=5)}
    )
    res = client.patch(f"/api/schedules/{doc['_id']}/confirm", headers=headers_for(admin))
    assert res.status_code == 409


def test_weekly_overview(client, admin, worker, branch, headers_for):
    scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 18)))

    res = client.get("/api/schedules/weekly/2024/24", headers=headers_for(admin))
    assert res.status_code == 200
    body = res.json()
    assert body["startDate"].startswith("2024-06-10")
    assert len(body["schedules"]) == 7
    assert len(body["schedules"]["2024-06-10"]["DT"]) == 1
    assert body["schedules"]["2024-06-11"] == {}

    assert client.get("/api/schedules/weekly/2024/54", headers=headers_for(admin)).status_code == 400


def test_delete_schedule(client, admin, worker, branch, headers_for):
    doc = scheduling.insert_schedule(plan(worker, branch, admin, datetime(2024, 6, 10)))
    res = client.delete(f"/api/schedules/{doc['_id']}", headers=headers_for(admin))
    assert res.status_code == 200
    assert client.get(f"/api/schedules/{doc['_id']}", headers=headers_for(admin)).status_code == 404


def test_weekly_overview_rejects_out_of_range_year(client, admin, headers_for):
    res = client.get("/api/schedules/weekly/0/1", headers=headers_for(admin))
    assert res.status_code == 400
    assert res.json()["message"].startswith("Year must be between")
