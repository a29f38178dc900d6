import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query

from timesheet import config, scheduling
from timesheet.database import (
    COL_BRANCHES,
    COL_SCHEDULES,
    COL_USERS,
    count_documents,
    delete_documents,
    get_documents,
    get_one,
    utcnow,
)
from timesheet.helpers import day_start, doc_to_dict, parse_day, to_object_id, week_start
from timesheet.schemas import Schedule, ScheduleCreateRequest, ScheduleUpdateRequest
from timesheet.security import get_current_user, require_admin
from timesheet.shift_time import duration_hours, is_valid_hhmm

logger = logging.getLogger("api.schedules")

router = APIRouter(prefix="/api/schedules", tags=["schedules"])

WORKER_FIELDS = ("username", "name", "position", "photo_url", "employee_id")
BRANCH_FIELDS = ("name", "code", "location")
PERSON_FIELDS = ("username", "name")


def _lookup(collection: str, ids) -> Dict[Any, Dict[str, Any]]:
    ids = [i for i in set(ids) if i is not None]
    if not ids:
        return {}
    return {d["_id"]: d for d in get_documents(collection, {"_id": {"$in": ids}})}


def _pick(doc: Optional[Dict[str, Any]], fields) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    return doc_to_dict({"_id": doc["_id"], **{f: doc.get(f) for f in fields}})


def render_schedules(schedules: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    users = _lookup(COL_USERS, [s["worker_id"] for s in schedules]
                    + [s.get("created_by") for s in schedules]
                    + [s.get("confirmed_by") for s in schedules])
    branches = _lookup(COL_BRANCHES, [s["branch_id"] for s in schedules])
    rendered = []
    for s in schedules:
        item = doc_to_dict(s)
        item["duration"] = duration_hours(s["start_time"], s["end_time"])
        item["worker"] = _pick(users.get(s["worker_id"]), WORKER_FIELDS)
        item["branch"] = _pick(branches.get(s["branch_id"]), BRANCH_FIELDS)
        item["createdBy"] = _pick(users.get(s.get("created_by")), PERSON_FIELDS)
        item["confirmedBy"] = _pick(users.get(s.get("confirmed_by")), PERSON_FIELDS)
        rendered.append(item)
    return rendered


def _active(collection: str, id_str: str, label: str) -> Dict[str, Any]:
    doc = get_one(collection, {"_id": to_object_id(id_str, label.lower())})
    if not doc or not doc.get("is_active", True):
        raise HTTPException(status_code=400, detail=f"{label} not found or inactive")
    return doc


def _check_time(value: str, label: str = "") -> None:
    if not is_valid_hhmm(value):
        raise HTTPException(status_code=400, detail=f"Invalid {label}time format. Use HH:MM")


def _get_schedule(schedule_id: str) -> Dict[str, Any]:
    schedule = get_one(COL_SCHEDULES, {"_id": to_object_id(schedule_id, "schedule")})
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return schedule


def _today() -> datetime:
    return day_start(datetime.now(ZoneInfo(config.APP_TIMEZONE)))


# -----------------
# Queries
# -----------------

@router.get("")
def list_schedules(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    branch_id: Optional[str] = Query(None, alias="branchId"),
    worker_id: Optional[str] = Query(None, alias="workerId"),
    status: Optional[str] = None,
    shift_type: Optional[str] = Query(None, alias="shiftType"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user: Dict[str, Any] = Depends(get_current_user),
):
    # default to the current Sunday-Saturday week
    today = _today()
    default_start = today - timedelta(days=(today.weekday() + 1) % 7)
    start = parse_day(start_date) if start_date else default_start
    end = parse_day(end_date) if end_date else default_start + timedelta(days=6)

    query: Dict[str, Any] = {"date": {"$gte": start, "$lte": end}}
    if not user.get("is_admin"):
        query["worker_id"] = user["_id"]
    else:
        if worker_id:
            query["worker_id"] = to_object_id(worker_id, "worker")
        if branch_id:
            query["branch_id"] = to_object_id(branch_id, "branch")
    if status:
        query["status"] = status
    if shift_type:
        query["shift_type"] = shift_type

    schedules = get_documents(
        COL_SCHEDULES, query, sort=[("date", 1), ("start_time", 1)], skip=(page - 1) * limit, limit=limit
    )
    total = count_documents(COL_SCHEDULES, query)
    return {
        "schedules": render_schedules(schedules),
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


@router.get("/conflicts/check")
def check_conflicts(
    worker_id: str = Query(..., alias="workerId"),
    start_date: str = Query(..., alias="startDate"),
    start_time: str = Query(..., alias="startTime"),
    end_time: str = Query(..., alias="endTime"),
    exclude_id: Optional[str] = Query(None, alias="excludeId"),
    _: Dict[str, Any] = Depends(require_admin),
):
    _check_time(start_time, "start ")
    _check_time(end_time, "end ")
    conflicts = scheduling.conflicts_for(
        to_object_id(worker_id, "worker"),
        parse_day(start_date),
        start_time,
        end_time,
        to_object_id(exclude_id, "schedule") if exclude_id else None,
    )
    return {
        "hasConflicts": bool(conflicts),
        "conflicts": [
            {
                "id": str(c["_id"]),
                "date": c["date"],
                "startTime": c["start_time"],
                "endTime": c["end_time"],
                "branch": str(c["branch_id"]),
                "shiftType": c["shift_type"],
            }
            for c in conflicts
        ],
    }


@router.get("/weekly/{year}/{week}")
def weekly_overview(
    year: int,
    week: int,
    branch_id: Optional[str] = Query(None, alias="branchId"),
    shift_type: Optional[str] = Query(None, alias="shiftType"),
    _: Dict[str, Any] = Depends(require_admin),
):
    if not 1 <= week <= 53:
        raise HTTPException(status_code=400, detail="Week must be between 1 and 53")
    start = week_start(year, week)
    end = start + timedelta(days=6)

    schedules = scheduling.find_by_date_range(
        start,
        end,
        branch_id=to_object_id(branch_id, "branch") if branch_id else None,
        shift_type=shift_type,
    )
    logger.info("Found %d schedules for week %d of %d", len(schedules), week, year)

    weekly: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
        (start + timedelta(days=i)).date().isoformat(): {} for i in range(7)
    }
    for item, raw in zip(render_schedules(schedules), schedules):
        code = item["branch"]["code"] if item["branch"] else "UNKNOWN"
        weekly[raw["date"].date().isoformat()].setdefault(code, []).append(item)

    return {"year": year, "week": week, "startDate": start, "endDate": end, "schedules": weekly}


@router.get("/{schedule_id}")
def get_schedule(schedule_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    schedule = _get_schedule(schedule_id)
    if not user.get("is_admin") and schedule["worker_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return render_schedules([schedule])[0]


# -----------------
# Mutations
# -----------------

@router.post("", status_code=201)
def create_schedules(payload: ScheduleCreateRequest, admin: Dict[str, Any] = Depends(require_admin)):
    branch = _active(COL_BRANCHES, payload.branch_id, "Branch")
    worker = _active(COL_USERS, payload.worker_id, "Worker")
    _check_time(payload.start_time)
    _check_time(payload.end_time)

    template = Schedule(
        branch_id=str(branch["_id"]),
        worker_id=str(worker["_id"]),
        date=_today(),
        start_time=payload.start_time,
        end_time=payload.end_time,
        shift_type=payload.shift_type,
        role=payload.role,
        notes=payload.notes,
        created_by=str(admin["_id"]),
    ).model_dump()
    template.update(branch_id=branch["_id"], worker_id=worker["_id"], created_by=admin["_id"])

    created, skipped = scheduling.generate_schedules(template, payload.working_days, _today())
    if not created:
        raise HTTPException(
            status_code=400,
            detail=f"No schedules could be created: {skipped[0]['reason'] if skipped else 'no matching days'}",
        )

    duration_text = "1 year" if payload.duration == "1year" else "6 months"
    days_text = ", ".join(day.capitalize() for day in payload.working_days)
    return {
        "message": (
            f"Schedule created successfully for {duration_text} - Worker will appear on "
            f"{days_text} for {len(created)} days"
        ),
        "schedule": render_schedules([created[0]])[0],
        "createdCount": len(created),
        "skippedCount": len(skipped),
    }


@router.put("/{schedule_id}")
def update_schedule(schedule_id: str, payload: ScheduleUpdateRequest, _: Dict[str, Any] = Depends(require_admin)):
    schedule = _get_schedule(schedule_id)
    changes: Dict[str, Any] = {}

    if payload.branch_id and payload.branch_id != str(schedule["branch_id"]):
        changes["branch_id"] = _active(COL_BRANCHES, payload.branch_id, "Branch")["_id"]
    if payload.worker_id and payload.worker_id != str(schedule["worker_id"]):
        changes["worker_id"] = _active(COL_USERS, payload.worker_id, "Worker")["_id"]
    if payload.start_time:
        _check_time(payload.start_time, "start ")
        changes["start_time"] = payload.start_time
    if payload.end_time:
        _check_time(payload.end_time, "end ")
        changes["end_time"] = payload.end_time
    for field in ("shift_type", "role", "status", "notes"):
        value = getattr(payload, field)
        if value is not None:
            changes[field] = value

    updated = scheduling.update_schedule(schedule, changes) if changes else schedule
    return {"message": "Schedule updated successfully", "schedule": render_schedules([updated])[0]}


@router.delete("/{schedule_id}")
def delete_schedule(schedule_id: str, _: Dict[str, Any] = Depends(require_admin)):
    schedule = _get_schedule(schedule_id)
    delete_documents(COL_SCHEDULES, {"_id": schedule["_id"]})
    return {"message": "Schedule deleted successfully"}


@router.patch("/{schedule_id}/confirm")
def confirm_schedule(schedule_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    schedule = _get_schedule(schedule_id)
    if not user.get("is_admin") and schedule["worker_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="You can only confirm your own schedules")
    updated = scheduling.update_schedule(
        schedule, {"status": "confirmed", "confirmed_by": user["_id"], "confirmed_at": utcnow()}
    )
    return {"message": "Schedule confirmed successfully", "schedule": render_schedules([updated])[0]}
