import io
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import StreamingResponse

from timesheet import config, reports, telegram
from timesheet.database import (
    COL_TIME_ENTRIES,
    COL_USERS,
    create_document,
    delete_documents,
    get_documents,
    get_one,
    update_document,
)
from timesheet.helpers import MONTHS, day_start, doc_to_dict, month_range, parse_day, to_object_id
from timesheet.schemas import TimeEntry, TimeEntryRequest
from timesheet.security import get_current_user, require_admin
from timesheet.shift_time import calculate_hours, to_storage

logger = logging.getLogger("api.time")

router = APIRouter(prefix="/api/time", tags=["time"])

USER_FIELDS = ("username", "position", "employee_id")


def _entry_fields(payload: TimeEntryRequest) -> Dict[str, Any]:
    hours = calculate_hours(payload.start_time, payload.end_time, payload.break_minutes)
    if hours < 0:
        raise HTTPException(status_code=400, detail="End time must be after start time")
    return {
        "date": day_start(payload.date),
        "start_time": to_storage(payload.start_time),
        "end_time": to_storage(payload.end_time),
        "hours": hours,
        "break_minutes": payload.break_minutes,
        "overtime_reason": payload.overtime_reason,
        "responsible_person": payload.responsible_person,
        "description": payload.description,
    }


def _render(entries: List[Dict[str, Any]], users: Optional[Dict[Any, Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Serialize entries with their owner's public fields attached."""
    if users is None:
        ids = list({e["user_id"] for e in entries})
        users = {u["_id"]: u for u in get_documents(COL_USERS, {"_id": {"$in": ids}})} if ids else {}
    rendered = []
    for entry in entries:
        item = doc_to_dict(entry)
        owner = users.get(entry["user_id"])
        item["user"] = {"id": str(entry["user_id"]), **doc_to_dict({k: owner.get(k) for k in USER_FIELDS})} if owner else None
        rendered.append(item)
    return rendered


def _month_entries(user_id: Any, month: int, year: int) -> List[Dict[str, Any]]:
    start, end = month_range(month, year)
    return get_documents(
        COL_TIME_ENTRIES,
        {"user_id": user_id, "date": {"$gte": start, "$lt": end}},
        sort=[("date", 1)],
    )


def _owned_entry(entry_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    entry = get_one(COL_TIME_ENTRIES, {"_id": to_object_id(entry_id, "time entry")})
    if not entry:
        raise HTTPException(status_code=404, detail="Time entry not found")
    if entry["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Not authorized")
    return entry


def _check_edit_window(entry: Dict[str, Any]) -> None:
    if config.EDIT_WINDOW_DAYS <= 0:
        return
    today = day_start(datetime.now(ZoneInfo(config.APP_TIMEZONE)))
    if entry["date"] < today - timedelta(days=config.EDIT_WINDOW_DAYS):
        raise HTTPException(
            status_code=403,
            detail=f"Entries older than {config.EDIT_WINDOW_DAYS} days can no longer be edited",
        )


# -----------------
# Worker entries
# -----------------

@router.post("", status_code=201)
def add_time_entry(payload: TimeEntryRequest, background: BackgroundTasks,
                   user: Dict[str, Any] = Depends(get_current_user)):
    fields = _entry_fields(payload)
    entry = TimeEntry(
        user_id=str(user["_id"]),
        position=user.get("position", "worker"),
        employee_id=user.get("employee_id", ""),
        **fields,
    )
    doc = entry.model_dump()
    doc["user_id"] = user["_id"]
    doc = create_document(COL_TIME_ENTRIES, doc)
    logger.info("Time entry %s added by %s: %sh", doc["_id"], user["username"], doc["hours"])
    background.add_task(telegram.telegram_service.send_time_entry_notification, doc, user, "added")
    return _render([doc], {user["_id"]: user})[0]


@router.get("/my-entries")
def my_entries(user: Dict[str, Any] = Depends(get_current_user)):
    entries = get_documents(COL_TIME_ENTRIES, {"user_id": user["_id"]}, sort=[("date", -1)])
    return _render(entries, {user["_id"]: user})


@router.get("/all")
def all_entries(month: Optional[int] = None, year: Optional[int] = None,
                _: Dict[str, Any] = Depends(require_admin)):
    query: Dict[str, Any] = {}
    if month and year:
        start, end = month_range(month, year)
        query["date"] = {"$gte": start, "$lt": end}
    return _render(get_documents(COL_TIME_ENTRIES, query, sort=[("date", -1)]))


@router.get("/daily/{day}")
def daily_entries(day: str, user: Dict[str, Any] = Depends(get_current_user)):
    start = parse_day(day)
    entries = get_documents(
        COL_TIME_ENTRIES,
        {"user_id": user["_id"], "date": {"$gte": start, "$lt": start + timedelta(days=1)}},
    )
    return _render(entries, {user["_id"]: user})


@router.get("/weekly/{start_date}")
def weekly_entries(start_date: str, user: Dict[str, Any] = Depends(get_current_user)):
    start = parse_day(start_date)
    entries = get_documents(
        COL_TIME_ENTRIES,
        {"user_id": user["_id"], "date": {"$gte": start, "$lt": start + timedelta(days=7)}},
        sort=[("date", 1)],
    )
    return _render(entries, {user["_id"]: user})


@router.put("/{entry_id}")
def update_time_entry(entry_id: str, payload: TimeEntryRequest, background: BackgroundTasks,
                      user: Dict[str, Any] = Depends(get_current_user)):
    entry = _owned_entry(entry_id, user)
    _check_edit_window(entry)
    fields = _entry_fields(payload)
    # the new date must be inside the window as well
    _check_edit_window(fields)
    update_document(COL_TIME_ENTRIES, {"_id": entry["_id"]}, {"$set": fields})
    updated = get_one(COL_TIME_ENTRIES, {"_id": entry["_id"]})
    background.add_task(telegram.telegram_service.send_time_entry_notification, updated, user, "updated")
    return _render([updated], {user["_id"]: user})[0]


@router.delete("/{entry_id}")
def delete_time_entry(entry_id: str, background: BackgroundTasks,
                      user: Dict[str, Any] = Depends(get_current_user)):
    entry = get_one(COL_TIME_ENTRIES, {"_id": to_object_id(entry_id, "time entry"), "user_id": user["_id"]})
    if not entry:
        raise HTTPException(status_code=404, detail="Time entry not found")
    delete_documents(COL_TIME_ENTRIES, {"_id": entry["_id"]})
    background.add_task(telegram.telegram_service.send_time_entry_notification, entry, user, "deleted")
    return {"message": "Time entry deleted"}


# -----------------
# Reports
# -----------------

def _pdf_response(owner: Dict[str, Any], month: int, year: int, filename: str) -> StreamingResponse:
    entries = _month_entries(owner["_id"], month, year)
    if not entries:
        raise HTTPException(status_code=404, detail="No entries found")
    pdf = reports.build_pdf(owner, entries, month, year)
    return StreamingResponse(
        io.BytesIO(pdf),
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/worker-pdf/{user_id}/{month}/{year}")
def worker_pdf(user_id: str, month: int, year: int, user: Dict[str, Any] = Depends(get_current_user)):
    owner_id = to_object_id(user_id, "user")
    if not user.get("is_admin") and owner_id != user["_id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    month_range(month, year)
    owner = get_one(COL_USERS, {"_id": owner_id})
    if not owner:
        raise HTTPException(status_code=404, detail="User not found")
    return _pdf_response(owner, month, year, f"time-report-{MONTHS[month - 1]}-{year}.pdf")


@router.get("/my-pdf/{month}/{year}")
def my_pdf(month: int, year: int, user: Dict[str, Any] = Depends(get_current_user)):
    month_range(month, year)
    return _pdf_response(user, month, year, f"{user['username']}-{MONTHS[month - 1]}-{year}.pdf")


def _monthly_stats(month: int, year: int, positions=None) -> List[Dict[str, Any]]:
    start, end = month_range(month, year)
    entries = get_documents(COL_TIME_ENTRIES, {"date": {"$gte": start, "$lt": end}})
    ids = list({e["user_id"] for e in entries})
    users = {u["_id"]: u for u in get_documents(COL_USERS, {"_id": {"$in": ids}})} if ids else {}
    stats = reports.worker_stats(entries, users)
    if positions:
        stats = [s for s in stats if s["position"] in positions]
    return stats


@router.get("/summary/{month}/{year}")
def monthly_summary(month: int, year: int, position: Optional[str] = None,
                    _: Dict[str, Any] = Depends(require_admin)):
    stats = _monthly_stats(month, year, [position] if position else None)
    return {"month": month, "year": year, "workers": [doc_to_dict(s) for s in stats]}


@router.get("/excel/{month}/{year}")
def monthly_excel(month: int, year: int, group: Literal["regular", "monthly"] = "regular",
                  _: Dict[str, Any] = Depends(require_admin)):
    stats = _monthly_stats(month, year, reports.EXCEL_GROUPS[group])
    if not stats:
        raise HTTPException(status_code=404, detail="No entries found")
    content = reports.build_excel(stats, month, year, group)
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={reports.excel_filename(month, year, group)}"},
    )
