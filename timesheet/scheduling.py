"""
Schedule persistence with the overlap guard.

Every write of a non-cancelled schedule checks the worker's other
schedules for that day while holding the worker/day slot claim, so the
check and the write cannot interleave with another writer.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo.errors import PyMongoError

from timesheet.database import (
    COL_SCHEDULES,
    SlotBusyError,
    create_document,
    get_documents,
    get_one,
    slot_lock,
    update_document,
)
from timesheet.shift_time import ShiftValidationError, ScheduleConflictError, find_conflicts, weekday_name

logger = logging.getLogger("schedules")

BULK_DAYS = 28


def conflicts_for(worker_id: Any, day: datetime, start_time: str, end_time: str,
                  exclude_id: Any = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"worker_id": worker_id, "date": day, "status": {"$nin": ["cancelled"]}}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    candidate = {"worker_id": worker_id, "date": day, "start_time": start_time, "end_time": end_time}
    return find_conflicts(candidate, get_documents(COL_SCHEDULES, query))


def _guard(doc: Dict[str, Any], exclude_id: Any = None) -> None:
    if doc.get("status") == "cancelled":
        return
    conflicts = conflicts_for(doc["worker_id"], doc["date"], doc["start_time"], doc["end_time"], exclude_id)
    if conflicts:
        raise ScheduleConflictError(conflicts)


def insert_schedule(doc: Dict[str, Any]) -> Dict[str, Any]:
    with slot_lock(doc["worker_id"], doc["date"]):
        _guard(doc)
        return create_document(COL_SCHEDULES, doc)


def update_schedule(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**current, **changes}
    with slot_lock(merged["worker_id"], merged["date"]):
        _guard(merged, exclude_id=current["_id"])
        update_document(COL_SCHEDULES, {"_id": current["_id"]}, {"$set": changes})
    return get_one(COL_SCHEDULES, {"_id": current["_id"]})


def generate_schedules(template: Dict[str, Any], working_days: Iterable[str], start: datetime,
                       days: int = BULK_DAYS) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Create one schedule per matching weekday in ``days`` days from ``start``.

    The first schedule created heads the series; the rest point back to it
    through ``original_schedule_id``. A day that cannot be saved is logged
    and skipped. Returns ``(created, skipped)``.
    """
    wanted = {day.lower() for day in working_days}
    created: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []
    logger.info("Creating schedules for working days: %s", ", ".join(sorted(wanted)))

    for offset in range(days):
        day = start + timedelta(days=offset)
        name = weekday_name(day)
        if name not in wanted:
            continue
        doc = dict(template, date=day)
        if created:
            doc["original_schedule_id"] = created[0]["_id"]
        try:
            created.append(insert_schedule(doc))
            logger.info("Created schedule for %s %s", name, day.date().isoformat())
        except (ShiftValidationError, SlotBusyError, PyMongoError) as e:
            logger.error("Error creating schedule for %s: %s", day.date().isoformat(), e)
            skipped.append({"date": day, "reason": str(e)})
    return created, skipped


def find_by_date_range(start: datetime, end: datetime, branch_id: Any = None, worker_id: Any = None,
                       status: Optional[str] = None, shift_type: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"date": {"$gte": start, "$lte": end}}
    if branch_id is not None:
        query["branch_id"] = branch_id
    if worker_id is not None:
        query["worker_id"] = worker_id
    if status:
        query["status"] = status
    if shift_type:
        query["shift_type"] = shift_type
    return get_documents(COL_SCHEDULES, query, sort=[("date", 1), ("start_time", 1)])
