"""
Shift time arithmetic shared by time entries, schedules and reports.

Two concerns live here:

* worked hours for a logged shift (``calculate_hours``), including shifts
  that cross midnight;
* overlap detection between planned shifts of the same worker on the same
  day (``find_conflicts``).

Everything in this module is pure: no database access, no clock reads.
"""
import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from timesheet import config

MINUTES_PER_DAY = 24 * 60
OVERTIME_THRESHOLD_HOURS = 12

HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

SHIFT_PRESETS = {
    "morning": {"start": "08:00", "end": "16:00"},
    "afternoon": {"start": "12:00", "end": "20:00"},
    "evening": {"start": "16:00", "end": "23:00"},
    "night": {"start": "22:00", "end": "06:00"},
    "full-day": {"start": "08:00", "end": "22:00"},
}

TimeValue = Union[str, datetime]


class ShiftValidationError(ValueError):
    pass


class ScheduleConflictError(ShiftValidationError):
    def __init__(self, conflicts: List[Dict[str, Any]]):
        self.conflicts = conflicts
        first = conflicts[0]
        super().__init__(
            "Worker already scheduled at this time. "
            f"Conflicting schedule: {first['start_time']}-{first['end_time']}"
        )


def round_hours(value: float) -> float:
    # half-up, so 7.25 -> 7.3 rather than banker's 7.2
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def is_valid_hhmm(value: Any) -> bool:
    return isinstance(value, str) and HHMM_PATTERN.match(value) is not None


def parse_hhmm(value: str) -> Tuple[int, int]:
    match = HHMM_PATTERN.match(value or "") if isinstance(value, str) else None
    if not match:
        raise ShiftValidationError(f"Invalid time {value!r}. Use HH:MM")
    return int(match.group(1)), int(match.group(2))


def to_minutes(value: str) -> int:
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def local_clock(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Wall-clock view of ``value`` in the configured zone.

    Naive datetimes are taken to already be wall-clock time.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(tz_name or config.APP_TIMEZONE))


def to_storage(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Naive UTC, as MongoDB keeps it. Naive input is wall-clock time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name or config.APP_TIMEZONE))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage(value: datetime, tz_name: Optional[str] = None) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz_name or config.APP_TIMEZONE))


def _clock_parts(value: TimeValue) -> Tuple[int, int]:
    if isinstance(value, datetime):
        local = local_clock(value)
        return local.hour, local.minute
    return parse_hhmm(value)


def calculate_hours(start: TimeValue, end: TimeValue, break_minutes: float = 0) -> float:
    """Worked hours between two clock readings, rounded to one decimal.

    An end hour earlier than the start hour means the shift crossed
    midnight. The minute difference is applied as a flat fraction, so a
    same-hour end minute before the start minute comes out negative.
    """
    start_hour, start_minute = _clock_parts(start)
    end_hour, end_minute = _clock_parts(end)

    if end_hour < start_hour:
        work_hours = 24 - start_hour + end_hour
    else:
        work_hours = end_hour - start_hour

    work_hours += (end_minute - start_minute) / 60
    work_hours -= (break_minutes or 0) / 60
    return round_hours(work_hours)


def normalized_interval(start_time: str, end_time: str) -> Tuple[int, int]:
    start = to_minutes(start_time)
    end = to_minutes(end_time)
    if end < start:
        end += MINUTES_PER_DAY
    return start, end


def duration_hours(start_time: str, end_time: str) -> float:
    start, end = normalized_interval(start_time, end_time)
    return round_hours((end - start) / 60)


def intervals_overlap(first: Tuple[int, int], second: Tuple[int, int]) -> bool:
    return first[0] < second[1] and first[1] > second[0]


def _day(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def find_conflicts(candidate: Dict[str, Any], existing: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Existing schedules that overlap ``candidate``.

    Both sides are schedule documents (``worker_id``, ``date``,
    ``start_time``, ``end_time``, optional ``status`` and ``_id``). Only the
    same worker on the same calendar day is compared, cancelled schedules
    never take part, and the candidate is never compared with itself.
    """
    if candidate.get("status") == "cancelled":
        return []
    interval = normalized_interval(candidate["start_time"], candidate["end_time"])
    worker = str(candidate["worker_id"])
    day = _day(candidate["date"])
    own_id = candidate.get("_id")

    conflicts = []
    for other in existing:
        if other.get("status") == "cancelled":
            continue
        if own_id is not None and other.get("_id") == own_id:
            continue
        if str(other["worker_id"]) != worker or _day(other["date"]) != day:
            continue
        if intervals_overlap(interval, normalized_interval(other["start_time"], other["end_time"])):
            conflicts.append(other)
    return conflicts


def is_overtime(hours: float) -> bool:
    return hours > OVERTIME_THRESHOLD_HOURS


def weekday_name(value: Union[date, datetime]) -> str:
    return WEEKDAYS[value.weekday()]
