from datetime import MAXYEAR, MINYEAR, date, datetime, timedelta
from typing import Any, Dict, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic.alias_generators import to_camel

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

HIDDEN_FIELDS = {"password"}


def to_object_id(id_str: Any, label: str = "") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID" if label else "Invalid ID")


def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {to_camel(k): _convert(v) for k, v in value.items() if k not in HIDDEN_FIELDS}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def doc_to_dict(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Render a stored document for the API: ``_id`` -> ``id``, camelCase keys."""
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _convert(doc)


def day_start(value: Any) -> datetime:
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return day_start(date.fromisoformat(str(value)[:10]))


def parse_day(value: str) -> datetime:
    try:
        return day_start(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date {value!r}")


def _check_year(year: int) -> None:
    # keep a margin so the range end and week padding stay representable
    if not MINYEAR < year < MAXYEAR:
        raise HTTPException(status_code=400, detail=f"Year must be between {MINYEAR + 1} and {MAXYEAR - 1}")


def month_range(month: int, year: int) -> Tuple[datetime, datetime]:
    _check_year(year)
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def week_start(year: int, week: int) -> datetime:
    """Monday of the ``week``-th seven-day block counted from January 1."""
    _check_year(year)
    target = datetime(year, 1, 1) + timedelta(days=(week - 1) * 7)
    return target - timedelta(days=target.weekday())
