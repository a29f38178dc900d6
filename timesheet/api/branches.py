import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from pydantic.alias_generators import to_snake

from timesheet.database import (
    COL_BRANCHES,
    COL_SCHEDULES,
    count_documents,
    create_document,
    delete_documents,
    get_documents,
    get_one,
    update_document,
)
from timesheet.helpers import doc_to_dict, to_object_id
from timesheet.schemas import Branch, BranchUpdate
from timesheet.security import require_admin
from timesheet.shift_time import WEEKDAYS

logger = logging.getLogger("api.branches")

router = APIRouter(prefix="/api/branches", tags=["branches"])

NESTED_SECTIONS = ("location", "contact", "operating_hours", "capacity", "requirements")
DUPLICATE_DETAIL = "Branch name or code already exists"


def _get_branch(branch_id: str) -> Dict[str, Any]:
    branch = get_one(COL_BRANCHES, {"_id": to_object_id(branch_id, "branch")})
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    return branch


def _snake_keys(value: Any) -> Any:
    # nested sections arrive camelCase from the API
    if isinstance(value, dict):
        return {to_snake(k): _snake_keys(v) for k, v in value.items()}
    return value


def _merge(current: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def hours_for_day(branch: Dict[str, Any], day: str):
    """Open/close times for ``day``, or None when the branch is closed."""
    hours = branch.get("operating_hours", {}).get(day.lower())
    if hours and hours.get("is_open"):
        return {"open": hours["open"], "close": hours["close"]}
    return None


# -----------------
# Public
# -----------------

@router.get("/public/active")
def active_branches():
    branches = get_documents(COL_BRANCHES, {"is_active": True}, sort=[("name", 1)])
    return [
        doc_to_dict({
            "_id": b["_id"],
            "name": b["name"],
            "code": b["code"],
            "location": {"address": b["location"]["address"], "city": b["location"]["city"]},
            "operating_hours": b.get("operating_hours", {}),
        })
        for b in branches
    ]


# -----------------
# Admin
# -----------------

@router.get("")
def list_branches(include_inactive: bool = Query(False, alias="includeInactive"),
                  _: Dict[str, Any] = Depends(require_admin)):
    query = {} if include_inactive else {"is_active": True}
    return [doc_to_dict(b) for b in get_documents(COL_BRANCHES, query, sort=[("name", 1)])]


@router.get("/{branch_id}")
def get_branch(branch_id: str, _: Dict[str, Any] = Depends(require_admin)):
    return doc_to_dict(_get_branch(branch_id))


@router.post("", status_code=201)
def create_branch(payload: Branch, _: Dict[str, Any] = Depends(require_admin)):
    existing = get_one(COL_BRANCHES, {"$or": [{"name": payload.name}, {"code": payload.code}]})
    if existing:
        detail = "Branch name already exists" if existing["name"] == payload.name else "Branch code already exists"
        raise HTTPException(status_code=400, detail=detail)
    try:
        branch = create_document(COL_BRANCHES, payload.model_dump())
    except DuplicateKeyError:
        # lost a race with a concurrent create
        raise HTTPException(status_code=400, detail=DUPLICATE_DETAIL)
    logger.info("Branch %s (%s) created", branch["name"], branch["code"])
    return {"message": "Branch created successfully", "branch": doc_to_dict(branch)}


@router.put("/{branch_id}")
def update_branch(branch_id: str, payload: BranchUpdate, _: Dict[str, Any] = Depends(require_admin)):
    branch = _get_branch(branch_id)

    if payload.name and payload.name != branch["name"]:
        if get_one(COL_BRANCHES, {"name": payload.name, "_id": {"$ne": branch["_id"]}}):
            raise HTTPException(status_code=400, detail="Branch name already exists")
    if payload.code and payload.code != branch["code"]:
        if get_one(COL_BRANCHES, {"code": payload.code, "_id": {"$ne": branch["_id"]}}):
            raise HTTPException(status_code=400, detail="Branch code already exists")

    incoming = payload.model_dump(exclude_none=True)
    for section in NESTED_SECTIONS:
        if section in incoming:
            incoming[section] = _snake_keys(incoming[section])
    stored = {k: branch[k] for k in Branch.model_fields if k in branch}
    # re-validate the merged branch so nested sections keep their bounds
    try:
        updated = Branch.model_validate(_merge(stored, incoming))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Validation error: {e.errors()[0]['msg']}")

    try:
        update_document(COL_BRANCHES, {"_id": branch["_id"]}, {"$set": updated.model_dump()})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=DUPLICATE_DETAIL)
    return {"message": "Branch updated successfully", "branch": doc_to_dict(get_one(COL_BRANCHES, {"_id": branch["_id"]}))}


@router.delete("/{branch_id}")
def deactivate_branch(branch_id: str, _: Dict[str, Any] = Depends(require_admin)):
    branch = _get_branch(branch_id)
    update_document(COL_BRANCHES, {"_id": branch["_id"]}, {"$set": {"is_active": False}})
    branch["is_active"] = False
    return {"message": "Branch deactivated successfully", "branch": doc_to_dict(branch)}


@router.delete("/{branch_id}/permanent")
def delete_branch(branch_id: str, _: Dict[str, Any] = Depends(require_admin)):
    branch = _get_branch(branch_id)
    scheduled = count_documents(COL_SCHEDULES, {"branch_id": branch["_id"]})
    if scheduled:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete branch with existing schedules. Deactivate instead.",
        )
    delete_documents(COL_BRANCHES, {"_id": branch["_id"]})
    logger.warning("Branch %s permanently deleted", branch["code"])
    return {"message": "Branch permanently deleted"}


@router.get("/{branch_id}/hours/{day}")
def branch_hours(branch_id: str, day: str, _: Dict[str, Any] = Depends(require_admin)):
    if day.lower() not in WEEKDAYS:
        raise HTTPException(status_code=400, detail=f"Unknown day {day!r}")
    hours = hours_for_day(_get_branch(branch_id), day)
    if not hours:
        return {"isOpen": False, "message": f"Branch is closed on {day}"}
    return {"isOpen": True, "day": day, **hours}
