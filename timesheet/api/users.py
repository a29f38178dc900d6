from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from timesheet.api.auth import create_user
from timesheet.database import COL_USERS, get_documents, get_one, update_document
from timesheet.helpers import doc_to_dict
from timesheet.schemas import CreateUserRequest, ProfileUpdate
from timesheet.security import get_current_user, require_admin

router = APIRouter(tags=["users"])


# -----------------
# Users (admin)
# -----------------

@router.get("/api/users")
def list_users(_: Dict[str, Any] = Depends(require_admin)):
    return [doc_to_dict(u) for u in get_documents(COL_USERS, sort=[("username", 1)])]


@router.post("/api/users", status_code=201)
def add_user(payload: CreateUserRequest, _: Dict[str, Any] = Depends(require_admin)):
    user = create_user(payload, is_admin=payload.is_admin)
    return {
        "id": str(user["_id"]),
        "username": user["username"],
        "employeeId": user["employee_id"],
        "position": user["position"],
        "isAdmin": user["is_admin"],
    }


# -----------------
# Profile
# -----------------

@router.get("/api/profile")
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return doc_to_dict(user)


@router.put("/api/profile")
def update_profile(payload: ProfileUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    updates = payload.model_dump(exclude_none=True)
    if updates:
        update_document(COL_USERS, {"_id": user["_id"]}, {"$set": updates})
    fresh = get_one(COL_USERS, {"_id": user["_id"]})
    if not fresh:
        raise HTTPException(status_code=404, detail="User not found")
    return doc_to_dict(fresh)
