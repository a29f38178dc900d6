from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from timesheet import telegram
from timesheet.database import (
    COL_ANNOUNCEMENTS,
    create_document,
    delete_documents,
    get_documents,
    get_one,
    update_document,
)
from timesheet.helpers import doc_to_dict, to_object_id
from timesheet.schemas import Announcement, AnnouncementUpdate
from timesheet.security import get_current_user, require_admin

router = APIRouter(prefix="/api/announcements", tags=["announcements"])


def _get_announcement(announcement_id: str) -> Dict[str, Any]:
    announcement = get_one(COL_ANNOUNCEMENTS, {"_id": to_object_id(announcement_id, "announcement")})
    if not announcement:
        raise HTTPException(status_code=404, detail="Announcement not found")
    return announcement


@router.get("")
def list_announcements(_: Dict[str, Any] = Depends(get_current_user)):
    return [doc_to_dict(a) for a in get_documents(COL_ANNOUNCEMENTS, sort=[("created_at", -1), ("_id", -1)])]


@router.post("", status_code=201)
def create_announcement(payload: Announcement, background: BackgroundTasks,
                        _: Dict[str, Any] = Depends(require_admin)):
    announcement = create_document(COL_ANNOUNCEMENTS, payload.model_dump())
    background.add_task(telegram.telegram_service.send_announcement_notification, announcement, "created")
    return doc_to_dict(announcement)


@router.put("/{announcement_id}")
def update_announcement(announcement_id: str, payload: AnnouncementUpdate, background: BackgroundTasks,
                        _: Dict[str, Any] = Depends(require_admin)):
    announcement = _get_announcement(announcement_id)
    # empty strings keep the current text
    changes = {k: v for k, v in payload.model_dump(exclude_none=True).items() if v != ""}
    if changes:
        update_document(COL_ANNOUNCEMENTS, {"_id": announcement["_id"]}, {"$set": changes})
    updated = get_one(COL_ANNOUNCEMENTS, {"_id": announcement["_id"]})
    background.add_task(telegram.telegram_service.send_announcement_notification, updated, "updated")
    return doc_to_dict(updated)


@router.delete("/{announcement_id}")
def delete_announcement(announcement_id: str, background: BackgroundTasks,
                        _: Dict[str, Any] = Depends(require_admin)):
    announcement = _get_announcement(announcement_id)
    delete_documents(COL_ANNOUNCEMENTS, {"_id": announcement["_id"]})
    background.add_task(telegram.telegram_service.send_announcement_notification, announcement, "deleted")
    return {"message": "Announcement deleted successfully"}
