import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from auth import AuthUser, get_current_user
from database import (create_document, find_by_id, get_collection, get_documents, serialize_doc,
                      to_utc, update_document)
from schemas import Notification as NotificationSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def get_user_notifications(current: AuthUser = Depends(get_current_user)):
    return serialize_doc(get_documents("notification", {"user_id": current.id}, sort=[("created_at", -1)]))


@router.put("/{notification_id}/read")
def mark_notification_read(notification_id: str, current: AuthUser = Depends(get_current_user)):
    notif = find_by_id("notification", notification_id, "Notification not found")
    if notif.get("user_id") != current.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    return serialize_doc(update_document("notification", notification_id, {"read": True}))


def send_festival_reminders(today: Optional[datetime] = None) -> int:
    """
    Notify every user going to an approved festival that starts tomorrow.
    Returns the number of notifications created.
    """
    today = to_utc(today or datetime.now(timezone.utc))
    start = (today + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)

    created = 0
    festivals = get_collection("festival").find({"start_date": {"$gte": start, "$lt": end}, "approved": True})
    for fest in festivals:
        fest_id = str(fest["_id"])
        city = (fest.get("location") or {}).get("city", "")
        for user in get_collection("user").find({"going_to": fest_id}, {"_id": 1}):
            create_document("notification", NotificationSchema(
                user_id=str(user["_id"]),
                message=f'"{fest.get("name")}" starts tomorrow in {city}',
                link=f"/festivals/{fest_id}",
            ))
            created += 1
    logger.info("Created %d festival reminders", created)
    return created
