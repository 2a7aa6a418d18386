from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.models.notification import Notification, NotificationType
from app.models.user import User
from app.db.session import get_db
from app.core.errors import NotFound
from app.services.auth import get_current_user
from app.services.notification import mark_notifications_read, unread_count

router = APIRouter()

@router.get("/notifications", response_model=List[Notification])
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    """Newest first, optionally only unread ones or one notification type"""
    filters = {"user_id": current_user.id}
    if unread_only:
        filters["read"] = False
    if type:
        filters["type"] = type

    cursor = db.notifications.find(filters).sort("created_at", -1).skip(skip).limit(limit)
    return [Notification(**doc) for doc in await cursor.to_list(limit)]

@router.get("/notifications/unread-count")
async def get_unread_count(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    return {"unread_count": await unread_count(db, current_user.id)}

@router.put("/notifications/mark-all-read")
async def mark_all_read(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    marked = await mark_notifications_read(db, current_user.id)
    return {"marked": marked, "unread_count": 0}

@router.put("/notifications/{notification_id}/mark-read")
async def mark_one_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    # Scoped to the owner so ids of other users' notifications look missing
    exists = await db.notifications.count_documents({"id": notification_id, "user_id": current_user.id})
    if not exists:
        raise NotFound("Notification not found")

    await mark_notifications_read(db, current_user.id, notification_id)
    return {"unread_count": await unread_count(db, current_user.id)}
