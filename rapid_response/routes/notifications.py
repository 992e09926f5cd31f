"""
notifications.py — In-app notification routes.

Routes:
  GET    /api/notifications            — newest first; ?limit=20&unreadOnly=true
  PUT    /api/notifications/read-all   — mark every unread notification read
  PUT    /api/notifications/{id}/read  — mark one read
  DELETE /api/notifications/{id}       — delete one
"""

from fastapi import APIRouter, Depends, Query

from rapid_response.core.database import get_db, require_db
from rapid_response.models.base import MessageResponse
from rapid_response.models.notification import NotificationListResponse, NotificationResponse
from rapid_response.routes.auth import CurrentUser
from rapid_response.services import notifications as notification_service
from rapid_response.utils.ids import parse_object_id

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: CurrentUser,
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    db=Depends(get_db),
):
    return await notification_service.list_notifications(
        require_db(db), current_user.id, limit=limit, unread_only=unread_only
    )


# Declared before /{notification_id}/read so "read-all" is never parsed as an id.
@router.put("/read-all", response_model=MessageResponse)
async def mark_all_read(current_user: CurrentUser, db=Depends(get_db)):
    await notification_service.mark_all_read(require_db(db), current_user.id)
    return MessageResponse(message="All notifications marked as read")


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str, current_user: CurrentUser, db=Depends(get_db)):
    oid = parse_object_id(notification_id, "notification")
    notification = await notification_service.mark_read(require_db(db), oid, current_user.id)
    return NotificationResponse(notification=notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(notification_id: str, current_user: CurrentUser, db=Depends(get_db)):
    oid = parse_object_id(notification_id, "notification")
    await notification_service.delete_notification(require_db(db), oid, current_user.id)
    return MessageResponse(message="Notification deleted")
