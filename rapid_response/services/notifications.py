"""
notifications.py — In-app notifications (the bell icon in the client).

Created as side effects of SOS triggers/resolutions and admin incident
updates. Apart from deletion, read/unread is the only state that changes.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId

from rapid_response.core.errors import NotFoundError
from rapid_response.models.notification import (
    NotificationListResponse,
    NotificationOut,
    NotificationType,
    Priority,
)

logger = logging.getLogger(__name__)


def notification_from_doc(doc: dict) -> NotificationOut:
    related_incident = doc.get("related_incident")
    related_sos = doc.get("related_sos")
    return NotificationOut(
        id=str(doc["_id"]),
        user_id=str(doc["user_id"]),
        title=doc["title"],
        message=doc["message"],
        type=doc.get("type", NotificationType.SYSTEM.value),
        related_incident=str(related_incident) if related_incident else None,
        related_sos=str(related_sos) if related_sos else None,
        is_read=doc.get("is_read", False),
        read_at=doc.get("read_at"),
        priority=doc.get("priority", Priority.MEDIUM.value),
        created_at=doc.get("created_at", datetime.now(tz=timezone.utc)),
    )


async def create_notification(
    db,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    priority: Priority = Priority.MEDIUM,
    related_incident: Optional[str] = None,
    related_sos: Optional[str] = None,
) -> str:
    """Insert a notification and return its id."""
    doc = {
        "user_id": user_id,
        "title": title,
        "message": message,
        "type": type.value,
        "priority": priority.value,
        "related_incident": related_incident,
        "related_sos": related_sos,
        "is_read": False,
        "read_at": None,
        "created_at": datetime.now(tz=timezone.utc),
    }
    result = await db["notifications"].insert_one(doc)
    return str(result.inserted_id)


async def list_notifications(db, user_id: str, limit: int = 20, unread_only: bool = False) -> NotificationListResponse:
    query: dict = {"user_id": user_id}
    if unread_only:
        query["is_read"] = False

    cursor = db["notifications"].find(query).sort("created_at", -1).limit(limit)
    items = [notification_from_doc(doc) async for doc in cursor]
    unread = await db["notifications"].count_documents({"user_id": user_id, "is_read": False})
    return NotificationListResponse(notifications=items, unread_count=unread)


async def mark_read(db, notification_id: ObjectId, user_id: str) -> NotificationOut:
    query = {"_id": notification_id, "user_id": user_id}
    result = await db["notifications"].update_one(
        query,
        {"$set": {"is_read": True, "read_at": datetime.now(tz=timezone.utc)}},
    )
    if not result.matched_count:
        raise NotFoundError("Notification not found")
    return notification_from_doc(await db["notifications"].find_one(query))


async def mark_all_read(db, user_id: str) -> int:
    result = await db["notifications"].update_many(
        {"user_id": user_id, "is_read": False},
        {"$set": {"is_read": True, "read_at": datetime.now(tz=timezone.utc)}},
    )
    return result.modified_count


async def delete_notification(db, notification_id: ObjectId, user_id: str) -> None:
    result = await db["notifications"].delete_one({"_id": notification_id, "user_id": user_id})
    if not result.deleted_count:
        raise NotFoundError("Notification not found")
