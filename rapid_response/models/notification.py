"""
notification.py — In-app notification schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from rapid_response.models.base import ApiModel


class NotificationType(str, Enum):
    INCIDENT = "incident"
    SOS = "sos"
    ALERT = "alert"
    SYSTEM = "system"
    UPDATE = "update"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationOut(ApiModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.SYSTEM
    related_incident: Optional[str] = None
    related_sos: Optional[str] = Field(default=None, alias="relatedSOS")
    is_read: bool = False
    read_at: Optional[datetime] = None
    priority: Priority = Priority.MEDIUM
    created_at: datetime


class NotificationListResponse(ApiModel):
    notifications: list[NotificationOut]
    unread_count: int


class NotificationResponse(ApiModel):
    notification: NotificationOut
