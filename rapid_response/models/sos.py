"""
sos.py — Pydantic schemas for SOS alerts.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from rapid_response.models.base import ApiModel, OptionalAddressLocation


class AlertType(str, Enum):
    EMERGENCY = "emergency"
    SOS = "sos"
    PANIC = "panic"
    MEDICAL = "medical"
    SAFETY = "safety"


class SOSStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class TriggerSOSRequest(ApiModel):
    """Payload for POST /api/sos/trigger."""
    location: OptionalAddressLocation
    alert_type: AlertType = AlertType.EMERGENCY
    message: Optional[str] = Field(default=None, max_length=500)


class NotifiedContact(ApiModel):
    contact_id: str
    notified_at: datetime
    acknowledged: bool = False


class AlertOwner(ApiModel):
    """Owner details embedded in the admin alert list."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class SOSAlertOut(ApiModel):
    id: str
    user_id: str
    user: Optional[AlertOwner] = None
    location: OptionalAddressLocation
    status: SOSStatus = SOSStatus.ACTIVE
    alert_type: AlertType = AlertType.EMERGENCY
    message: Optional[str] = None
    notified_contacts: list[NotifiedContact] = Field(default_factory=list)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime


class NotificationCounts(ApiModel):
    emails_sent: int = 0
    sms_sent: int = 0
    admins_notified: int = 0


class TriggerSOSResponse(ApiModel):
    message: str
    sos_alert: SOSAlertOut
    contacts_notified: int
    notifications: NotificationCounts


class SOSAlertResponse(ApiModel):
    message: str
    alert: SOSAlertOut


class SOSAlertListResponse(ApiModel):
    alerts: list[SOSAlertOut]
