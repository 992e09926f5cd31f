"""
contact.py — Pydantic schemas for a user's emergency contacts.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from rapid_response.models.base import ApiModel

_PHONE_PATTERN = r"^[\+]?[(]?[0-9]{1,4}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,9}$"

Relationship = Literal["family", "friend", "neighbor", "colleague", "other"]


def _lower(v: Optional[str]) -> Optional[str]:
    return v.lower() if v else v


class EmergencyContactCreate(ApiModel):
    """Payload for POST /api/emergency-contacts."""
    name: str = Field(min_length=2, max_length=100)
    phone: str = Field(pattern=_PHONE_PATTERN)
    email: Optional[EmailStr] = None
    relationship: Relationship
    is_primary: bool = False
    notify_on_sos: bool = Field(default=True, alias="notifyOnSOS")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return _lower(v)


class EmergencyContactUpdate(ApiModel):
    """Partial update — None means "leave unchanged"."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=_PHONE_PATTERN)
    email: Optional[EmailStr] = None
    relationship: Optional[Relationship] = None
    is_primary: Optional[bool] = None
    notify_on_sos: Optional[bool] = Field(default=None, alias="notifyOnSOS")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return _lower(v)


class EmergencyContactOut(ApiModel):
    id: str
    user_id: str
    name: str
    phone: str
    email: Optional[str] = None
    relationship: Relationship
    is_primary: bool = False
    notify_on_sos: bool = Field(default=True, alias="notifyOnSOS")
    created_at: datetime


class EmergencyContactResponse(ApiModel):
    message: str
    contact: EmergencyContactOut


class EmergencyContactListResponse(ApiModel):
    contacts: list[EmergencyContactOut]
