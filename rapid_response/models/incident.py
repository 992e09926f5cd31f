"""
incident.py — Pydantic schemas for incidents and community verification.

IncidentCreate        — what a citizen sends to report an incident
IncidentUpdate        — reporter/admin edit of descriptive fields
StatusUpdate          — admin status override
IncidentOut           — stored incident as returned by the API
VerifyResponse        — result of toggling a community verification
VerificationStatus    — whether the caller has verified + current count
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import Field

from rapid_response.models.base import ApiModel, Location


class IncidentType(str, Enum):
    MEDICAL = "medical"
    ACCIDENT = "accident"
    FIRE = "fire"
    INFRASTRUCTURE = "infrastructure"
    PUBLIC_SAFETY = "public-safety"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IncidentStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class StatusSetBy(str, Enum):
    """Who put the incident into its current status."""
    SYSTEM = "system"
    ADMIN = "admin"


ACTIVE_STATUSES = (
    IncidentStatus.UNVERIFIED,
    IncidentStatus.VERIFIED,
    IncidentStatus.IN_PROGRESS,
)


# ── Requests ──────────────────────────────────────────────────────────────────

class IncidentCreate(ApiModel):
    """Payload for POST /api/incidents."""
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=2000)
    type: IncidentType
    severity: Severity
    location: Location
    media: list[str] = Field(default_factory=list)


class IncidentUpdate(ApiModel):
    """Partial edit. Status is deliberately absent: it has its own route."""
    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    type: Optional[IncidentType] = None
    severity: Optional[Severity] = None
    location: Optional[Location] = None
    media: Optional[list[str]] = None


class StatusUpdate(ApiModel):
    status: IncidentStatus


class AssignRequest(ApiModel):
    assigned_to: str = Field(min_length=1, max_length=100)


class NoteRequest(ApiModel):
    note: str = Field(min_length=1, max_length=1000)


# ── Stored incident ───────────────────────────────────────────────────────────

class TimelineEntry(ApiModel):
    time: datetime
    event: str
    user: Optional[str] = None


class IncidentOut(ApiModel):
    id: str
    title: str
    description: str
    type: IncidentType
    severity: Severity
    status: IncidentStatus = IncidentStatus.UNVERIFIED
    location: Location
    reported_by: str
    reported_by_name: Optional[str] = None
    verification_count: int = Field(default=0, ge=0)
    verified_by: list[str] = Field(default_factory=list)
    verified_at: Optional[datetime] = None
    status_set_by: Optional[StatusSetBy] = None
    media: list[str] = Field(default_factory=list)
    timeline: list[TimelineEntry] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    notes: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class IncidentResponse(ApiModel):
    message: Optional[str] = None
    incident: IncidentOut


class IncidentListResponse(ApiModel):
    incidents: list[IncidentOut]
    total: int
    page: int
    limit: int
    pages: int


class IncidentStats(ApiModel):
    total_incidents: int
    active_incidents: int
    resolved_today: int
    critical_count: int
    pending_verification: int


class IncidentStatsResponse(ApiModel):
    stats: IncidentStats


# ── Verification ──────────────────────────────────────────────────────────────

VerifyAction = Literal["added", "removed"]


class VerifyResponse(ApiModel):
    message: str
    action: VerifyAction
    verification_count: int
    has_verified: bool
    status: IncidentStatus


class VerificationStatus(ApiModel):
    has_verified: bool
    verification_count: int
