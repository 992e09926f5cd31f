"""
incidents.py — Incident reporting, community verification and admin triage.

Routes:
  GET    /api/incidents                       — list (filter by status/type/severity)
  GET    /api/incidents/stats/summary         — dashboard counters
  GET    /api/incidents/{id}                  — single incident
  POST   /api/incidents                       — report an incident (auth)
  PUT    /api/incidents/{id}                  — edit (reporter or admin)
  DELETE /api/incidents/{id}                  — hard delete (admin)
  POST   /api/incidents/{id}/verify           — toggle the caller's verification (auth)
  GET    /api/incidents/{id}/verify/status    — has the caller verified? (auth)
  PUT    /api/incidents/{id}/status           — status override (admin)
  PUT    /api/incidents/{id}/assign           — assign a responder (admin)
  POST   /api/incidents/{id}/notes            — add an internal note (admin)

Reads are public so the map and feed work for anonymous visitors.
"""

from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from rapid_response.core.database import get_db, require_db
from rapid_response.models.base import MessageResponse
from rapid_response.models.incident import (
    AssignRequest,
    IncidentCreate,
    IncidentListResponse,
    IncidentResponse,
    IncidentStatsResponse,
    IncidentStatus,
    IncidentType,
    IncidentUpdate,
    NoteRequest,
    Severity,
    StatusUpdate,
    VerificationStatus,
    VerifyResponse,
)
from rapid_response.models.notification import NotificationType
from rapid_response.routes.auth import AdminUser, CurrentUser
from rapid_response.services import incidents as incident_service
from rapid_response.services.notifications import create_notification
from rapid_response.services.notifier import NotificationDispatcher, get_dispatcher
from rapid_response.services.verification import get_verification_status, toggle_verification
from rapid_response.utils.ids import parse_object_id

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


# ── Public reads ──────────────────────────────────────────────────────────────

@router.get("", response_model=IncidentListResponse)
async def list_incidents(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    status_filter: Optional[IncidentStatus] = Query(default=None, alias="status"),
    type_filter: Optional[IncidentType] = Query(default=None, alias="type"),
    severity: Optional[Severity] = Query(default=None),
    db=Depends(get_db),
):
    """Newest first, paginated."""
    if db is None:
        return IncidentListResponse(incidents=[], total=0, page=page, limit=limit, pages=0)

    return await incident_service.list_incidents(
        db,
        page=page,
        limit=limit,
        status=status_filter,
        incident_type=type_filter.value if type_filter else None,
        severity=severity,
    )


@router.get("/stats/summary", response_model=IncidentStatsResponse)
async def stats_summary(db=Depends(get_db)):
    stats = await incident_service.incident_stats(require_db(db))
    return IncidentStatsResponse(stats=stats)


@router.get("/{incident_id}", response_model=IncidentResponse)
async def get_incident(incident_id: str, db=Depends(get_db)):
    oid = parse_object_id(incident_id, "incident")
    incident = await incident_service.get_incident(require_db(db), oid)
    return IncidentResponse(incident=incident)


# ── Reporting ─────────────────────────────────────────────────────────────────

@router.post("", response_model=IncidentResponse, status_code=status.HTTP_201_CREATED)
async def create_incident(payload: IncidentCreate, current_user: CurrentUser, db=Depends(get_db)):
    incident = await incident_service.create_incident(require_db(db), payload, current_user)
    return IncidentResponse(message="Incident reported successfully", incident=incident)


@router.put("/{incident_id}", response_model=IncidentResponse)
async def update_incident(
    incident_id: str,
    payload: IncidentUpdate,
    current_user: CurrentUser,
    db=Depends(get_db),
):
    oid = parse_object_id(incident_id, "incident")
    incident = await incident_service.update_incident(require_db(db), oid, payload, current_user)
    return IncidentResponse(message="Incident updated successfully", incident=incident)


@router.delete("/{incident_id}", response_model=MessageResponse)
async def delete_incident(incident_id: str, admin: AdminUser, db=Depends(get_db)):
    oid = parse_object_id(incident_id, "incident")
    await incident_service.delete_incident(require_db(db), oid, admin)
    return MessageResponse(message="Incident deleted successfully")


# ── Community verification ────────────────────────────────────────────────────

@router.post("/{incident_id}/verify", response_model=VerifyResponse)
async def verify_incident(incident_id: str, current_user: CurrentUser, db=Depends(get_db)):
    """Toggle: the first call adds the caller's verification, the next removes it."""
    oid = parse_object_id(incident_id, "incident")
    return await toggle_verification(require_db(db), oid, current_user.id, current_user.email)


@router.get("/{incident_id}/verify/status", response_model=VerificationStatus)
async def verification_status(incident_id: str, current_user: CurrentUser, db=Depends(get_db)):
    oid = parse_object_id(incident_id, "incident")
    return await get_verification_status(require_db(db), oid, current_user.id)


# ── Admin triage ──────────────────────────────────────────────────────────────

@router.put("/{incident_id}/status", response_model=IncidentResponse)
async def update_status(
    incident_id: str,
    payload: StatusUpdate,
    admin: AdminUser,
    background: BackgroundTasks,
    db=Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Admin override. The reporter gets an in-app notification and an email."""
    db = require_db(db)
    oid = parse_object_id(incident_id, "incident")
    incident, before = await incident_service.set_status(db, oid, payload.status, admin)

    if before.get("status") != payload.status.value and incident.reported_by:
        message = f"Your report \"{incident.title}\" is now {payload.status.value}."
        await create_notification(
            db,
            user_id=incident.reported_by,
            title="Incident status updated",
            message=message,
            type=NotificationType.UPDATE,
            related_incident=incident.id,
        )
        reporter = await _find_reporter(db, incident.reported_by)
        if reporter and reporter.get("email"):
            background.add_task(
                dispatcher.send_incident_update,
                reporter["email"],
                incident.title,
                payload.status.value,
                message,
            )

    return IncidentResponse(message="Status updated successfully", incident=incident)


@router.put("/{incident_id}/assign", response_model=IncidentResponse)
async def assign_incident(incident_id: str, payload: AssignRequest, admin: AdminUser, db=Depends(get_db)):
    oid = parse_object_id(incident_id, "incident")
    incident = await incident_service.assign_incident(require_db(db), oid, payload.assigned_to, admin)
    return IncidentResponse(message="Incident assigned successfully", incident=incident)


@router.post("/{incident_id}/notes", response_model=IncidentResponse)
async def add_note(incident_id: str, payload: NoteRequest, admin: AdminUser, db=Depends(get_db)):
    oid = parse_object_id(incident_id, "incident")
    incident = await incident_service.add_note(require_db(db), oid, payload.note, admin)
    return IncidentResponse(message="Note added", incident=incident)


async def _find_reporter(db, user_id: str) -> Optional[dict]:
    try:
        return await db["users"].find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None
