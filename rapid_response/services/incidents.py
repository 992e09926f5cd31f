"""
incidents.py — Incident reporting and admin triage.

Community votes live in verification.py; this module covers everything
else that touches the `incidents` collection. Every write bumps the
document's `version` so it reconciles with concurrent verification toggles.
"""

import logging
from datetime import datetime, timezone
from math import ceil
from typing import Optional

from bson import ObjectId

from rapid_response.core.errors import ForbiddenError, NotFoundError
from rapid_response.models.incident import (
    ACTIVE_STATUSES,
    IncidentCreate,
    IncidentListResponse,
    IncidentOut,
    IncidentStats,
    IncidentStatus,
    IncidentUpdate,
    Severity,
    StatusSetBy,
)
from rapid_response.models.user import UserOut

logger = logging.getLogger(__name__)


def incident_from_doc(doc: dict) -> IncidentOut:
    """Convert a raw MongoDB document to an IncidentOut model."""
    now = datetime.now(tz=timezone.utc)
    return IncidentOut(
        id=str(doc["_id"]),
        title=doc["title"],
        description=doc["description"],
        type=doc["type"],
        severity=doc["severity"],
        status=doc.get("status", IncidentStatus.UNVERIFIED.value),
        location=doc["location"],
        reported_by=str(doc.get("reported_by") or ""),
        reported_by_name=doc.get("reported_by_name"),
        verification_count=doc.get("verification_count", 0),
        verified_by=[str(v) for v in doc.get("verified_by") or []],
        verified_at=doc.get("verified_at"),
        status_set_by=doc.get("status_set_by"),
        media=doc.get("media") or [],
        timeline=doc.get("timeline") or [],
        assigned_to=doc.get("assigned_to"),
        notes=doc.get("notes") or [],
        created_at=doc.get("created_at", now),
        updated_at=doc.get("updated_at", now),
    )


def _entry(event: str, user: Optional[str], now: datetime) -> dict:
    return {"time": now, "event": event, "user": user}


async def _load(db, incident_id: ObjectId) -> dict:
    doc = await db["incidents"].find_one({"_id": incident_id})
    if not doc:
        raise NotFoundError("Incident not found")
    return doc


async def _write(db, incident_id: ObjectId, set_fields: dict, event: str, actor: Optional[str]) -> IncidentOut:
    now = datetime.now(tz=timezone.utc)
    await db["incidents"].update_one(
        {"_id": incident_id},
        {
            "$set": {**set_fields, "updated_at": now},
            "$push": {"timeline": _entry(event, actor, now)},
            "$inc": {"version": 1},
        },
    )
    return incident_from_doc(await _load(db, incident_id))


# ── Citizen operations ────────────────────────────────────────────────────────

async def create_incident(db, payload: IncidentCreate, reporter: UserOut) -> IncidentOut:
    now = datetime.now(tz=timezone.utc)
    doc = {
        **payload.model_dump(mode="json"),
        "status": IncidentStatus.UNVERIFIED.value,
        "reported_by": reporter.id,
        "reported_by_name": reporter.name or reporter.email,
        "verification_count": 0,
        "verified_by": [],
        "verified_at": None,
        "status_set_by": None,
        "assigned_to": None,
        "notes": [],
        "timeline": [_entry("Incident reported", reporter.email, now)],
        "version": 0,
        "created_at": now,
        "updated_at": now,
    }
    result = await db["incidents"].insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Incident %s reported by %s (%s/%s)", result.inserted_id, reporter.id, doc["type"], doc["severity"])
    return incident_from_doc(doc)


async def list_incidents(
    db,
    page: int = 1,
    limit: int = 50,
    status: Optional[IncidentStatus] = None,
    incident_type: Optional[str] = None,
    severity: Optional[Severity] = None,
) -> IncidentListResponse:
    query: dict = {}
    if status:
        query["status"] = status.value
    if incident_type:
        query["type"] = incident_type
    if severity:
        query["severity"] = severity.value

    skip = (page - 1) * limit
    total = await db["incidents"].count_documents(query)
    cursor = db["incidents"].find(query).sort("created_at", -1).skip(skip).limit(limit)

    items = []
    async for doc in cursor:
        try:
            items.append(incident_from_doc(doc))
        except Exception as exc:
            logger.warning("Skipping malformed incident doc %s: %s", doc.get("_id"), exc)

    pages = ceil(total / limit) if total else 0
    return IncidentListResponse(incidents=items, total=total, page=page, limit=limit, pages=pages)


async def get_incident(db, incident_id: ObjectId) -> IncidentOut:
    return incident_from_doc(await _load(db, incident_id))


async def update_incident(db, incident_id: ObjectId, payload: IncidentUpdate, user: UserOut) -> IncidentOut:
    """Edit descriptive fields. Allowed for the reporter and for admins."""
    doc = await _load(db, incident_id)
    if user.role != "admin" and str(doc.get("reported_by")) != user.id:
        raise ForbiddenError("Only the reporter or an admin can edit this incident")

    changes = payload.model_dump(mode="json", exclude_none=True)
    return await _write(db, incident_id, changes, "Incident updated", user.email)


# ── Admin operations ──────────────────────────────────────────────────────────

async def set_status(db, incident_id: ObjectId, status: IncidentStatus, admin: UserOut) -> tuple[IncidentOut, dict]:
    """
    Admin override of the lifecycle status. Marks the status as admin-set
    so community vote churn never reverts it.

    Returns the updated incident and the document as it was before.
    """
    before = await _load(db, incident_id)
    updated = await _write(
        db,
        incident_id,
        {"status": status.value, "status_set_by": StatusSetBy.ADMIN.value},
        f"Status changed to {status.value}",
        admin.email,
    )
    logger.info("Admin %s set incident %s status %s → %s", admin.id, incident_id, before.get("status"), status.value)
    return updated, before


async def assign_incident(db, incident_id: ObjectId, assigned_to: str, admin: UserOut) -> IncidentOut:
    """Assign a responder. A verified incident moves to in-progress."""
    doc = await _load(db, incident_id)
    changes: dict = {"assigned_to": assigned_to}
    if doc.get("status") == IncidentStatus.VERIFIED.value:
        changes["status"] = IncidentStatus.IN_PROGRESS.value
        changes["status_set_by"] = StatusSetBy.ADMIN.value
    return await _write(db, incident_id, changes, f"Assigned to {assigned_to}", admin.email)


async def add_note(db, incident_id: ObjectId, note: str, admin: UserOut) -> IncidentOut:
    await _load(db, incident_id)
    now = datetime.now(tz=timezone.utc)
    await db["incidents"].update_one(
        {"_id": incident_id},
        {
            "$set": {"updated_at": now},
            "$push": {"notes": note, "timeline": _entry("Note added", admin.email, now)},
            "$inc": {"version": 1},
        },
    )
    return incident_from_doc(await _load(db, incident_id))


async def delete_incident(db, incident_id: ObjectId, admin: UserOut) -> None:
    result = await db["incidents"].delete_one({"_id": incident_id})
    if not result.deleted_count:
        raise NotFoundError("Incident not found")
    logger.info("Admin %s deleted incident %s", admin.id, incident_id)


async def incident_stats(db) -> IncidentStats:
    """Dashboard counters. "Today" is the current UTC day."""
    start_of_day = datetime.now(tz=timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    active = [s.value for s in ACTIVE_STATUSES]
    incidents = db["incidents"]
    return IncidentStats(
        total_incidents=await incidents.count_documents({}),
        active_incidents=await incidents.count_documents({"status": {"$in": active}}),
        resolved_today=await incidents.count_documents({
            "status": IncidentStatus.RESOLVED.value,
            "updated_at": {"$gte": start_of_day},
        }),
        critical_count=await incidents.count_documents({
            "severity": Severity.CRITICAL.value,
            "status": {"$ne": IncidentStatus.RESOLVED.value},
        }),
        pending_verification=await incidents.count_documents({"status": IncidentStatus.UNVERIFIED.value}),
    )
