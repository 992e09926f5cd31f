"""
sos.py — SOS alert workflow.

HOW A TRIGGER FLOWS
───────────────────
1. Look up the caller's emergency contacts that opted in (notify_on_sos).
2. Insert the alert (status=active) with a snapshot of who was notified.
3. Fan out SMS / email to those contacts through the NotificationDispatcher.
   Failures only lower the sent counters; they never abort the alert.
4. Drop a critical in-app notification into every admin's inbox.

The sequence is best-effort, not a transaction: once step 2 succeeds the
alert exists even if a later step fails.

LIFECYCLE
─────────
  active ──cancel (owner)──▶ cancelled
  active ──resolve (admin)─▶ resolved
Both end states are terminal.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from rapid_response.core.errors import NotFoundError
from rapid_response.models.notification import NotificationType, Priority
from rapid_response.models.sos import (
    AlertOwner,
    NotificationCounts,
    SOSAlertOut,
    SOSStatus,
    TriggerSOSRequest,
    TriggerSOSResponse,
)
from rapid_response.models.user import UserOut
from rapid_response.services.contacts import sos_recipients
from rapid_response.services.notifications import create_notification
from rapid_response.services.notifier import NotificationDispatcher

logger = logging.getLogger(__name__)

MY_ALERTS_LIMIT = 10


def alert_from_doc(doc: dict, owner: Optional[dict] = None) -> SOSAlertOut:
    resolved_by = doc.get("resolved_by")
    return SOSAlertOut(
        id=str(doc["_id"]),
        user_id=str(doc["user_id"]),
        user=_owner_summary(owner) if owner else None,
        location=doc["location"],
        status=doc.get("status", SOSStatus.ACTIVE.value),
        alert_type=doc.get("alert_type", "emergency"),
        message=doc.get("message"),
        notified_contacts=[
            {**c, "contact_id": str(c["contact_id"])} for c in doc.get("notified_contacts") or []
        ],
        resolved_at=doc.get("resolved_at"),
        resolved_by=str(resolved_by) if resolved_by else None,
        created_at=doc.get("created_at", datetime.now(tz=timezone.utc)),
    )


def _owner_summary(user_doc: dict) -> AlertOwner:
    return AlertOwner(
        id=str(user_doc["_id"]),
        name=user_doc.get("name"),
        email=user_doc.get("email"),
        phone=user_doc.get("phone"),
    )


async def trigger_sos(
    db,
    dispatcher: NotificationDispatcher,
    user: UserOut,
    payload: TriggerSOSRequest,
) -> TriggerSOSResponse:
    contacts = await sos_recipients(db, user.id)
    logger.info("SOS from user %s: %d emergency contact(s) opted in", user.id, len(contacts))
    if not contacts:
        logger.warning("User %s has no emergency contacts — alert will reach admins only", user.id)

    now = datetime.now(tz=timezone.utc)
    location = payload.location.model_dump()
    doc = {
        "user_id": user.id,
        "location": location,
        "status": SOSStatus.ACTIVE.value,
        "alert_type": payload.alert_type.value,
        "message": payload.message,
        "notified_contacts": [
            {"contact_id": str(c["_id"]), "notified_at": now, "acknowledged": False}
            for c in contacts
        ],
        "resolved_at": None,
        "resolved_by": None,
        "created_at": now,
    }
    result = await db["sos_alerts"].insert_one(doc)
    doc["_id"] = result.inserted_id

    display_name = user.name or user.email or "User"
    sent = await dispatcher.send_sos_alerts(
        display_name,
        user.phone,
        location,
        [{"name": c.get("name"), "phone": c.get("phone"), "email": c.get("email")} for c in contacts],
        payload.alert_type.value,
    )
    logger.info(
        "SOS %s: %d/%d SMS and %d email(s) delivered",
        result.inserted_id,
        sent.sms_sent,
        len(contacts),
        sent.emails_sent,
    )

    admins_notified = 0
    where = location.get("address") or "Unknown location"
    async for admin in db["users"].find({"role": "admin"}):
        await create_notification(
            db,
            user_id=str(admin["_id"]),
            title="SOS Alert Triggered",
            message=f"User {display_name} has triggered an SOS alert at {where}",
            type=NotificationType.SOS,
            priority=Priority.CRITICAL,
            related_sos=str(result.inserted_id),
        )
        admins_notified += 1

    return TriggerSOSResponse(
        message="SOS Alert triggered successfully",
        sos_alert=alert_from_doc(doc),
        contacts_notified=len(contacts),
        notifications=NotificationCounts(
            emails_sent=sent.emails_sent,
            sms_sent=sent.sms_sent,
            admins_notified=admins_notified,
        ),
    )


async def list_user_alerts(db, user_id: str) -> list[SOSAlertOut]:
    cursor = db["sos_alerts"].find({"user_id": user_id}).sort("created_at", -1).limit(MY_ALERTS_LIMIT)
    return [alert_from_doc(doc) async for doc in cursor]


async def list_active_alerts(db) -> list[SOSAlertOut]:
    """Active alerts, newest first, each with its owner's contact details."""
    alerts = []
    cursor = db["sos_alerts"].find({"status": SOSStatus.ACTIVE.value}).sort("created_at", -1)
    async for doc in cursor:
        owner = await _find_user(db, doc["user_id"])
        alerts.append(alert_from_doc(doc, owner))
    return alerts


async def cancel_sos(db, alert_id: ObjectId, owner_id: str) -> SOSAlertOut:
    """Owner cancels their own alert. Only an active alert can be cancelled."""
    query = {"_id": alert_id, "user_id": owner_id, "status": SOSStatus.ACTIVE.value}
    now = datetime.now(tz=timezone.utc)
    result = await db["sos_alerts"].update_one(
        query,
        {"$set": {"status": SOSStatus.CANCELLED.value, "resolved_at": now, "resolved_by": owner_id}},
    )
    if not result.modified_count:
        raise NotFoundError("Active SOS alert not found")

    logger.info("SOS %s cancelled by owner %s", alert_id, owner_id)
    return alert_from_doc(await db["sos_alerts"].find_one({"_id": alert_id}))


async def resolve_sos(db, alert_id: ObjectId, admin_id: str) -> tuple[SOSAlertOut, bool]:
    """
    Admin closes an alert and the owner is told.

    Resolving an alert that is already resolved or cancelled changes
    nothing. Returns the alert and whether this call resolved it.
    """
    doc = await db["sos_alerts"].find_one({"_id": alert_id})
    if not doc:
        raise NotFoundError("SOS alert not found")

    now = datetime.now(tz=timezone.utc)
    result = await db["sos_alerts"].update_one(
        {"_id": alert_id, "status": SOSStatus.ACTIVE.value},
        {"$set": {"status": SOSStatus.RESOLVED.value, "resolved_at": now, "resolved_by": admin_id}},
    )
    if not result.modified_count:
        logger.info("SOS %s already %s — resolve is a no-op", alert_id, doc.get("status"))
        return alert_from_doc(doc), False

    await create_notification(
        db,
        user_id=str(doc["user_id"]),
        title="SOS Alert Resolved",
        message="Your SOS alert has been resolved by emergency services.",
        type=NotificationType.SOS,
        priority=Priority.HIGH,
        related_sos=str(alert_id),
    )
    logger.info("SOS %s resolved by admin %s", alert_id, admin_id)
    return alert_from_doc(await db["sos_alerts"].find_one({"_id": alert_id})), True


async def _find_user(db, user_id: str) -> Optional[dict]:
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        return None
    return await db["users"].find_one({"_id": oid})
