"""
contacts.py — A user's emergency contacts.

At most one contact per user is primary: setting is_primary on one
contact clears it on all the others first.
"""

import logging
from datetime import datetime, timezone

from bson import ObjectId
from pymongo import DESCENDING

from rapid_response.core.errors import NotFoundError
from rapid_response.models.contact import (
    EmergencyContactCreate,
    EmergencyContactOut,
    EmergencyContactUpdate,
)

logger = logging.getLogger(__name__)


def contact_from_doc(doc: dict) -> EmergencyContactOut:
    return EmergencyContactOut(
        id=str(doc["_id"]),
        user_id=str(doc["user_id"]),
        name=doc["name"],
        phone=doc["phone"],
        email=doc.get("email"),
        relationship=doc.get("relationship", "other"),
        is_primary=doc.get("is_primary", False),
        notify_on_sos=doc.get("notify_on_sos", True),
        created_at=doc.get("created_at", datetime.now(tz=timezone.utc)),
    )


async def list_contacts(db, user_id: str) -> list[EmergencyContactOut]:
    cursor = db["emergency_contacts"].find({"user_id": user_id}).sort(
        [("is_primary", DESCENDING), ("created_at", DESCENDING)]
    )
    return [contact_from_doc(doc) async for doc in cursor]


async def sos_recipients(db, user_id: str) -> list[dict]:
    """Raw contact documents that opted in to SOS alerts."""
    cursor = db["emergency_contacts"].find({"user_id": user_id, "notify_on_sos": True})
    return [doc async for doc in cursor]


async def create_contact(db, user_id: str, payload: EmergencyContactCreate) -> EmergencyContactOut:
    if payload.is_primary:
        await db["emergency_contacts"].update_many({"user_id": user_id}, {"$set": {"is_primary": False}})

    doc = {
        **payload.model_dump(),
        "user_id": user_id,
        "created_at": datetime.now(tz=timezone.utc),
    }
    result = await db["emergency_contacts"].insert_one(doc)
    doc["_id"] = result.inserted_id
    return contact_from_doc(doc)


async def update_contact(db, contact_id: ObjectId, user_id: str, payload: EmergencyContactUpdate) -> EmergencyContactOut:
    query = {"_id": contact_id, "user_id": user_id}
    doc = await db["emergency_contacts"].find_one(query)
    if not doc:
        raise NotFoundError("Contact not found")

    changes = payload.model_dump(exclude_unset=True)
    # Only email may be cleared explicitly; other None values mean "unchanged".
    changes = {k: v for k, v in changes.items() if v is not None or k == "email"}

    if changes.get("is_primary") and not doc.get("is_primary"):
        await db["emergency_contacts"].update_many(
            {"user_id": user_id, "_id": {"$ne": contact_id}},
            {"$set": {"is_primary": False}},
        )

    if changes:
        await db["emergency_contacts"].update_one(query, {"$set": changes})
    return contact_from_doc(await db["emergency_contacts"].find_one(query))


async def delete_contact(db, contact_id: ObjectId, user_id: str) -> None:
    result = await db["emergency_contacts"].delete_one({"_id": contact_id, "user_id": user_id})
    if not result.deleted_count:
        raise NotFoundError("Contact not found")
