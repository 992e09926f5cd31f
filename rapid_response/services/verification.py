"""
verification.py — Community verification of incidents.

Any signed-in user can vouch for an incident. A vote is a toggle: the
first call adds the user's vote, the second removes it. Once enough
distinct users have voted (settings.auto_verify_threshold, 3 by default)
an unverified incident is promoted to "verified" by the system.

USAGE
─────
    from rapid_response.services.verification import toggle_verification

    result = await toggle_verification(db, oid, user_id="...", actor="a@b.com")
    # result.action → "added" | "removed"
    # result.status → IncidentStatus.VERIFIED once the threshold is reached

STATE RULES (apply_toggle)
──────────────────────────
  verification_count is always len(verified_by).

  Promotion: count ≥ threshold and status == unverified
      → status = verified, status_set_by = system,
        verified_at = now (only the first time), System timeline entry.

  Reversion: count < threshold and status == verified and verified_at
      unset and the status was not set by an admin → status = unverified.
      Auto-promotion always stamps verified_at, so an auto-verified
      incident is never reverted by voters withdrawing. Only a "verified"
      status of unknown origin (legacy documents) can fall back.

CONCURRENCY
───────────
Every incident document carries an integer `version`. The write is
conditional on the version read, so two voters racing on the same
incident can't lose each other's vote: the loser re-reads and re-applies
its toggle on top of the winner's state. Admin writes bump the version
too, so a vote never overwrites a concurrent status override.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId

from rapid_response.core.config import settings
from rapid_response.core.errors import ConflictError, NotFoundError
from rapid_response.models.incident import (
    IncidentStatus,
    StatusSetBy,
    VerificationStatus,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"

EVENT_ADDED = "Incident verified by community member"
EVENT_REMOVED = "Verification removed by user"
EVENT_AUTO_VERIFIED = "Incident auto-verified ({threshold}+ community verifications)"
EVENT_REVERTED = "Incident returned to unverified (below {threshold} community verifications)"


@dataclass
class ToggleOutcome:
    """Result of applying one toggle to an incident document, before it is written."""
    action: str
    verified_by: list[str]
    status: IncidentStatus
    verified_at: Optional[datetime]
    status_set_by: Optional[str]
    timeline: list[dict] = field(default_factory=list)

    @property
    def verification_count(self) -> int:
        return len(self.verified_by)

    def set_fields(self) -> dict:
        return {
            "verified_by": self.verified_by,
            "verification_count": self.verification_count,
            "status": self.status.value,
            "verified_at": self.verified_at,
            "status_set_by": self.status_set_by,
        }


def apply_toggle(
    doc: dict,
    user_id: str,
    actor: Optional[str],
    threshold: int,
    now: Optional[datetime] = None,
) -> ToggleOutcome:
    """
    Compute the incident state after *user_id* toggles their vote.

    Pure function: *doc* is not mutated, nothing is persisted.
    """
    now = now or datetime.now(tz=timezone.utc)

    # Dedupe in case an older document holds a repeated id.
    voters: list[str] = list(dict.fromkeys(str(v) for v in doc.get("verified_by") or []))
    status = IncidentStatus(doc.get("status", IncidentStatus.UNVERIFIED.value))
    verified_at = doc.get("verified_at")
    status_set_by = doc.get("status_set_by")
    timeline: list[dict] = []

    if user_id in voters:
        voters.remove(user_id)
        action = "removed"
        timeline.append({"time": now, "event": EVENT_REMOVED, "user": actor})
    else:
        voters.append(user_id)
        action = "added"
        timeline.append({"time": now, "event": EVENT_ADDED, "user": actor})

    count = len(voters)

    if count >= threshold and status == IncidentStatus.UNVERIFIED:
        status = IncidentStatus.VERIFIED
        status_set_by = StatusSetBy.SYSTEM.value
        if verified_at is None:
            verified_at = now
        timeline.append({
            "time": now,
            "event": EVENT_AUTO_VERIFIED.format(threshold=threshold),
            "user": SYSTEM_ACTOR,
        })
    elif (
        count < threshold
        and status == IncidentStatus.VERIFIED
        and verified_at is None
        and status_set_by != StatusSetBy.ADMIN.value
    ):
        status = IncidentStatus.UNVERIFIED
        status_set_by = StatusSetBy.SYSTEM.value
        timeline.append({
            "time": now,
            "event": EVENT_REVERTED.format(threshold=threshold),
            "user": SYSTEM_ACTOR,
        })

    return ToggleOutcome(
        action=action,
        verified_by=voters,
        status=status,
        verified_at=verified_at,
        status_set_by=status_set_by,
        timeline=timeline,
    )


def version_filter(doc: dict) -> dict:
    """Match clause pinning the version of *doc* (documents created before versioning have none)."""
    if "version" in doc:
        return {"version": doc["version"]}
    return {"version": {"$exists": False}}


async def toggle_verification(
    db,
    incident_id: ObjectId,
    user_id: str,
    actor: Optional[str],
    threshold: Optional[int] = None,
    max_retries: Optional[int] = None,
) -> VerifyResponse:
    """
    Add or remove *user_id*'s verification on an incident and persist the
    result with a version-checked write.

    Raises:
        NotFoundError: the incident does not exist.
        ConflictError: every attempt lost the version check.
    """
    threshold = threshold or settings.auto_verify_threshold
    attempts = max_retries or settings.verification_max_retries
    collection = db["incidents"]

    for attempt in range(1, attempts + 1):
        doc = await collection.find_one({"_id": incident_id})
        if not doc:
            raise NotFoundError("Incident not found")

        now = datetime.now(tz=timezone.utc)
        outcome = apply_toggle(doc, user_id, actor, threshold, now)

        result = await collection.update_one(
            {"_id": incident_id, **version_filter(doc)},
            {
                "$set": {**outcome.set_fields(), "updated_at": now, "version": doc.get("version", 0) + 1},
                "$push": {"timeline": {"$each": outcome.timeline}},
            },
        )
        if result.modified_count:
            if outcome.status != IncidentStatus(doc.get("status", IncidentStatus.UNVERIFIED.value)):
                logger.info(
                    "Incident %s status %s → %s after %d verifications",
                    incident_id,
                    doc.get("status"),
                    outcome.status.value,
                    outcome.verification_count,
                )
            return VerifyResponse(
                message="Verification added" if outcome.action == "added" else "Verification removed",
                action=outcome.action,
                verification_count=outcome.verification_count,
                has_verified=outcome.action == "added",
                status=outcome.status,
            )

        logger.debug("Verification on incident %s lost a write race (attempt %d/%d)", incident_id, attempt, attempts)

    logger.warning("Giving up on verification for incident %s after %d attempts", incident_id, attempts)
    raise ConflictError("Incident is being updated by others, please retry")


async def get_verification_status(db, incident_id: ObjectId, user_id: str) -> VerificationStatus:
    """Whether *user_id* currently verifies the incident, and the vote count."""
    doc = await db["incidents"].find_one({"_id": incident_id})
    if not doc:
        raise NotFoundError("Incident not found")

    voters = [str(v) for v in doc.get("verified_by") or []]
    return VerificationStatus(
        has_verified=user_id in voters,
        verification_count=doc.get("verification_count", len(voters)),
    )
