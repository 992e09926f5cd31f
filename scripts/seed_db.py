#!/usr/bin/env python3
"""
seed_db.py — Populate MongoDB with sample data for local development.

Inserts:
  - An admin account (credentials from flags or env, never defaults)
  - Sample incidents around central London in every status
  - Creates required indexes

Usage:
    python scripts/seed_db.py --admin-email admin@example.com --admin-password 's3cret!'
    SEED_ADMIN_EMAIL=... SEED_ADMIN_PASSWORD=... python scripts/seed_db.py

Requires:
    pip install -e .
    MongoDB running locally (or set MONGO_URI env var)

Safe to re-run: deletes seed incidents first, then re-inserts. The admin
account is created once and left alone afterwards.
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

from motor.motor_asyncio import AsyncIOMotorClient

from rapid_response.core.config import settings
from rapid_response.core.database import ensure_indexes
from rapid_response.core.security import hash_password

SEED_TAG = "seed"


def _incident(title, description, type_, severity, status, address, lat, lng, hours_ago, verifications=0):
    created = datetime.now(timezone.utc) - timedelta(hours=hours_ago)
    doc = {
        "title": title,
        "description": description,
        "type": type_,
        "severity": severity,
        "status": status,
        "location": {"address": address, "lat": lat, "lng": lng},
        "reported_by": None,
        "reported_by_name": "Seed Data",
        "verification_count": verifications,
        "verified_by": [f"seed-user-{i}" for i in range(verifications)],
        "verified_at": None,
        "status_set_by": None,
        "assigned_to": None,
        "media": [],
        "notes": [],
        "timeline": [{"time": created, "event": "Incident reported", "user": "seed"}],
        "version": 0,
        "seed": SEED_TAG,
        "created_at": created,
        "updated_at": created,
    }
    if status == "verified" and verifications >= settings.auto_verify_threshold:
        doc["verified_at"] = created + timedelta(minutes=20)
        doc["status_set_by"] = "system"
    elif status in ("in-progress", "resolved"):
        doc["status_set_by"] = "admin"
        doc["assigned_to"] = "London Ambulance Service" if type_ == "medical" else "Met Police"
    return doc


SAMPLE_INCIDENTS = [
    _incident(
        "Cyclist down at junction",
        "Cyclist collided with a van, conscious but not moving their leg.",
        "accident", "high", "unverified",
        "Elephant & Castle roundabout", 51.4946, -0.1005, 1, verifications=1,
    ),
    _incident(
        "Smoke from restaurant kitchen",
        "Thick black smoke coming out of the rear extractor, staff evacuating.",
        "fire", "critical", "verified",
        "Brick Lane, Shoreditch", 51.5215, -0.0716, 2, verifications=4,
    ),
    _incident(
        "Burst water main flooding road",
        "Water gushing from the tarmac, two lanes closed and rising.",
        "infrastructure", "medium", "in-progress",
        "Upper Street, Islington", 51.5387, -0.1025, 5, verifications=3,
    ),
    _incident(
        "Person collapsed on platform",
        "Elderly man collapsed on the northbound platform, staff attending.",
        "medical", "critical", "resolved",
        "King's Cross St Pancras", 51.5308, -0.1238, 9, verifications=2,
    ),
    _incident(
        "Broken streetlights along canal path",
        "Whole stretch of towpath unlit after dark, several near misses.",
        "public-safety", "low", "unverified",
        "Regent's Canal, Camden", 51.5405, -0.1440, 20,
    ),
]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed Rapid Response Hub sample data")
    parser.add_argument("--admin-email", default=os.getenv("SEED_ADMIN_EMAIL"))
    parser.add_argument("--admin-password", default=os.getenv("SEED_ADMIN_PASSWORD"))
    parser.add_argument("--admin-name", default=os.getenv("SEED_ADMIN_NAME", "Admin User"))
    parser.add_argument("--skip-admin", action="store_true", help="Only seed incidents")
    return parser.parse_args()


async def seed(args: argparse.Namespace) -> None:
    print("Connecting to MongoDB...")
    client = AsyncIOMotorClient(settings.mongo_uri)
    db = client[settings.mongo_db_name]

    try:
        await client.admin.command("ping")
        print("Connected.")

        await ensure_indexes(db)
        print("Indexes ensured.")

        # ─── Admin account ────────────────────────────────────────────────────
        if not args.skip_admin:
            email = args.admin_email.strip().lower()
            if await db.users.find_one({"email": email}):
                print(f"Admin {email} already exists, leaving it unchanged.")
            else:
                await db.users.insert_one(
                    {
                        "name": args.admin_name,
                        "email": email,
                        "phone": None,
                        "hashed_password": hash_password(args.admin_password),
                        "role": "admin",
                        "avatar": None,
                        "is_active": True,
                        "created_at": datetime.now(timezone.utc),
                    }
                )
                print(f"Created admin {email}.")

        # ─── Sample incidents ─────────────────────────────────────────────────
        deleted = await db.incidents.delete_many({"seed": SEED_TAG})
        print(f"Removed {deleted.deleted_count} existing seed incidents.")

        result = await db.incidents.insert_many([dict(doc) for doc in SAMPLE_INCIDENTS])
        print(f"Inserted {len(result.inserted_ids)} incidents.")

        print("\nSeed complete! Incidents by status:")
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        async for doc in db.incidents.aggregate(pipeline):
            print(f"  {doc['_id']}: {doc['count']}")

    finally:
        client.close()


if __name__ == "__main__":
    args = _parse_args()
    if not args.skip_admin and not (args.admin_email and args.admin_password):
        sys.exit("Admin credentials required: pass --admin-email/--admin-password or set SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD (or use --skip-admin).")
    asyncio.run(seed(args))
