"""
MongoDB connection management using Motor (async driver).

A single DatabaseClient instance is shared across all requests. Routes
reach the database through the get_db() dependency rather than importing
the singleton, so tests can swap in an in-memory fake with
app.dependency_overrides.

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown.
"""

import logging
import re

import certifi
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from rapid_response.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    Kept as a class so tests can reset .client and .db without
    reassigning module globals.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection, validate it with a ping and make sure
    the indexes exist.

    Fails soft: when MongoDB is unreachable the API still starts, the
    health check reports "disconnected" and DB-backed routes answer 503.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        options: dict = {"serverSelectionTimeoutMS": 5000}
        if _uses_tls(settings.mongo_uri):
            options["tlsCAFile"] = certifi.where()
        db_client.client = AsyncIOMotorClient(settings.mongo_uri, **options)
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        await ensure_indexes(db_client.db)
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes every collection relies on. Idempotent."""
    await db["users"].create_index("email", unique=True)
    await db["users"].create_index("role")
    await db["incidents"].create_index([("created_at", DESCENDING)])
    await db["incidents"].create_index("status")
    await db["emergency_contacts"].create_index("user_id")
    await db["sos_alerts"].create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    await db["sos_alerts"].create_index("user_id")
    await db["notifications"].create_index([("user_id", ASCENDING), ("is_read", ASCENDING)])


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable; routes translate that into
    a 503 "Database unavailable".
    """
    return db_client.db


def _uses_tls(uri: str) -> bool:
    # Atlas (mongodb+srv) and explicit tls=true need the certifi CA bundle.
    return uri.startswith("mongodb+srv://") or "tls=true" in uri.lower()


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)


def require_db(db: AsyncIOMotorDatabase | None) -> AsyncIOMotorDatabase:
    """Raise 503 when get_db() reported the database as unavailable."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db
