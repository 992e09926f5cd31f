"""
Health check endpoint.

Reports liveness plus the state of each dependency so callers can tell
"API down" from "API up but MongoDB unreachable" or "SMS not configured".
Always answers 200 while the process is alive.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from rapid_response.core import database as db_module
from rapid_response.core.config import settings
from rapid_response.services.notifier import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)
router = APIRouter()

API_VERSION = "1.0.0"


class ChannelStatus(BaseModel):
    email: bool
    sms: bool


class HealthResponse(BaseModel):
    status: str  # "ok" whenever the process answers
    version: str
    database: str  # "connected" | "disconnected"
    environment: str
    notifications: ChannelStatus


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(dispatcher: NotificationDispatcher = Depends(get_dispatcher)) -> HealthResponse:
    db_status = "disconnected"
    try:
        # Module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    return HealthResponse(
        status="ok",
        version=API_VERSION,
        database=db_status,
        environment=settings.environment,
        notifications=ChannelStatus(
            email=dispatcher.email_provider is not None,
            sms=dispatcher.sms_provider is not None,
        ),
    )
