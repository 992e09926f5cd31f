"""
sos.py — SOS alert routes.

Routes:
  POST /api/sos/trigger       — raise an alert, notify contacts + admins (rate limited)
  GET  /api/sos/my-alerts     — the caller's 10 most recent alerts
  GET  /api/sos/all           — every active alert (admin)
  PUT  /api/sos/{id}/cancel   — owner cancels an active alert
  PUT  /api/sos/{id}/resolve  — admin resolves an alert

The trigger answers 201 with delivery counters even when every email/SMS
failed; only persistence or auth failures produce an error status.
"""

from fastapi import APIRouter, Depends, Request, status

from rapid_response.core.config import settings
from rapid_response.core.database import get_db, require_db
from rapid_response.core.rate_limit import limiter
from rapid_response.models.sos import (
    SOSAlertListResponse,
    SOSAlertResponse,
    TriggerSOSRequest,
    TriggerSOSResponse,
)
from rapid_response.routes.auth import AdminUser, CurrentUser
from rapid_response.services import sos as sos_service
from rapid_response.services.notifier import NotificationDispatcher, get_dispatcher
from rapid_response.utils.ids import parse_object_id

router = APIRouter(prefix="/api/sos", tags=["sos"])


@router.post("/trigger", response_model=TriggerSOSResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.sos_rate_limit)
async def trigger_sos(
    request: Request,
    payload: TriggerSOSRequest,
    current_user: CurrentUser,
    db=Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await sos_service.trigger_sos(require_db(db), dispatcher, current_user, payload)


@router.get("/my-alerts", response_model=SOSAlertListResponse)
async def my_alerts(current_user: CurrentUser, db=Depends(get_db)):
    alerts = await sos_service.list_user_alerts(require_db(db), current_user.id)
    return SOSAlertListResponse(alerts=alerts)


@router.get("/all", response_model=SOSAlertListResponse)
async def all_active_alerts(admin: AdminUser, db=Depends(get_db)):
    alerts = await sos_service.list_active_alerts(require_db(db))
    return SOSAlertListResponse(alerts=alerts)


@router.put("/{alert_id}/cancel", response_model=SOSAlertResponse)
async def cancel_sos(alert_id: str, current_user: CurrentUser, db=Depends(get_db)):
    oid = parse_object_id(alert_id, "SOS alert")
    alert = await sos_service.cancel_sos(require_db(db), oid, current_user.id)
    return SOSAlertResponse(message="SOS alert cancelled", alert=alert)


@router.put("/{alert_id}/resolve", response_model=SOSAlertResponse)
async def resolve_sos(alert_id: str, admin: AdminUser, db=Depends(get_db)):
    oid = parse_object_id(alert_id, "SOS alert")
    alert, changed = await sos_service.resolve_sos(require_db(db), oid, admin.id)
    message = "SOS alert resolved" if changed else f"SOS alert already {alert.status.value}"
    return SOSAlertResponse(message=message, alert=alert)
