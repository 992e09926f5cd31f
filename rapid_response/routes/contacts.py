"""
contacts.py — Emergency contact routes.

Routes:
  GET    /api/emergency-contacts       — list (primary first, then newest)
  POST   /api/emergency-contacts       — add a contact
  PUT    /api/emergency-contacts/{id}  — update own contact
  DELETE /api/emergency-contacts/{id}  — delete own contact

Contacts belonging to another user answer 404, not 403, so ids can't be probed.
"""

from fastapi import APIRouter, Depends, status

from rapid_response.core.database import get_db, require_db
from rapid_response.models.base import MessageResponse
from rapid_response.models.contact import (
    EmergencyContactCreate,
    EmergencyContactListResponse,
    EmergencyContactResponse,
    EmergencyContactUpdate,
)
from rapid_response.routes.auth import CurrentUser
from rapid_response.services import contacts as contact_service
from rapid_response.utils.ids import parse_object_id

router = APIRouter(prefix="/api/emergency-contacts", tags=["emergency-contacts"])


@router.get("", response_model=EmergencyContactListResponse)
async def list_contacts(current_user: CurrentUser, db=Depends(get_db)):
    contacts = await contact_service.list_contacts(require_db(db), current_user.id)
    return EmergencyContactListResponse(contacts=contacts)


@router.post("", response_model=EmergencyContactResponse, status_code=status.HTTP_201_CREATED)
async def add_contact(payload: EmergencyContactCreate, current_user: CurrentUser, db=Depends(get_db)):
    contact = await contact_service.create_contact(require_db(db), current_user.id, payload)
    return EmergencyContactResponse(message="Emergency contact added successfully", contact=contact)


@router.put("/{contact_id}", response_model=EmergencyContactResponse)
async def update_contact(
    contact_id: str,
    payload: EmergencyContactUpdate,
    current_user: CurrentUser,
    db=Depends(get_db),
):
    oid = parse_object_id(contact_id, "contact")
    contact = await contact_service.update_contact(require_db(db), oid, current_user.id, payload)
    return EmergencyContactResponse(message="Contact updated successfully", contact=contact)


@router.delete("/{contact_id}", response_model=MessageResponse)
async def delete_contact(contact_id: str, current_user: CurrentUser, db=Depends(get_db)):
    oid = parse_object_id(contact_id, "contact")
    await contact_service.delete_contact(require_db(db), oid, current_user.id)
    return MessageResponse(message="Contact deleted successfully")
