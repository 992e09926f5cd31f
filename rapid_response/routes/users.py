"""
users.py — Profile routes.

Routes:
  GET   /api/users/me  — fetch the current user's profile
  PATCH /api/users/me  — partial update (name, phone, avatar)

The phone number is included in SOS emails so contacts can call back.
All routes require a valid Bearer token.
"""

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException

from rapid_response.core.database import get_db
from rapid_response.models.user import ProfileUpdate, UserOut
from rapid_response.routes.auth import CurrentUser, user_from_doc

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserOut)
async def get_profile(current_user: CurrentUser):
    """Return the authenticated user's profile."""
    return current_user


@router.patch("/me", response_model=UserOut)
async def update_profile(
    payload: ProfileUpdate,
    current_user: CurrentUser,
    db=Depends(get_db),
):
    """Partially update the profile — only provided fields are changed."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    updates = payload.model_dump(exclude_none=True)
    if not updates:
        return current_user

    oid = ObjectId(current_user.id)
    await db["users"].update_one({"_id": oid}, {"$set": updates})
    return user_from_doc(await db["users"].find_one({"_id": oid}))
