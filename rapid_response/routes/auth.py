"""
auth.py — Authentication routes and dependencies.

Routes:
  POST /api/auth/register  — create a citizen account
  POST /api/auth/login     — exchange credentials for a JWT
  GET  /api/auth/me        — return current user (requires valid JWT)

Dependencies re-exported for other routers:
  CurrentUser — any authenticated, active user (401 otherwise)
  AdminUser   — CurrentUser whose role is "admin" (403 otherwise)

All errors use HTTPException so FastAPI serialises them as:
  { "detail": "..." }
"""

import logging
from datetime import datetime, timezone
from typing import Annotated

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import DuplicateKeyError

from rapid_response.core.database import get_db
from rapid_response.core.rate_limit import limiter
from rapid_response.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from rapid_response.models.user import LoginRequest, Token, UserCreate, UserOut
from rapid_response.services.notifier import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


# ── Helpers ───────────────────────────────────────────────────────────────────

def user_from_doc(doc: dict) -> UserOut:
    """Convert a raw MongoDB document to a UserOut Pydantic model."""
    return UserOut(
        id=str(doc["_id"]),
        name=doc.get("name") or doc["email"],
        email=doc["email"],
        role=doc.get("role", "citizen"),
        phone=doc.get("phone"),
        avatar=doc.get("avatar"),
        created_at=doc.get("created_at", datetime.now(tz=timezone.utc)),
    )


def _issue_token(user: UserOut, message: str) -> Token:
    token = create_access_token(user.id, email=user.email, role=user.role)
    return Token(message=message, access_token=token, user=user)


async def _get_current_user(credentials: CredDep, db=Depends(get_db)) -> UserOut:
    """
    Extract and validate the Bearer token, then fetch the user from MongoDB.

    Raises 401 if the token is missing, invalid, or the user no longer exists.
    """
    cred_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise cred_error

    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise cred_error

    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise cred_error

    doc = await db["users"].find_one({"_id": oid, "is_active": True})
    if not doc:
        raise cred_error

    return user_from_doc(doc)


CurrentUser = Annotated[UserOut, Depends(_get_current_user)]


async def _require_admin(user: CurrentUser) -> UserOut:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


AdminUser = Annotated[UserOut, Depends(_require_admin)]


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserCreate,
    background: BackgroundTasks,
    db=Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Register a new citizen account and return a JWT."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    conflict = HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="An account with this email already exists",
    )
    if await db["users"].find_one({"email": payload.email}):
        raise conflict

    user_doc = {
        "name": payload.name,
        "email": payload.email,
        "phone": payload.phone,
        "hashed_password": hash_password(payload.password),
        "role": "citizen",
        "avatar": None,
        "created_at": datetime.now(tz=timezone.utc),
        "is_active": True,
    }
    try:
        result = await db["users"].insert_one(user_doc)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration (unique index on email).
        raise conflict
    user_doc["_id"] = result.inserted_id

    user = user_from_doc(user_doc)
    logger.info("Registered user %s", user.id)
    background.add_task(dispatcher.send_welcome_email, user.email, user.name)
    return _issue_token(user, "User registered successfully")


@router.post("/login", response_model=Token)
@limiter.limit("20/minute")
async def login(request: Request, payload: LoginRequest, db=Depends(get_db)):
    """Authenticate with email + password and return a JWT."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    _cred_err = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid email or password",
        headers={"WWW-Authenticate": "Bearer"},
    )

    doc = await db["users"].find_one({"email": payload.email, "is_active": True})
    if not doc:
        raise _cred_err

    if not verify_password(payload.password, doc["hashed_password"]):
        raise _cred_err

    return _issue_token(user_from_doc(doc), "Login successful")


@router.get("/me", response_model=UserOut)
async def me(current_user: CurrentUser):
    """Return the currently authenticated user's profile."""
    return current_user
