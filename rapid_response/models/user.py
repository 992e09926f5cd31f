"""
user.py — Pydantic schemas for user-related request / response bodies.

  UserCreate   — what the client sends to register
  UserOut      — what the API returns (never includes hashed_password)
  ProfileUpdate — partial profile edit (PATCH semantics)
  Token        — JWT response from /api/auth/login and /api/auth/register
"""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from rapid_response.models.base import ApiModel, Role

_PHONE_PATTERN = r"^[\+]?[(]?[0-9]{1,4}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,9}$"


class UserCreate(ApiModel):
    """Payload for POST /api/auth/register. New accounts are always citizens."""
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=_PHONE_PATTERN)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class UserOut(ApiModel):
    """Safe user representation — no secrets."""
    id: str
    name: str
    email: EmailStr
    role: Role = "citizen"
    phone: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime


class ProfileUpdate(ApiModel):
    """Partial update — only provided fields change."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, pattern=_PHONE_PATTERN)
    avatar: Optional[str] = None


class Token(ApiModel):
    """Response body for successful login / register."""
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class LoginRequest(ApiModel):
    """Payload for POST /api/auth/login."""
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()
