"""Pydantic schemas for accounts, sessions, and channels.

Blank-string checks happen in the service layer (400, like every other
business rule); the schemas only enforce shape, email format and obvious
limits (422).
None of the read models carry password_hash or refresh_token.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")


# ─── Requests ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    full_name: str = Field(max_length=200)
    email: EmailStr
    username: str = Field(max_length=100)
    password: str = Field(max_length=256)
    avatar_url: str
    cover_image_url: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        if v.strip() and not USERNAME_RE.match(v.strip()):
            raise ValueError(
                "Username may only contain letters, digits, '.', '_' or '-'"
            )
        return v


class LoginRequest(BaseModel):
    """Either username or email identifies the account."""

    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(BaseModel):
    """Body is optional; the refresh_token cookie works too."""

    refresh_token: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[EmailStr] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(max_length=256)


class ImageUpdateRequest(BaseModel):
    url: str


# ─── Responses ────────────────────────────────────────────


class AccountRead(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: str
    avatar_url: str
    cover_image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SessionTokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    account: Optional[AccountRead] = None


class ChannelProfile(BaseModel):
    id: uuid.UUID
    username: str
    full_name: str
    avatar_url: str
    cover_image_url: Optional[str] = None
    subscribers_count: int
    subscribed_to_count: int
    is_subscribed: bool
    created_at: datetime
