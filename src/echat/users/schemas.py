"""Domain models and request/response schemas for users, blocks, reports and contacts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    AWAY = "away"
    BUSY = "busy"


class ReportType(str, Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    INAPPROPRIATE = "inappropriate"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ContactStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class User(BaseModel):
    """A user record as stored in either region."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    username: str = ""
    full_name: str = ""
    avatar_url: str | None = None
    password_hash: str | None = Field(default=None, exclude=True, repr=False)
    status: UserStatus = UserStatus.OFFLINE
    last_seen_at: datetime | None = None
    region: str = "global"
    allow_non_friend_messages: bool = True
    is_admin: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PrivacySettings(BaseModel):
    allow_non_friend_messages: bool = True


class BlockedUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    blocker_id: str
    blocked_id: str
    reason: str | None = None
    created_at: datetime | None = None


class Report(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    reporter_id: str
    reported_user_id: str
    type: ReportType
    description: str | None = None
    status: ReportStatus = ReportStatus.PENDING
    admin_notes: str | None = None
    handled_by: str | None = None
    handled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Contact(BaseModel):
    """Friendship edge. ``user_id`` requested, ``contact_user_id`` decides."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    contact_user_id: str
    status: ContactStatus = ContactStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateUserRequest(BaseModel):
    email: EmailStr
    username: str | None = Field(None, min_length=1, max_length=64)
    full_name: str | None = Field(None, max_length=128)
    avatar_url: str | None = None
    password_hash: str | None = None
    region: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class UpdateUserRequest(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=64)
    full_name: str | None = Field(None, max_length=128)
    avatar_url: str | None = None

    @field_validator("username", "full_name")
    @classmethod
    def reject_null(cls, v: str | None) -> str:
        """Omit a field to keep it; only ``avatar_url`` may be cleared with null."""
        if v is None:
            msg = "must not be null"
            raise ValueError(msg)
        return v


class UpdatePrivacyRequest(BaseModel):
    allow_non_friend_messages: bool


class StatusUpdateRequest(BaseModel):
    status: UserStatus


class BlockUserRequest(BaseModel):
    blocked_user_id: str = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)


class ReportUserRequest(BaseModel):
    reported_user_id: str = Field(..., min_length=1)
    type: ReportType
    description: str | None = Field(None, max_length=2000)


class UpdateReportRequest(BaseModel):
    status: ReportStatus
    admin_notes: str | None = Field(None, max_length=2000)


class ContactRequest(BaseModel):
    contact_user_id: str = Field(..., min_length=1)


class ContactResponseRequest(BaseModel):
    accept: bool


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    email: str | None = None
    username: str
    full_name: str
    avatar_url: str | None = None
    status: UserStatus
    last_seen_at: datetime | None = None
    region: str
    allow_non_friend_messages: bool
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls.model_validate(user.model_dump())


class PresenceResponse(BaseModel):
    status: UserStatus
    last_seen_at: datetime | None = None
    mirrored: bool | None = None
