"""User and profile schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from brocomp.models.user import UserRole
from brocomp.schemas.common import BaseSchema, reject_malicious

NAME_PATTERN = r"^[a-zA-Z\s'-]+$"
PHONE_PATTERN = r"^[0-9+\-() ]*$"


class UserResponse(BaseSchema):
    """User response schema."""

    id: UUID
    email: EmailStr
    full_name: str
    phone: str | None = None
    avatar_url: str | None = None
    role: str
    admin_approved: bool
    email_verified: bool
    created_at: datetime


class ProfileUpdate(BaseModel):
    """Profile update request."""

    full_name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    phone: str | None = Field(default=None, max_length=20, pattern=PHONE_PATTERN)

    @field_validator("full_name", "phone", mode="before")
    @classmethod
    def strip(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return reject_malicious(v, "Name")

    @field_validator("phone")
    @classmethod
    def empty_phone_is_none(cls, v: str | None) -> str | None:
        return v or None


class NotificationPreferences(BaseModel):
    """Per-user notification switches."""

    email: bool = True
    push: bool = True
    statusChanges: bool = True
    adminResponses: bool = True
    communityMentions: bool = True


class UserApprovalUpdate(BaseModel):
    approved: bool


class UserRoleUpdate(BaseModel):
    role: UserRole
