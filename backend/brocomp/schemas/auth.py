"""Authentication schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from brocomp.schemas.common import BaseSchema, reject_malicious
from brocomp.schemas.user import NAME_PATTERN


class RegisterRequest(BaseModel):
    """Student sign-up."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)

    @field_validator("full_name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return reject_malicious(v, "Name")


class LoginRequest(BaseModel):
    """Email/password login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class UserInfo(BaseSchema):
    """User info in auth response."""

    id: UUID
    email: EmailStr
    full_name: str
    role: str
    admin_approved: bool


class AuthResponse(BaseModel):
    """Authentication response with tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    session_id: UUID
    user: UserInfo


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenRefresh(BaseModel):
    """Token refresh response."""

    access_token: str
    expires_in: int
