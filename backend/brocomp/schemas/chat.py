"""Community chat schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from brocomp.schemas.common import BaseSchema, reject_malicious

ALLOWED_REACTIONS = ("👍", "❤️", "😂", "🎉", "🤔", "👏")

SEARCH_LIMIT = 50


class ChatMessageCreate(BaseModel):
    """Chat message creation request."""

    message: str = Field(min_length=1, max_length=1000)
    parent_id: UUID | None = None

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("message")
    @classmethod
    def check_message(cls, v: str) -> str:
        return reject_malicious(v, "Message")


class ChatMessageUpdate(BaseModel):
    message: str = Field(min_length=1, max_length=1000)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("message")
    @classmethod
    def check_message(cls, v: str) -> str:
        return reject_malicious(v, "Message")


class ChatAuthor(BaseSchema):
    id: UUID
    full_name: str
    avatar_url: str | None = None
    role: str


class ChatMessageResponse(BaseSchema):
    """Chat message response."""

    id: UUID
    user_id: UUID
    message: str
    parent_id: UUID | None = None
    pinned: bool
    pinned_by: UUID | None = None
    pinned_at: datetime | None = None
    edited_at: datetime | None = None
    created_at: datetime
    author: ChatAuthor | None = None


class ReactionCreate(BaseModel):
    reaction: str

    @field_validator("reaction")
    @classmethod
    def check_reaction(cls, v: str) -> str:
        if v not in ALLOWED_REACTIONS:
            raise ValueError("Unsupported reaction")
        return v


class ReactionSummary(BaseModel):
    """Reactions on one message grouped by emoji."""

    reaction: str
    count: int
    users: list[UUID]


class ReactionToggleResult(BaseModel):
    added: bool
    reactions: list[ReactionSummary]


class OnlineUser(BaseModel):
    user_id: str
    full_name: str | None = None
    avatar_url: str | None = None
    online_at: str | None = None
    typing: bool = False
