"""Notification schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from brocomp.schemas.common import BaseSchema


class NotificationResponse(BaseSchema):
    id: UUID
    type: str
    title: str
    message: str
    link: str | None = None
    read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    unread: int
