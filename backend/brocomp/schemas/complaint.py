"""Complaint schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from brocomp.models.complaint import ComplaintChannel, ComplaintStatus
from brocomp.schemas.common import BaseSchema, reject_malicious

SUBJECT_PATTERN = r"^[a-zA-Z0-9\s\-.,!?()]+$"


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class ComplaintCreate(BaseModel):
    """New complaint request."""

    subject: str = Field(min_length=5, max_length=200, pattern=SUBJECT_PATTERN)
    description: str = Field(min_length=20, max_length=2000)
    channel: ComplaintChannel
    category_id: UUID
    priority_id: UUID

    @field_validator("subject", "description", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v: str) -> str:
        return reject_malicious(v, "Subject")

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        return reject_malicious(v, "Description")


class OfflineDraft(ComplaintCreate):
    """Complaint saved offline; ``id`` is the client-side draft id."""

    id: str | None = None
    timestamp: int | None = None


class OfflineSyncRequest(BaseModel):
    drafts: list[dict] = Field(default_factory=list)


class OfflineSyncResult(BaseModel):
    draft_id: str | None = None
    success: bool
    tracking_id: str | None = None
    error: str | None = None


class OfflineSyncResponse(BaseModel):
    results: list[OfflineSyncResult]
    synced: int
    failed: int


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    icon: str | None = Field(default=None, max_length=50)
    color: str | None = Field(default=None, max_length=20)


class CategoryResponse(BaseSchema):
    id: UUID
    name: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None


class PriorityCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    level: int = Field(ge=1, le=10)
    color: str | None = Field(default=None, max_length=20)


class PriorityResponse(BaseSchema):
    id: UUID
    name: str
    level: int
    color: str | None = None


class ComplaintFileResponse(BaseSchema):
    id: UUID
    file_name: str
    file_size: int
    content_type: str
    created_at: datetime


class ComplaintResponseItem(BaseSchema):
    """A response on a complaint."""

    id: UUID
    responder_id: UUID
    message: str
    is_internal_note: bool
    created_at: datetime


class ComplaintSummary(BaseSchema):
    """Complaint list item."""

    id: UUID
    tracking_id: str
    subject: str
    channel: str
    status: str
    category_id: UUID
    priority_id: UUID
    assigned_to: UUID | None = None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None


class ComplaintDetail(ComplaintSummary):
    user_id: UUID
    description: str
    category: CategoryResponse | None = None
    priority: PriorityResponse | None = None
    responses: list[ComplaintResponseItem] = []
    files: list[ComplaintFileResponse] = []


class ComplaintCreated(BaseModel):
    id: UUID
    tracking_id: str
    status: str


class ResponseCreate(BaseModel):
    """Admin response request."""

    message: str = Field(min_length=1, max_length=5000)
    is_internal_note: bool = False

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        return _strip(v)


class StatusUpdate(BaseModel):
    status: ComplaintStatus


class BulkStatusUpdate(BaseModel):
    complaint_ids: list[UUID] = Field(min_length=1, max_length=100)
    status: ComplaintStatus


class BulkAssign(BaseModel):
    complaint_ids: list[UUID] = Field(min_length=1, max_length=100)
    assignee_id: UUID


class BulkFailure(BaseModel):
    id: UUID
    reason: str


class BulkResult(BaseModel):
    updated: list[UUID]
    failed: list[BulkFailure]


class FeedbackCreate(BaseModel):
    rating: int = Field(ge=1, le=5, strict=True)
    comment: str | None = Field(default=None, max_length=500)
    is_anonymous: bool = False

    @field_validator("comment", mode="before")
    @classmethod
    def strip_comment(cls, v: str | None) -> str | None:
        return _strip(v)

    @field_validator("comment")
    @classmethod
    def check_comment(cls, v: str | None) -> str | None:
        if not v:
            return None
        return reject_malicious(v, "Comment")


class FeedbackResponse(BaseSchema):
    id: UUID
    complaint_id: UUID
    user_id: UUID | None = None
    rating: int
    comment: str | None = None
    is_anonymous: bool
    created_at: datetime


class SupportHistory(BaseModel):
    total: int
    resolved: int
    open: int
    avg_resolution_hours: float | None = None
    avg_rating: float | None = None
    complaints: list[ComplaintSummary]
