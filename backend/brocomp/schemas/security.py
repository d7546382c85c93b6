"""Security and audit schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from brocomp.schemas.common import BaseSchema

AlertSeverity = Literal["critical", "high", "medium", "low"]


class AuditLogResponse(BaseSchema):
    id: UUID
    user_id: UUID | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="log_metadata")
    created_at: datetime


class SecurityMetrics(BaseModel):
    total_logs: int
    critical_actions: int
    recent_activity: int


class RateLimitRuleResponse(BaseModel):
    action: str
    max_attempts: int
    window_minutes: float
    backoff: bool


class SecurityAlertRequest(BaseModel):
    alert_type: str = Field(min_length=1, max_length=100)
    severity: AlertSeverity
    message: str = Field(min_length=1, max_length=2000)
    user_id: UUID | None = None
    metadata: dict[str, Any] | None = None


class SecurityAlertQueued(BaseModel):
    queued: bool = True
    task_id: str


class FileValidationRequest(BaseModel):
    file_name: str = Field(alias="fileName", min_length=1)
    file_size: int = Field(alias="fileSize", ge=0)
    mime_type: str = Field(alias="mimeType")
    file_data: str | None = Field(default=None, alias="fileData")

    model_config = {"populate_by_name": True}


class FileValidationResponse(BaseModel):
    valid: bool
    sanitized_file_name: str | None = Field(default=None, serialization_alias="sanitizedFileName")
    error: str | None = None
