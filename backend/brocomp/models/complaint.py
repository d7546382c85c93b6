"""Complaint models: complaints, reference data, responses, files, feedback."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brocomp.models.base import BaseModel, BaseModelNoUpdate

if TYPE_CHECKING:
    from brocomp.models.user import User


class ComplaintStatus(str, enum.Enum):
    """Complaint workflow status, in workflow order."""

    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    PROCESSING = "processing"
    RESOLVED = "resolved"


class ComplaintChannel(str, enum.Enum):
    """Medium the complaint was raised through."""

    CHAT = "chat"
    CALL = "call"
    EMAIL = "email"
    TICKET = "ticket"


class ComplaintCategory(BaseModelNoUpdate):
    """Complaint category (reference data)."""

    __tablename__ = "complaint_categories"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<ComplaintCategory {self.name}>"


class ComplaintPriority(BaseModelNoUpdate):
    """Complaint priority (reference data); lower level = less urgent."""

    __tablename__ = "complaint_priorities"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<ComplaintPriority {self.name} ({self.level})>"


class Complaint(BaseModel):
    """Student-submitted support ticket."""

    __tablename__ = "complaints"

    tracking_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("complaint_categories.id"),
        nullable=False,
    )
    priority_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("complaint_priorities.id"),
        nullable=False,
    )
    # Store as plain strings; valid values are enforced via the enums above.
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        default=ComplaintStatus.SUBMITTED.value,
        nullable=False,
        index=True,
    )
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="complaints",
        foreign_keys=[user_id],
    )
    assignee: Mapped["User | None"] = relationship(
        "User",
        foreign_keys=[assigned_to],
    )
    category: Mapped["ComplaintCategory"] = relationship("ComplaintCategory")
    priority: Mapped["ComplaintPriority"] = relationship("ComplaintPriority")
    responses: Mapped[list["ComplaintResponse"]] = relationship(
        "ComplaintResponse",
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="ComplaintResponse.created_at",
    )
    files: Mapped[list["ComplaintFile"]] = relationship(
        "ComplaintFile",
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="ComplaintFile.created_at",
    )
    feedback: Mapped[list["ComplaintFeedback"]] = relationship(
        "ComplaintFeedback",
        back_populates="complaint",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Complaint {self.tracking_id} ({self.status})>"


class ComplaintResponse(BaseModelNoUpdate):
    """Admin response to a complaint; internal notes are admin-only."""

    __tablename__ = "complaint_responses"

    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("complaints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    responder_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal_note: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    complaint: Mapped["Complaint"] = relationship(
        "Complaint",
        back_populates="responses",
    )
    responder: Mapped["User"] = relationship("User")


class ComplaintFile(BaseModelNoUpdate):
    """Attachment stored in object storage."""

    __tablename__ = "complaint_files"

    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("complaints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    content_type: Mapped[str] = mapped_column(
        String(128),
        default="application/octet-stream",
        nullable=False,
    )

    complaint: Mapped["Complaint"] = relationship(
        "Complaint",
        back_populates="files",
    )


class ComplaintFeedback(BaseModelNoUpdate):
    """Student rating of a resolved complaint."""

    __tablename__ = "complaint_feedback"

    __table_args__ = (
        UniqueConstraint("complaint_id", "user_id", name="uq_feedback_complaint_user"),
    )

    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("complaints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    complaint: Mapped["Complaint"] = relationship(
        "Complaint",
        back_populates="feedback",
    )
