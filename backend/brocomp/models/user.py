"""User model."""

import enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brocomp.models.base import BaseModel

if TYPE_CHECKING:
    from brocomp.models.complaint import Complaint
    from brocomp.models.device_session import DeviceSession
    from brocomp.models.notification import Notification


class UserRole(str, enum.Enum):
    """Application role."""

    STUDENT = "student"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value})


def default_notification_preferences() -> dict[str, bool]:
    return {
        "email": True,
        "push": True,
        "statusChanges": True,
        "adminResponses": True,
        "communityMentions": True,
    }


class User(BaseModel):
    """User account with profile fields and role."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    # Valid values are enforced at the application layer via UserRole.
    role: Mapped[str] = mapped_column(
        String(32),
        default=UserRole.STUDENT.value,
        nullable=False,
        index=True,
    )
    admin_approved: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    notification_preferences: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=default_notification_preferences,
        nullable=False,
    )

    # Relationships
    complaints: Mapped[list["Complaint"]] = relationship(
        "Complaint",
        back_populates="user",
        foreign_keys="Complaint.user_id",
        cascade="all, delete-orphan",
    )
    device_sessions: Mapped[list["DeviceSession"]] = relationship(
        "DeviceSession",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    notifications: Mapped[list["Notification"]] = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.email}>"
