"""Community chat models."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brocomp.models.base import BaseModel, BaseModelNoUpdate, SoftDeleteMixin

if TYPE_CHECKING:
    from brocomp.models.user import User


class ChatMessage(SoftDeleteMixin, BaseModel):
    """Community chat message; replies point at their parent."""

    __tablename__ = "chat_messages"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_messages.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    pinned: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    pinned_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    pinned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    edited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    author: Mapped["User"] = relationship(
        "User",
        foreign_keys=[user_id],
    )
    reactions: Mapped[list["MessageReaction"]] = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ChatMessage {self.id} by {self.user_id}>"


class MessageReaction(BaseModelNoUpdate):
    """Emoji reaction; one row per (message, user, reaction)."""

    __tablename__ = "message_reactions"

    __table_args__ = (
        UniqueConstraint(
            "message_id", "user_id", "reaction", name="uq_reaction_message_user_emoji"
        ),
    )

    message_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    reaction: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
    )

    message: Mapped["ChatMessage"] = relationship(
        "ChatMessage",
        back_populates="reactions",
    )

    def __repr__(self) -> str:
        return f"<MessageReaction {self.reaction} on {self.message_id}>"
