"""Declarative base and the column mixins shared by BroComp tables."""

import uuid
from datetime import datetime

from sqlalchemy import ColumnElement, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base; Alembic migrations mirror its metadata."""


class UUIDMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class UpdatedAtMixin:
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """Rows are hidden by stamping ``deleted_at`` instead of being removed."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def not_deleted(cls) -> ColumnElement[bool]:
        """Filter clause for live rows."""
        return cls.deleted_at.is_(None)


class BaseModel(Base, UUIDMixin, CreatedAtMixin, UpdatedAtMixin):
    """Mutable rows: complaints, users, chat messages."""

    __abstract__ = True


class BaseModelNoUpdate(Base, UUIDMixin, CreatedAtMixin):
    """Rows that carry no ``updated_at`` column."""

    __abstract__ = True
