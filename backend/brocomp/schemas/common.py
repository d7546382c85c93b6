"""Common schemas and utilities."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from brocomp.services.sanitize import contains_malicious_content

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class PaginationMeta(BaseModel):
    """Pagination metadata in response."""

    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page) if per_page else 0,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response wrapper."""

    data: list[T]
    pagination: PaginationMeta


class SuccessResponse(BaseModel):
    """Simple success response."""

    success: bool = True
    message: str | None = None


def reject_malicious(value: str, field_name: str) -> str:
    """Shared validator body: raise when value looks like an injection."""
    if contains_malicious_content(value):
        raise ValueError(f"{field_name} contains invalid content")
    return value
