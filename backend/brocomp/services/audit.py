"""Audit log writer."""

import logging
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

# Actions counted as critical on the security dashboard.
CRITICAL_ACTION_MARKERS = ("role_change", "approval")


def client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return request.client.host if request.client else None


async def record_audit(
    db: AsyncSession,
    action: str,
    *,
    user_id: Any = None,
    request: Request | None = None,
    resource_type: str | None = None,
    resource_id: Any = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Add an audit row to the session; the request transaction commits it."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent") if request is not None else None,
        log_metadata=metadata,
    )
    db.add(entry)
    logger.info(f"Audit: {action} user={user_id} resource={resource_type}:{resource_id}")
    return entry
