"""Device session endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select

from brocomp.api.deps import CurrentSessionId, CurrentUser, DbSession
from brocomp.models.device_session import DeviceSession
from brocomp.schemas.common import SuccessResponse
from brocomp.schemas.device import DeviceSessionResponse
from brocomp.services.audit import client_ip, record_audit
from brocomp.services.devices import (
    revoke_all_sessions,
    revoke_session,
    touch_device_session,
)
from brocomp.services.realtime import EventType, publish_event, user_channel

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(session: DeviceSession, current: UUID | None) -> DeviceSessionResponse:
    response = DeviceSessionResponse.model_validate(session)
    response.current = session.id == current
    return response


@router.post("/heartbeat", response_model=DeviceSessionResponse)
async def heartbeat(
    request: Request,
    current_user: CurrentUser,
    session_id: CurrentSessionId,
    db: DbSession,
) -> DeviceSessionResponse:
    """Refresh ``last_active`` for this device (clients call it every 5 minutes)."""
    session = await touch_device_session(
        db,
        current_user.id,
        request.headers.get("user-agent", "unknown"),
        ip_address=client_ip(request),
    )
    await db.flush()
    await db.refresh(session)
    return _to_response(session, session_id)


@router.get("", response_model=list[DeviceSessionResponse])
async def list_sessions(
    current_user: CurrentUser,
    session_id: CurrentSessionId,
    db: DbSession,
) -> list[DeviceSessionResponse]:
    """Active sessions, most recently active first."""
    result = await db.execute(
        select(DeviceSession)
        .where(
            DeviceSession.user_id == current_user.id,
            DeviceSession.revoked.is_(False),
        )
        .order_by(DeviceSession.last_active.desc())
    )
    return [_to_response(s, session_id) for s in result.scalars().all()]


@router.delete("/{device_id}", response_model=SuccessResponse)
async def revoke_device(
    device_id: UUID,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> SuccessResponse:
    result = await db.execute(
        select(DeviceSession).where(
            DeviceSession.id == device_id,
            DeviceSession.user_id == current_user.id,
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device session not found",
        )
    if not session.revoked:
        revoke_session(session)
        await record_audit(
            db,
            "device_revoked",
            user_id=current_user.id,
            request=request,
            resource_type="device_session",
            resource_id=session.id,
        )
        await db.commit()
        await publish_event(
            user_channel(current_user.id),
            EventType.SESSION_REVOKED,
            {"session_id": str(session.id)},
        )
    return SuccessResponse(message="Device signed out")


@router.post("/logout-all", response_model=SuccessResponse)
async def logout_all(
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> SuccessResponse:
    """Revoke every session; all tokens issued for them stop working."""
    count = await revoke_all_sessions(db, current_user.id)
    await record_audit(
        db,
        "device_revoked",
        user_id=current_user.id,
        request=request,
        resource_type="device_session",
        metadata={"all": True, "count": count},
    )
    await db.commit()
    await publish_event(
        user_channel(current_user.id),
        EventType.SESSION_REVOKED,
        {"all": True},
    )
    return SuccessResponse(message=f"Signed out of {count} devices")
