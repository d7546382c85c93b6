"""API dependencies."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.core.database import get_db
from brocomp.core.security import verify_token
from brocomp.models.device_session import DeviceSession
from brocomp.models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer()

DbSession = Annotated[AsyncSession, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def authenticate_token(token: str, db: AsyncSession) -> tuple[User, UUID | None]:
    """Resolve an access token to (user, device session id).

    Roles are always read from the database, never from token claims.

    Raises:
        HTTPException: 401 for a bad token or unknown user, 403 for a
            revoked device session.
    """
    payload = verify_token(token)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user_id = _parse_uuid(payload.get("sub"))
    if user_id is None:
        raise _unauthorized("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _unauthorized("User not found")

    session_id = _parse_uuid(payload.get("sid"))
    if session_id is not None:
        result = await db.execute(
            select(DeviceSession).where(
                DeviceSession.id == session_id,
                DeviceSession.user_id == user.id,
            )
        )
        device_session = result.scalar_one_or_none()
        if device_session is None or device_session.revoked:
            logger.info(f"Rejected token for revoked session {session_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Session has been revoked",
            )

    return user, session_id


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DbSession,
) -> User:
    """Get current authenticated user from the bearer token."""
    user, _ = await authenticate_token(credentials.credentials, db)
    return user


def get_current_session_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID | None:
    """Device session id (``sid``) of the current token, if any."""
    payload = verify_token(credentials.credentials, expected_type="access")
    if payload is None:
        return None
    return _parse_uuid(payload.get("sid"))


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentSessionId = Annotated[UUID | None, Depends(get_current_session_id)]


async def get_admin_user(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def get_super_admin_user(current_user: CurrentUser) -> User:
    if not current_user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return current_user


async def get_approved_user(current_user: CurrentUser) -> User:
    """Community posting requires an approved account; admins always pass."""
    if not (current_user.admin_approved or current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is awaiting admin approval",
        )
    return current_user


AdminUser = Annotated[User, Depends(get_admin_user)]
SuperAdminUser = Annotated[User, Depends(get_super_admin_user)]
ApprovedUser = Annotated[User, Depends(get_approved_user)]
