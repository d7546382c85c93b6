"""Authentication endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.api.deps import CurrentSessionId, CurrentUser, DbSession
from brocomp.core.config import settings
from brocomp.core.rate_limit import RATE_LIMITS, enforce_rate_limit, get_rate_limiter
from brocomp.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_token,
)
from brocomp.models.device_session import DeviceSession
from brocomp.models.user import User, UserRole, default_notification_preferences
from brocomp.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenRefresh,
    UserInfo,
)
from brocomp.schemas.common import SuccessResponse
from brocomp.services.audit import client_ip, record_audit
from brocomp.services.devices import revoke_session, touch_device_session

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Invalid email or password"


async def _issue_tokens(
    db: AsyncSession,
    user: User,
    request: Request,
) -> AuthResponse:
    user_agent = request.headers.get("user-agent", "unknown")
    device_session = await touch_device_session(
        db, user.id, user_agent, ip_address=client_ip(request)
    )
    sid = str(device_session.id)
    return AuthResponse(
        access_token=create_access_token(subject=str(user.id), session_id=sid),
        refresh_token=create_refresh_token(subject=str(user.id), session_id=sid),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        session_id=device_session.id,
        user=UserInfo.model_validate(user),
    )


async def _record_failure(
    db: AsyncSession,
    request: Request,
    action: str,
    subject: str,
    email: str,
    user: User | None,
) -> None:
    """Count a failed attempt; audit it and flag a lockout when it trips."""
    state = await get_rate_limiter().increment(action, subject)
    user_id = user.id if user else None
    locked_out = state.count >= RATE_LIMITS[action].max_attempts
    await record_audit(
        db,
        f"{action}_failed",
        user_id=user_id,
        request=request,
        resource_type="auth",
        metadata={"email": email, "attempts": state.count},
    )
    if locked_out:
        await record_audit(
            db,
            "account_lockout",
            user_id=user_id,
            request=request,
            resource_type="auth",
            metadata={"email": email, "rule": action},
        )
    # The request transaction rolls back on the 401, so persist the audit now.
    await db.commit()

    if locked_out and action == "admin_login":
        from brocomp.workers.notifications import send_security_alert

        try:
            send_security_alert.delay(
                alert_type="admin_login_lockout",
                severity="high",
                details=f"Admin login locked out after {state.count} failed attempts",
                user_id=str(user_id) if user_id else None,
                ip_address=client_ip(request),
                metadata={"email": email},
            )
        except Exception as e:
            logger.error(f"Failed to queue admin lockout alert for {email}: {e}")


async def _login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession,
    action: str,
) -> AuthResponse:
    subject = await enforce_rate_limit(request, action=action, user_id=None, record=False)

    result = await db.execute(select(User).where(User.email == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.hashed_password):
        await _record_failure(db, request, action, subject, credentials.email, user)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
        )

    if action == "admin_login" and not user.is_admin:
        await _record_failure(db, request, action, subject, credentials.email, user)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    await get_rate_limiter().reset(action, subject)
    logger.info(f"User {user.id} logged in via {action}")
    return await _issue_tokens(db, user, request)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request, db: DbSession) -> AuthResponse:
    """Create a student account (pending admin approval)."""
    await enforce_rate_limit(request, action="register", user_id=None)

    email = body.email.lower()
    result = await db.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user = User(
        email=email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        role=UserRole.STUDENT.value,
        admin_approved=False,
        email_verified=False,
        notification_preferences=default_notification_preferences(),
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return await _issue_tokens(db, user, request)


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginRequest, request: Request, db: DbSession) -> AuthResponse:
    return await _login(credentials, request, db, action="login")


@router.post("/admin-login", response_model=AuthResponse)
async def admin_login(credentials: LoginRequest, request: Request, db: DbSession) -> AuthResponse:
    """Login for admin and super_admin roles, under a separate lockout rule."""
    return await _login(credentials, request, db, action="admin_login")


@router.post("/refresh", response_model=TokenRefresh)
async def refresh_token(body: RefreshRequest, db: DbSession) -> TokenRefresh:
    """Exchange a refresh token for a new access token."""
    payload = verify_token(body.refresh_token, expected_type="refresh")
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    user_id = payload.get("sub")
    sid = payload.get("sid")
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if sid:
        result = await db.execute(
            select(DeviceSession).where(
                DeviceSession.id == sid,
                DeviceSession.user_id == user.id,
            )
        )
        device_session = result.scalar_one_or_none()
        if device_session is None or device_session.revoked:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Session has been revoked",
            )

    return TokenRefresh(
        access_token=create_access_token(subject=str(user.id), session_id=sid),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    current_user: CurrentUser,
    session_id: CurrentSessionId,
    db: DbSession,
) -> SuccessResponse:
    """Revoke the device session of the current token."""
    if session_id is not None:
        result = await db.execute(
            select(DeviceSession).where(
                DeviceSession.id == session_id,
                DeviceSession.user_id == current_user.id,
            )
        )
        device_session = result.scalar_one_or_none()
        if device_session is not None and not device_session.revoked:
            revoke_session(device_session)
    logger.info(f"User {current_user.id} logged out")
    return SuccessResponse(message="Logged out")
