"""User endpoints: own profile and preferences, admin user management."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import func, select

from brocomp.api.deps import AdminUser, CurrentUser, DbSession, SuperAdminUser
from brocomp.models.user import User
from brocomp.schemas.common import PaginatedResponse, PaginationMeta
from brocomp.schemas.user import (
    NotificationPreferences,
    ProfileUpdate,
    UserApprovalUpdate,
    UserResponse,
    UserRoleUpdate,
)
from brocomp.services.audit import record_audit
from brocomp.services.sanitize import escape_like

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser) -> UserResponse:
    """Get current authenticated user."""
    return UserResponse.model_validate(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_me(
    update: ProfileUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> UserResponse:
    """Update profile fields."""
    current_user.full_name = update.full_name
    current_user.phone = update.phone
    await db.flush()
    await db.refresh(current_user)
    return UserResponse.model_validate(current_user)


@router.get("/me/preferences", response_model=NotificationPreferences)
async def get_preferences(current_user: CurrentUser) -> NotificationPreferences:
    # Missing keys fall back to defaults.
    return NotificationPreferences(**(current_user.notification_preferences or {}))


@router.put("/me/preferences", response_model=NotificationPreferences)
async def replace_preferences(
    preferences: NotificationPreferences,
    current_user: CurrentUser,
    db: DbSession,
) -> NotificationPreferences:
    current_user.notification_preferences = preferences.model_dump()
    await db.flush()
    return preferences


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    admin: AdminUser,
    db: DbSession,
    role: str | None = Query(None),
    approved: bool | None = Query(None),
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[UserResponse]:
    """List users (admin)."""
    query = select(User)
    if role:
        query = query.where(User.role == role)
    if approved is not None:
        query = query.where(User.admin_approved.is_(approved))
    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.where(
            User.full_name.ilike(pattern, escape="\\") | User.email.ilike(pattern, escape="\\")
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(User.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    return PaginatedResponse(
        data=[UserResponse.model_validate(u) for u in result.scalars().all()],
        pagination=PaginationMeta.build(page, per_page, total),
    )


async def _get_user_or_404(db: DbSession, user_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.patch("/{user_id}/approval", response_model=UserResponse)
async def set_approval(
    user_id: UUID,
    body: UserApprovalUpdate,
    request: Request,
    admin: AdminUser,
    db: DbSession,
) -> UserResponse:
    """Approve or unapprove a user for community participation."""
    user = await _get_user_or_404(db, user_id)
    previous = user.admin_approved
    user.admin_approved = body.approved
    await record_audit(
        db,
        "user_approval",
        user_id=admin.id,
        request=request,
        resource_type="user",
        resource_id=user.id,
        metadata={"approved": body.approved, "previous": previous},
    )
    await db.flush()
    await db.refresh(user)
    logger.info(f"Admin {admin.id} set approval={body.approved} for {user.id}")
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: UUID,
    body: UserRoleUpdate,
    request: Request,
    admin: SuperAdminUser,
    db: DbSession,
) -> UserResponse:
    """Change a user's role (super admin only)."""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot change your own role",
        )
    user = await _get_user_or_404(db, user_id)
    previous = user.role
    user.role = body.role.value
    await record_audit(
        db,
        "role_change",
        user_id=admin.id,
        request=request,
        resource_type="user",
        resource_id=user.id,
        metadata={"from": previous, "to": body.role.value},
    )
    await db.flush()
    await db.refresh(user)
    logger.info(f"Super admin {admin.id} changed role of {user.id}: {previous} -> {body.role.value}")
    return UserResponse.model_validate(user)
