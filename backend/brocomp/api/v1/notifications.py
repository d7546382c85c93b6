"""In-app notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select, update

from brocomp.api.deps import CurrentUser, DbSession
from brocomp.models.notification import Notification
from brocomp.schemas.common import SuccessResponse
from brocomp.schemas.notification import NotificationResponse, UnreadCount

router = APIRouter()


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    unread: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
) -> list[NotificationResponse]:
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    return [NotificationResponse.model_validate(n) for n in result.scalars().all()]


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(current_user: CurrentUser, db: DbSession) -> UnreadCount:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == current_user.id, Notification.read.is_(False))
    )
    return UnreadCount(unread=result.scalar_one())


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> NotificationResponse:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == current_user.id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    notification.read = True
    await db.flush()
    return NotificationResponse.model_validate(notification)


@router.post("/read-all", response_model=SuccessResponse)
async def mark_all_read(current_user: CurrentUser, db: DbSession) -> SuccessResponse:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.read.is_(False))
        .values(read=True)
    )
    return SuccessResponse(message=f"Marked {result.rowcount} notifications as read")
