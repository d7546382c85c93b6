"""Community chat endpoints."""

import logging
from collections import defaultdict
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from brocomp.api.deps import AdminUser, ApprovedUser, CurrentUser, DbSession
from brocomp.core.rate_limit import enforce_rate_limit
from brocomp.models.chat import ChatMessage, MessageReaction
from brocomp.schemas.chat import (
    SEARCH_LIMIT,
    ChatMessageCreate,
    ChatMessageResponse,
    ChatMessageUpdate,
    OnlineUser,
    ReactionCreate,
    ReactionSummary,
    ReactionToggleResult,
)
from brocomp.schemas.common import SuccessResponse
from brocomp.services.realtime import (
    COMMUNITY_CHANNEL,
    EventType,
    presence_tracker,
    publish_event,
)
from brocomp.services.sanitize import escape_like, sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter()


def _serialize(message: ChatMessage) -> ChatMessageResponse:
    return ChatMessageResponse.model_validate(message)


async def _get_live_message(db: AsyncSession, message_id: UUID) -> ChatMessage:
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.id == message_id, ChatMessage.not_deleted())
        .options(selectinload(ChatMessage.author))
    )
    message = result.scalar_one_or_none()
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return message


async def _reload(db: AsyncSession, message: ChatMessage) -> ChatMessage:
    await db.flush()
    await db.refresh(message)
    await db.refresh(message, ["author"])
    return message


def summarize_reactions(reactions: list[MessageReaction]) -> list[ReactionSummary]:
    """Group reaction rows by emoji, keeping first-seen order."""
    grouped: dict[str, list[UUID]] = defaultdict(list)
    for reaction in reactions:
        grouped[reaction.reaction].append(reaction.user_id)
    return [
        ReactionSummary(reaction=emoji, count=len(users), users=users)
        for emoji, users in grouped.items()
    ]


# =============================================================================
# Messages
# =============================================================================


@router.get("/messages", response_model=list[ChatMessageResponse])
async def list_messages(
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(100, ge=1, le=200),
    before: datetime | None = Query(None),
    parent_id: UUID | None = Query(None),
) -> list[ChatMessageResponse]:
    """Recent messages (newest first). ``parent_id`` lists a thread's replies."""
    query = (
        select(ChatMessage)
        .where(ChatMessage.not_deleted())
        .options(selectinload(ChatMessage.author))
    )
    if parent_id is not None:
        query = query.where(ChatMessage.parent_id == parent_id)
    if before is not None:
        query = query.where(ChatMessage.created_at < before)
    result = await db.execute(query.order_by(ChatMessage.created_at.desc()).limit(limit))
    return [_serialize(m) for m in result.scalars().all()]


@router.get("/messages/pinned", response_model=list[ChatMessageResponse])
async def list_pinned(current_user: CurrentUser, db: DbSession) -> list[ChatMessageResponse]:
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.pinned.is_(True), ChatMessage.not_deleted())
        .options(selectinload(ChatMessage.author))
        .order_by(ChatMessage.pinned_at.desc())
    )
    return [_serialize(m) for m in result.scalars().all()]


@router.get("/messages/search", response_model=list[ChatMessageResponse])
async def search_messages(
    current_user: CurrentUser,
    db: DbSession,
    q: str | None = Query(None, max_length=200),
    user_id: UUID | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
) -> list[ChatMessageResponse]:
    """Search live messages by text, author and date range (max 50, newest first)."""
    query = (
        select(ChatMessage)
        .where(ChatMessage.not_deleted())
        .options(selectinload(ChatMessage.author))
    )
    if q and q.strip():
        pattern = f"%{escape_like(q.strip())}%"
        query = query.where(ChatMessage.message.ilike(pattern, escape="\\"))
    if user_id is not None:
        query = query.where(ChatMessage.user_id == user_id)
    if date_from is not None:
        query = query.where(ChatMessage.created_at >= date_from)
    if date_to is not None:
        query = query.where(ChatMessage.created_at <= date_to)
    result = await db.execute(
        query.order_by(ChatMessage.created_at.desc()).limit(SEARCH_LIMIT)
    )
    return [_serialize(m) for m in result.scalars().all()]


@router.post("/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    body: ChatMessageCreate,
    request: Request,
    current_user: ApprovedUser,
    db: DbSession,
) -> ChatMessageResponse:
    await enforce_rate_limit(request, action="chat", user_id=str(current_user.id))

    if body.parent_id is not None:
        await _get_live_message(db, body.parent_id)

    text = sanitize_text(body.message)
    if not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message cannot be empty",
        )

    message = ChatMessage(
        user_id=current_user.id,
        message=text,
        parent_id=body.parent_id,
    )
    db.add(message)
    message = await _reload(db, message)
    response = _serialize(message)
    await db.commit()
    await publish_event(
        COMMUNITY_CHANNEL, EventType.MESSAGE_CREATED, response.model_dump(mode="json")
    )
    return response


@router.patch("/messages/{message_id}", response_model=ChatMessageResponse)
async def edit_message(
    message_id: UUID,
    body: ChatMessageUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> ChatMessageResponse:
    """Edit your own message."""
    message = await _get_live_message(db, message_id)
    if message.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only edit your own messages",
        )
    text = sanitize_text(body.message)
    if not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message cannot be empty",
        )
    message.message = text
    message.edited_at = datetime.now(UTC)
    message = await _reload(db, message)
    response = _serialize(message)
    await db.commit()
    await publish_event(
        COMMUNITY_CHANNEL, EventType.MESSAGE_UPDATED, response.model_dump(mode="json")
    )
    return response


@router.delete("/messages/{message_id}", response_model=SuccessResponse)
async def delete_message(
    message_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> SuccessResponse:
    """Soft-delete a message (author or moderator)."""
    message = await _get_live_message(db, message_id)
    if message.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot delete this message",
        )
    message.deleted_at = datetime.now(UTC)
    await db.flush()
    logger.info(f"Message {message.id} deleted by {current_user.id}")
    await db.commit()
    await publish_event(
        COMMUNITY_CHANNEL, EventType.MESSAGE_DELETED, {"id": str(message.id)}
    )
    return SuccessResponse(message="Message deleted")


@router.post("/messages/{message_id}/pin", response_model=ChatMessageResponse)
async def toggle_pin(
    message_id: UUID,
    admin: AdminUser,
    db: DbSession,
) -> ChatMessageResponse:
    """Pin or unpin a message (moderators)."""
    message = await _get_live_message(db, message_id)
    if message.pinned:
        message.pinned = False
        message.pinned_by = None
        message.pinned_at = None
    else:
        message.pinned = True
        message.pinned_by = admin.id
        message.pinned_at = datetime.now(UTC)
    message = await _reload(db, message)
    response = _serialize(message)
    await db.commit()
    await publish_event(
        COMMUNITY_CHANNEL, EventType.MESSAGE_PINNED, response.model_dump(mode="json")
    )
    return response


# =============================================================================
# Reactions
# =============================================================================


async def _reactions_for(db: AsyncSession, message_id: UUID) -> list[ReactionSummary]:
    result = await db.execute(
        select(MessageReaction)
        .where(MessageReaction.message_id == message_id)
        .order_by(MessageReaction.created_at)
    )
    return summarize_reactions(list(result.scalars().all()))


@router.get("/messages/{message_id}/reactions", response_model=list[ReactionSummary])
async def list_reactions(
    message_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[ReactionSummary]:
    await _get_live_message(db, message_id)
    return await _reactions_for(db, message_id)


@router.post("/messages/{message_id}/reactions", response_model=ReactionToggleResult)
async def toggle_reaction(
    message_id: UUID,
    body: ReactionCreate,
    current_user: ApprovedUser,
    db: DbSession,
) -> ReactionToggleResult:
    """Add the reaction, or remove it if this user already added it."""
    await _get_live_message(db, message_id)
    result = await db.execute(
        select(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == current_user.id,
            MessageReaction.reaction == body.reaction,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        await db.delete(existing)
        await db.flush()
        added = False
    else:
        try:
            async with db.begin_nested():
                db.add(
                    MessageReaction(
                        message_id=message_id,
                        user_id=current_user.id,
                        reaction=body.reaction,
                    )
                )
                await db.flush()
        except IntegrityError:
            # Concurrent duplicate toggle; the row already exists.
            pass
        added = True

    reactions = await _reactions_for(db, message_id)
    await db.commit()
    await publish_event(
        COMMUNITY_CHANNEL,
        EventType.REACTION_UPDATED,
        {
            "message_id": str(message_id),
            "reactions": [r.model_dump(mode="json") for r in reactions],
        },
    )
    return ReactionToggleResult(added=added, reactions=reactions)


# =============================================================================
# Presence
# =============================================================================


@router.get("/online", response_model=list[OnlineUser])
async def online_users(current_user: CurrentUser) -> list[OnlineUser]:
    """Users connected to the community channel on this instance."""
    return [OnlineUser(**u) for u in presence_tracker.online_users(COMMUNITY_CHANNEL)]
