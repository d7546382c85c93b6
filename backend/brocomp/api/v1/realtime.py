"""Realtime WebSocket endpoint (community presence, typing, live events)."""

import json
import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from brocomp.api.deps import authenticate_token
from brocomp.core.database import async_session_maker
from brocomp.services.presence import PresenceMeta
from brocomp.services.realtime import (
    COMMUNITY_CHANNEL,
    EventType,
    connection_manager,
    local_event,
    presence_tracker,
    user_channel,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Close codes in the 4000-4999 application range.
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403


async def _broadcast_typing() -> None:
    def build(owner: str | None):
        users = presence_tracker.typing_users(COMMUNITY_CHANNEL, exclude=owner)
        return local_event(
            COMMUNITY_CHANNEL,
            EventType.TYPING,
            {
                "users": users,
                "text": presence_tracker.typing_text(COMMUNITY_CHANNEL, exclude=owner),
            },
        )

    await connection_manager.broadcast_per_owner(COMMUNITY_CHANNEL, build)


async def _handle_frame(websocket: WebSocket, conn_id: str, key: str, raw: str) -> None:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await connection_manager.send(
            websocket,
            local_event(COMMUNITY_CHANNEL, EventType.ERROR, {"detail": "Invalid JSON"}),
        )
        return
    if not isinstance(frame, dict):
        return

    frame_type = frame.get("type")
    if frame_type == "ping":
        await connection_manager.send(websocket, local_event(COMMUNITY_CHANNEL, EventType.PONG, {}))
    elif frame_type == "typing":
        if presence_tracker.set_typing(COMMUNITY_CHANNEL, key, conn_id, bool(frame.get("typing"))):
            await _broadcast_typing()
    else:
        logger.debug(f"Ignoring unknown frame type {frame_type!r}")


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query(...)) -> None:
    """Joins ``community`` and ``user:{id}``; tracks presence on ``community``.

    Client frames: ``{"type": "typing", "typing": bool}`` and ``{"type": "ping"}``.
    """
    await websocket.accept()

    try:
        async with async_session_maker() as db:
            user, _ = await authenticate_token(token, db)
    except HTTPException as e:
        code = CLOSE_FORBIDDEN if e.status_code == status.HTTP_403_FORBIDDEN else CLOSE_UNAUTHORIZED
        await websocket.close(code=code, reason=str(e.detail))
        return

    key = str(user.id)
    conn_id = uuid.uuid4().hex
    meta = PresenceMeta(
        conn_id=conn_id,
        user_id=key,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
    )

    await connection_manager.join(COMMUNITY_CHANNEL, conn_id, websocket, owner=key)
    await connection_manager.join(user_channel(key), conn_id, websocket, owner=key)
    joined = presence_tracker.track(COMMUNITY_CHANNEL, key, meta)
    logger.info(f"WebSocket connected: user {key} ({conn_id})")

    await connection_manager.send(
        websocket,
        local_event(
            COMMUNITY_CHANNEL,
            EventType.PRESENCE_SYNC,
            {"state": presence_tracker.state(COMMUNITY_CHANNEL)},
        ),
    )
    if joined:
        await connection_manager.broadcast(
            COMMUNITY_CHANNEL,
            local_event(COMMUNITY_CHANNEL, EventType.PRESENCE_JOIN, {"key": key, "meta": meta.to_dict()}),
            exclude=conn_id,
        )

    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(websocket, conn_id, key, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await connection_manager.leave_all(conn_id)
        left = presence_tracker.untrack(COMMUNITY_CHANNEL, key, conn_id)
        logger.info(f"WebSocket disconnected: user {key} ({conn_id})")
        if left:
            await connection_manager.broadcast(
                COMMUNITY_CHANNEL,
                local_event(COMMUNITY_CHANNEL, EventType.PRESENCE_LEAVE, {"key": key}),
            )
        await _broadcast_typing()
