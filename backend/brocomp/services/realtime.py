"""Realtime channels over WebSockets with Redis pub/sub fan-out.

Writers call ``publish_event`` which goes through Redis, so every API
instance receives it. Each instance runs one ``RealtimeListener`` that
pattern-subscribes to ``brocomp:realtime:*`` and hands messages to the local
``ConnectionManager``, which owns the accepted sockets.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import redis.asyncio as aioredis
from fastapi import WebSocket

from brocomp.core.redis import (
    REALTIME_CHANNEL_PREFIX,
    async_redis_pool,
    build_event,
    publish_realtime_event,
)
from brocomp.services.presence import PresenceTracker

logger = logging.getLogger(__name__)

COMMUNITY_CHANNEL = "community"


class EventType(str, Enum):
    """Realtime event names."""

    # Presence
    PRESENCE_SYNC = "presence_sync"
    PRESENCE_JOIN = "presence_join"
    PRESENCE_LEAVE = "presence_leave"
    TYPING = "typing"

    # Community chat
    MESSAGE_CREATED = "message_created"
    MESSAGE_UPDATED = "message_updated"
    MESSAGE_DELETED = "message_deleted"
    MESSAGE_PINNED = "message_pinned"
    REACTION_UPDATED = "reaction_updated"

    # Per-user
    COMPLAINT_STATUS_CHANGED = "complaint_status_changed"
    COMPLAINT_RESPONSE = "complaint_response"
    NOTIFICATION = "notification"
    SESSION_REVOKED = "session_revoked"

    # System
    PONG = "pong"
    ERROR = "error"


def user_channel(user_id: Any) -> str:
    return f"user:{user_id}"


def local_event(channel: str, event: EventType | str, payload: dict[str, Any]) -> dict[str, Any]:
    """Event envelope identical to what arrives through Redis."""
    name = event.value if isinstance(event, EventType) else event
    return json.loads(build_event(channel, name, payload))


class ConnectionManager:
    """Accepted WebSockets grouped by channel."""

    def __init__(self) -> None:
        # channel -> conn_id -> socket
        self._channels: dict[str, dict[str, WebSocket]] = {}
        # conn_id -> presence key (user id)
        self._owners: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def join(
        self,
        channel: str,
        conn_id: str,
        websocket: WebSocket,
        owner: str | None = None,
    ) -> None:
        async with self._lock:
            self._channels.setdefault(channel, {})[conn_id] = websocket
            if owner is not None:
                self._owners[conn_id] = owner

    async def leave(self, channel: str, conn_id: str) -> None:
        async with self._lock:
            sockets = self._channels.get(channel)
            if sockets is None:
                return
            sockets.pop(conn_id, None)
            if not sockets:
                del self._channels[channel]

    async def leave_all(self, conn_id: str) -> None:
        async with self._lock:
            self._owners.pop(conn_id, None)
            for channel in list(self._channels):
                self._channels[channel].pop(conn_id, None)
                if not self._channels[channel]:
                    del self._channels[channel]

    def connection_count(self, channel: str) -> int:
        return len(self._channels.get(channel, {}))

    async def send(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except (RuntimeError, ConnectionError) as e:
            logger.debug(f"WebSocket send failed: {e}")
            return False

    async def broadcast(
        self,
        channel: str,
        message: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        """Send to every local socket on channel. Returns the delivered count."""
        async with self._lock:
            targets = [
                (conn_id, ws)
                for conn_id, ws in self._channels.get(channel, {}).items()
                if conn_id != exclude
            ]

        delivered = 0
        stale = []
        for conn_id, ws in targets:
            if await self.send(ws, message):
                delivered += 1
            else:
                stale.append(conn_id)
        for conn_id in stale:
            await self.leave(channel, conn_id)
        return delivered

    async def broadcast_per_owner(
        self,
        channel: str,
        build: Callable[[str | None], dict[str, Any] | None],
    ) -> int:
        """Send a message built for each socket's owner; ``None`` skips it."""
        async with self._lock:
            targets = [
                (ws, self._owners.get(conn_id))
                for conn_id, ws in self._channels.get(channel, {}).items()
            ]

        delivered = 0
        for ws, owner in targets:
            message = build(owner)
            if message is not None and await self.send(ws, message):
                delivered += 1
        return delivered


class RealtimeListener:
    """Background task relaying Redis pub/sub messages to local sockets."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._task: asyncio.Task | None = None

    async def dispatch(self, redis_channel: str, data: str) -> None:
        channel = redis_channel.removeprefix(REALTIME_CHANNEL_PREFIX)
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Dropping malformed realtime message on {redis_channel}")
            return
        await self._manager.broadcast(channel, message)

    async def _run(self) -> None:
        client = aioredis.Redis(connection_pool=async_redis_pool)
        pubsub = client.pubsub()
        try:
            await pubsub.psubscribe(f"{REALTIME_CHANNEL_PREFIX}*")
            logger.info("Realtime listener subscribed")
            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "pmessage":
                    channel = message["channel"]
                    data = message["data"]
                    if isinstance(channel, bytes):
                        channel = channel.decode("utf-8")
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    await self.dispatch(channel, data)
        finally:
            await pubsub.aclose()
            await client.aclose()

    async def _run_forever(self) -> None:
        while True:
            try:
                await self._run()
            except asyncio.CancelledError:
                raise
            except aioredis.RedisError as e:
                logger.warning(f"Realtime listener lost Redis: {e}; retrying in 5s")
                await asyncio.sleep(5)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


async def publish_event(channel: str, event: EventType | str, payload: dict[str, Any]) -> None:
    name = event.value if isinstance(event, EventType) else event
    await publish_realtime_event(channel, name, payload)


# Process-wide instances used by the WebSocket route and lifespan.
connection_manager = ConnectionManager()
presence_tracker = PresenceTracker()
realtime_listener = RealtimeListener(connection_manager)
