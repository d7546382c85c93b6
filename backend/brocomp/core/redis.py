"""Redis client for rate limiting state and realtime pub/sub."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis

from brocomp.core.config import settings

logger = logging.getLogger(__name__)

# Async Redis pool for FastAPI
async_redis_pool = aioredis.ConnectionPool.from_url(
    str(settings.redis_url),
    decode_responses=True,
)


async def close_redis_pool() -> None:
    """Close Redis connection pool on shutdown."""
    await async_redis_pool.disconnect()


# Realtime Pub/Sub
REALTIME_CHANNEL_PREFIX = "brocomp:realtime:"


def get_realtime_channel(channel: str) -> str:
    """Get Redis channel name for a realtime channel (``community``, ``user:<id>``)."""
    return f"{REALTIME_CHANNEL_PREFIX}{channel}"


def build_event(channel: str, event: str, payload: dict[str, Any]) -> str:
    return json.dumps(
        {
            "channel": channel,
            "event": event,
            "payload": payload,
            "sent_at": datetime.now(UTC).isoformat(),
        },
        default=str,
    )


async def publish_realtime_event(
    channel: str,
    event: str,
    payload: dict[str, Any],
) -> None:
    """Publish an event for every API instance's WebSocket subscribers.

    Delivery is best-effort: a Redis outage must not fail the write that
    triggered the event.
    """
    message = build_event(channel, event, payload)
    try:
        async with aioredis.Redis(connection_pool=async_redis_pool) as client:
            await client.publish(get_realtime_channel(channel), message)
        logger.debug(f"Published {event} to {channel}")
    except aioredis.RedisError as e:
        logger.warning(f"Failed to publish {event} to {channel}: {e}")


async def ping_redis() -> bool:
    """Return True when Redis answers PING."""
    try:
        async with aioredis.Redis(connection_pool=async_redis_pool) as client:
            return bool(await client.ping())
    except aioredis.RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
