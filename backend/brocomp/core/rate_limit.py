"""Per-action rate limiting with lockout windows.

Each action (login, complaint submission, chat message, ...) has a rule: a
maximum number of attempts inside a window that starts at the first attempt.
Once the count reaches the maximum the subject is locked out until the window
ends. Rules flagged ``backoff`` double their window after every lockout that
runs to completion, up to ``MAX_BACKOFF_MULTIPLIER``.

State is a small JSON document kept in a ``RateLimitStore``:

- ``InMemoryRateLimitStore``: per-process memory (dev, tests, single worker).
- ``RedisRateLimitStore``: shared across API instances, TTL = window. Every
  read-modify-write runs as one WATCH/MULTI transaction.
- ``brocomp.client.offline_storage.LocalStorageRateLimitStore``: client side.

Notes:
- Keys should be stable and privacy-safe (user id preferred; fallback to IP).
"""

from __future__ import annotations

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from typing import TypeVar

import redis.asyncio as aioredis
from fastapi import HTTPException, Request, status
from redis.exceptions import WatchError

from brocomp.core.config import settings

logger = logging.getLogger(__name__)

MAX_BACKOFF_MULTIPLIER = 8

T = TypeVar("T")
# (value to store or None to delete, ttl seconds, result for the caller)
Update = tuple[str | None, int, T]


@dataclass(frozen=True)
class RateLimitRule:
    max_attempts: int
    window_seconds: int
    backoff: bool = False


RATE_LIMITS: dict[str, RateLimitRule] = {
    "login": RateLimitRule(max_attempts=5, window_seconds=15 * 60, backoff=True),
    "admin_login": RateLimitRule(max_attempts=5, window_seconds=15 * 60, backoff=True),
    "register": RateLimitRule(max_attempts=3, window_seconds=60 * 60),
    "complaint": RateLimitRule(max_attempts=5, window_seconds=60 * 60),
    "feedback": RateLimitRule(max_attempts=3, window_seconds=60 * 60),
    "chat": RateLimitRule(max_attempts=60, window_seconds=60),
    "file_upload": RateLimitRule(max_attempts=10, window_seconds=60 * 60),
}


@dataclass
class RateLimitState:
    """Counter/timestamp pair; ``timestamp`` is the first attempt in the window."""

    count: int
    timestamp: float
    lockouts: int = 0

    def dumps(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def loads(cls, raw: str) -> "RateLimitState":
        data = json.loads(raw)
        return cls(
            count=int(data.get("count", 0)),
            timestamp=float(data.get("timestamp", 0.0)),
            lockouts=int(data.get("lockouts", 0)),
        )


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining_minutes: int | None = None
    retry_after_seconds: int | None = None


def effective_window(rule: RateLimitRule, lockouts: int) -> float:
    """Window length in seconds after ``lockouts`` completed lockouts."""
    if not rule.backoff or lockouts <= 0:
        return float(rule.window_seconds)
    multiplier = min(2 ** lockouts, MAX_BACKOFF_MULTIPLIER)
    return float(rule.window_seconds * multiplier)


def evaluate(
    state: RateLimitState | None,
    rule: RateLimitRule,
    now: float,
) -> tuple[RateLimitResult, RateLimitState | None]:
    """Decide whether an attempt is allowed.

    Returns the decision and the state that should be stored afterwards
    (``None`` means "delete").
    """
    if state is None:
        return RateLimitResult(allowed=True), None

    window = effective_window(rule, state.lockouts)
    elapsed = now - state.timestamp

    if elapsed > window:
        if rule.backoff and state.count >= rule.max_attempts:
            # Keep the lockout history so the next window is longer.
            return RateLimitResult(allowed=True), RateLimitState(
                count=0, timestamp=now, lockouts=state.lockouts + 1
            )
        if rule.backoff and state.lockouts:
            return RateLimitResult(allowed=True), RateLimitState(
                count=0, timestamp=now, lockouts=state.lockouts
            )
        return RateLimitResult(allowed=True), None

    if state.count >= rule.max_attempts:
        remaining = window - elapsed
        return (
            RateLimitResult(
                allowed=False,
                remaining_minutes=max(1, math.ceil(remaining / 60)),
                retry_after_seconds=max(1, math.ceil(remaining)),
            ),
            state,
        )

    return RateLimitResult(allowed=True), state


class RateLimitStore(ABC):
    """Key/value persistence for rate limit state."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    async def update(self, key: str, apply: Callable[[str | None], Update[T]]) -> T:
        """Read, transform and write ``key`` as one step.

        ``apply`` maps the stored value to ``(value, ttl_seconds, result)``.
        A ``None`` value deletes the key and an unchanged value is not written.
        Stores shared between processes override this with an atomic version.
        """
        raw = await self.get(key)
        value, ttl_seconds, result = apply(raw)
        if value != raw:
            if value is None:
                await self.delete(key)
            else:
                await self.set(key, value, ttl_seconds)
        return result


class InMemoryRateLimitStore(RateLimitStore):
    """Per-process store. In multi-instance deployments use Redis."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisRateLimitStore(RateLimitStore):
    """Redis-backed store shared by every API instance."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        return str(value) if value is not None else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.setex(key, ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def update(self, key: str, apply: Callable[[str | None], Update[T]]) -> T:
        """WATCH/MULTI transaction; retried when another instance wrote ``key`` first."""
        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    current = await pipe.get(key)
                    raw = str(current) if current is not None else None
                    value, ttl_seconds, result = apply(raw)
                    if value == raw:
                        await pipe.unwatch()
                        return result
                    pipe.multi()
                    if value is None:
                        pipe.delete(key)
                    else:
                        pipe.setex(key, ttl_seconds, value)
                    await pipe.execute()
                    return result
                except WatchError:
                    logger.debug(f"Rate limit key {key} changed during update, retrying")
                    continue


class RateLimiter:
    """Check / increment / reset attempts per (action, subject)."""

    def __init__(
        self,
        store: RateLimitStore,
        rules: dict[str, RateLimitRule] | None = None,
        clock=time.time,
    ) -> None:
        self._store = store
        self._rules = rules if rules is not None else RATE_LIMITS
        self._clock = clock

    def rule(self, action: str) -> RateLimitRule:
        try:
            return self._rules[action]
        except KeyError:
            raise ValueError(f"Unknown rate limit action: {action}") from None

    @staticmethod
    def storage_key(action: str, subject: str) -> str:
        return f"rate_limit_{action}:{subject}"

    def _ttl(self, rule: RateLimitRule, state: RateLimitState) -> int:
        # Outlive the next (possibly doubled) window so backoff survives expiry.
        return int(effective_window(rule, state.lockouts + 1)) + 60

    @staticmethod
    def _parse(raw: str | None) -> RateLimitState | None:
        """Stored state, or None when missing or corrupt."""
        if raw is None:
            return None
        try:
            return RateLimitState.loads(raw)
        except (ValueError, TypeError):
            return None

    def _store_value(
        self,
        rule: RateLimitRule,
        raw: str | None,
        state: RateLimitState | None,
        new_state: RateLimitState | None,
    ) -> tuple[str | None, int]:
        if new_state is None:
            return None, 0
        if new_state is state:
            return raw, 0
        return new_state.dumps(), self._ttl(rule, new_state)

    async def check(self, action: str, subject: str) -> RateLimitResult:
        rule = self.rule(action)
        now = self._clock()

        def apply(raw: str | None) -> Update[RateLimitResult]:
            state = self._parse(raw)
            result, new_state = evaluate(state, rule, now)
            return (*self._store_value(rule, raw, state, new_state), result)

        return await self._store.update(self.storage_key(action, subject), apply)

    async def increment(self, action: str, subject: str) -> RateLimitState:
        rule = self.rule(action)
        now = self._clock()

        def apply(raw: str | None) -> Update[RateLimitState]:
            state = self._parse(raw) or RateLimitState(count=0, timestamp=now)
            counted = replace(state, count=state.count + 1)
            return counted.dumps(), self._ttl(rule, counted), counted

        return await self._store.update(self.storage_key(action, subject), apply)

    async def hit(self, action: str, subject: str) -> RateLimitResult:
        """Check and, when allowed, record one attempt in a single store update."""
        rule = self.rule(action)
        now = self._clock()

        def apply(raw: str | None) -> Update[RateLimitResult]:
            state = self._parse(raw)
            result, new_state = evaluate(state, rule, now)
            if not result.allowed:
                return (*self._store_value(rule, raw, state, new_state), result)
            base = new_state or RateLimitState(count=0, timestamp=now)
            counted = replace(base, count=base.count + 1)
            return counted.dumps(), self._ttl(rule, counted), result

        return await self._store.update(self.storage_key(action, subject), apply)

    async def reset(self, action: str, subject: str) -> None:
        await self._store.delete(self.storage_key(action, subject))


_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter for the configured backend."""
    global _limiter
    if _limiter is None:
        if settings.rate_limit_backend == "redis":
            from brocomp.core.redis import async_redis_pool

            store: RateLimitStore = RedisRateLimitStore(
                aioredis.Redis(connection_pool=async_redis_pool)
            )
        else:
            store = InMemoryRateLimitStore()
        _limiter = RateLimiter(store)
    return _limiter


def get_client_key(request: Request, user_id: str | None) -> str:
    if user_id:
        return f"user:{user_id}"
    # Best-effort IP extraction (works behind proxies if X-Forwarded-For is set)
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


def rate_limit_exceeded(result: RateLimitResult, action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=(
            f"Too many {action.replace('_', ' ')} attempts. "
            f"Please wait {result.remaining_minutes} minutes."
        ),
        headers={"Retry-After": str(result.retry_after_seconds or 60)},
    )


async def enforce_rate_limit(
    request: Request,
    *,
    action: str,
    user_id: str | None,
    record: bool = True,
) -> str:
    """Enforce the rule for ``action``.

    With ``record=True`` the attempt is counted immediately. Login flows pass
    ``record=False`` and count only failures themselves.

    Returns:
        The subject key used, so callers can increment/reset later.

    Raises:
        HTTPException(429) when locked out.
    """
    subject = get_client_key(request, user_id)
    if not settings.rate_limit_enabled:
        return subject

    limiter = get_rate_limiter()
    if record:
        result = await limiter.hit(action, subject)
    else:
        result = await limiter.check(action, subject)
    if not result.allowed:
        raise rate_limit_exceeded(result, action)
    return subject
