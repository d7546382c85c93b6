"""Tests for per-action rate limiting with lockout windows.

Covers the pure ``evaluate`` decision, ``RateLimiter`` over the in-memory
store, the Redis store's WATCH/MULTI updates, login backoff, and the
FastAPI ``enforce_rate_limit`` helper.
"""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException, status
from hypothesis import given, settings
from hypothesis import strategies as st
from redis.exceptions import WatchError

from brocomp.core.rate_limit import (
    MAX_BACKOFF_MULTIPLIER,
    RATE_LIMITS,
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitRule,
    RateLimitState,
    RedisRateLimitStore,
    effective_window,
    enforce_rate_limit,
    evaluate,
    get_client_key,
)


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRateLimitStore()


@pytest.fixture
def limiter(store, clock):
    return RateLimiter(store, clock=clock)


def _request(host: str = "10.0.0.1", headers: dict | None = None):
    request = MagicMock()
    request.headers = headers or {}
    request.client.host = host
    return request


# =============================================================================
# Rule table
# =============================================================================


class TestRateLimitRules:
    """The configured rules per action."""

    @pytest.mark.parametrize(
        "action,max_attempts,window_seconds",
        [
            ("login", 5, 15 * 60),
            ("admin_login", 5, 15 * 60),
            ("register", 3, 60 * 60),
            ("complaint", 5, 60 * 60),
            ("feedback", 3, 60 * 60),
            ("chat", 60, 60),
            ("file_upload", 10, 60 * 60),
        ],
    )
    def test_rule_values(self, action, max_attempts, window_seconds):
        rule = RATE_LIMITS[action]
        assert rule.max_attempts == max_attempts
        assert rule.window_seconds == window_seconds

    def test_only_login_rules_back_off(self):
        backoff_actions = {action for action, rule in RATE_LIMITS.items() if rule.backoff}
        assert backoff_actions == {"login", "admin_login"}

    def test_unknown_action_raises(self, limiter):
        with pytest.raises(ValueError, match="Unknown rate limit action"):
            limiter.rule("teleport")

    def test_storage_key_format(self):
        assert RateLimiter.storage_key("login", "ip:1.2.3.4") == "rate_limit_login:ip:1.2.3.4"


# =============================================================================
# evaluate()
# =============================================================================


class TestEvaluate:
    """The pure decision function."""

    RULE = RateLimitRule(max_attempts=3, window_seconds=600)

    def test_no_state_is_allowed(self):
        result, new_state = evaluate(None, self.RULE, now=1000.0)
        assert result.allowed
        assert new_state is None

    def test_under_limit_is_allowed_and_state_kept(self):
        state = RateLimitState(count=2, timestamp=1000.0)
        result, new_state = evaluate(state, self.RULE, now=1100.0)
        assert result.allowed
        assert new_state is state

    def test_at_limit_is_denied_with_remaining_minutes(self):
        state = RateLimitState(count=3, timestamp=1000.0)
        result, _ = evaluate(state, self.RULE, now=1000.0 + 61)
        assert not result.allowed
        # 539 seconds left -> ceil(539 / 60) = 9
        assert result.remaining_minutes == 9
        assert result.retry_after_seconds == 539

    def test_elapsed_window_clears_state(self):
        state = RateLimitState(count=3, timestamp=1000.0)
        result, new_state = evaluate(state, self.RULE, now=1000.0 + 601)
        assert result.allowed
        assert new_state is None

    def test_remaining_minutes_never_below_one(self):
        state = RateLimitState(count=3, timestamp=1000.0)
        result, _ = evaluate(state, self.RULE, now=1000.0 + 599.5)
        assert result.remaining_minutes == 1
        assert result.retry_after_seconds == 1

    @given(
        count=st.integers(min_value=0, max_value=20),
        elapsed=st.floats(min_value=0, max_value=600, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_denied_iff_count_reaches_max_inside_window(self, count, elapsed):
        """Inside the window the decision depends only on the count."""
        state = RateLimitState(count=count, timestamp=0.0)
        result, _ = evaluate(state, self.RULE, now=elapsed)
        assert result.allowed == (count < self.RULE.max_attempts)

    @given(
        count=st.integers(min_value=0, max_value=20),
        elapsed=st.floats(min_value=600.001, max_value=10_000, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_always_allowed_after_window(self, count, elapsed):
        state = RateLimitState(count=count, timestamp=0.0)
        result, _ = evaluate(state, self.RULE, now=elapsed)
        assert result.allowed


class TestBackoff:
    """Window doubling for rules flagged ``backoff``."""

    RULE = RateLimitRule(max_attempts=5, window_seconds=900, backoff=True)

    @pytest.mark.parametrize(
        "lockouts,expected",
        [(0, 900), (1, 1800), (2, 3600), (3, 7200), (4, 7200), (10, 7200)],
    )
    def test_effective_window(self, lockouts, expected):
        assert effective_window(self.RULE, lockouts) == expected

    @given(lockouts=st.integers(min_value=0, max_value=50))
    def test_window_capped(self, lockouts):
        window = effective_window(self.RULE, lockouts)
        assert self.RULE.window_seconds <= window <= self.RULE.window_seconds * MAX_BACKOFF_MULTIPLIER

    def test_non_backoff_rule_ignores_lockouts(self):
        rule = RateLimitRule(max_attempts=3, window_seconds=600)
        assert effective_window(rule, 5) == 600

    def test_expired_lockout_increments_lockout_count(self):
        state = RateLimitState(count=5, timestamp=0.0)
        result, new_state = evaluate(state, self.RULE, now=901.0)
        assert result.allowed
        assert new_state is not None
        assert new_state.count == 0
        assert new_state.lockouts == 1
        assert new_state.timestamp == 901.0

    def test_expired_window_without_lockout_keeps_history(self):
        state = RateLimitState(count=2, timestamp=0.0, lockouts=2)
        _, new_state = evaluate(state, self.RULE, now=3601.0)
        assert new_state is not None
        assert new_state.lockouts == 2
        assert new_state.count == 0


# =============================================================================
# RateLimiter
# =============================================================================


class TestRateLimiter:
    """check / increment / reset over the in-memory store."""

    @pytest.mark.asyncio
    async def test_lockout_after_max_attempts(self, limiter):
        for _ in range(5):
            assert (await limiter.check("complaint", "user:1")).allowed
            await limiter.increment("complaint", "user:1")

        result = await limiter.check("complaint", "user:1")
        assert not result.allowed
        assert result.remaining_minutes == 60

    @pytest.mark.asyncio
    async def test_subjects_are_independent(self, limiter):
        for _ in range(3):
            await limiter.increment("register", "ip:1.1.1.1")
        assert not (await limiter.check("register", "ip:1.1.1.1")).allowed
        assert (await limiter.check("register", "ip:2.2.2.2")).allowed

    @pytest.mark.asyncio
    async def test_actions_are_independent(self, limiter):
        for _ in range(3):
            await limiter.increment("feedback", "user:1")
        assert not (await limiter.check("feedback", "user:1")).allowed
        assert (await limiter.check("complaint", "user:1")).allowed

    @pytest.mark.asyncio
    async def test_window_expiry_unlocks(self, limiter, clock, store):
        for _ in range(3):
            await limiter.increment("feedback", "user:1")
        clock.advance(60 * 60 + 1)

        assert (await limiter.check("feedback", "user:1")).allowed
        assert await store.get("rate_limit_feedback:user:1") is None

    @pytest.mark.asyncio
    async def test_window_starts_at_first_attempt(self, limiter, clock):
        await limiter.increment("register", "ip:x")
        clock.advance(50 * 60)
        await limiter.increment("register", "ip:x")
        await limiter.increment("register", "ip:x")
        assert not (await limiter.check("register", "ip:x")).allowed

        clock.advance(10 * 60 + 1)
        assert (await limiter.check("register", "ip:x")).allowed

    @pytest.mark.asyncio
    async def test_reset_clears_state(self, limiter):
        for _ in range(5):
            await limiter.increment("login", "ip:1")
        await limiter.reset("login", "ip:1")
        assert (await limiter.check("login", "ip:1")).allowed

    @pytest.mark.asyncio
    async def test_hit_records_only_allowed_attempts(self, limiter, store):
        for _ in range(7):
            await limiter.hit("complaint", "user:1")
        state = RateLimitState.loads(await store.get("rate_limit_complaint:user:1"))
        assert state.count == 5

    @pytest.mark.asyncio
    async def test_stored_state_shape(self, limiter, store, clock):
        await limiter.increment("chat", "user:9")
        data = json.loads(await store.get("rate_limit_chat:user:9"))
        assert data == {"count": 1, "timestamp": clock.now, "lockouts": 0}

    @pytest.mark.asyncio
    async def test_corrupt_state_is_discarded(self, limiter, store):
        await store.set("rate_limit_chat:user:1", "not json", 60)
        assert (await limiter.check("chat", "user:1")).allowed
        assert await store.get("rate_limit_chat:user:1") is None

    @pytest.mark.asyncio
    async def test_login_backoff_doubles_second_lockout(self, limiter, clock):
        for _ in range(5):
            await limiter.increment("login", "ip:1")
        assert not (await limiter.check("login", "ip:1")).allowed

        # First lockout runs out after 15 minutes.
        clock.advance(15 * 60 + 1)
        assert (await limiter.check("login", "ip:1")).allowed

        for _ in range(5):
            await limiter.increment("login", "ip:1")
        result = await limiter.check("login", "ip:1")
        assert not result.allowed
        assert result.remaining_minutes == 30

    @given(attempts=st.integers(min_value=0, max_value=15))
    @settings(max_examples=30, deadline=None)
    def test_allowed_until_max_attempts(self, attempts):
        """Property: after N increments the check allows iff N < max."""

        async def run():
            limiter = RateLimiter(InMemoryRateLimitStore(), clock=FakeClock())
            for _ in range(attempts):
                await limiter.increment("file_upload", "user:p")
            return await limiter.check("file_upload", "user:p")

        result = asyncio.run(run())
        assert result.allowed == (attempts < RATE_LIMITS["file_upload"].max_attempts)


# =============================================================================
# Redis store
# =============================================================================


class FakePipeline:
    """Transactional pipeline over a dict.

    Each entry of ``concurrent_writes`` lands right after one GET, the way
    another API instance could write between our WATCH and EXEC.
    """

    def __init__(self, data: dict, concurrent_writes: list[str] | None = None):
        self.data = data
        self.concurrent_writes = list(concurrent_writes or [])
        self.watched: str | None = None
        self.seen: str | None = None
        self.queued: list[tuple] = []
        self.executions = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def watch(self, key):
        self.watched = key

    async def unwatch(self):
        self.watched = None

    async def get(self, key):
        self.seen = self.data.get(key)
        if self.concurrent_writes:
            self.data[key] = self.concurrent_writes.pop(0)
        return self.seen

    def multi(self):
        self.queued = []

    def setex(self, key, ttl, value):
        self.queued.append(("setex", key, ttl, value))

    def delete(self, key):
        self.queued.append(("delete", key))

    async def execute(self):
        self.executions += 1
        if self.data.get(self.watched) != self.seen:
            raise WatchError("Watched variable changed.")
        for op in self.queued:
            if op[0] == "setex":
                self.data[op[1]] = op[3]
            else:
                self.data.pop(op[1], None)
        return [True] * len(self.queued)


def _redis_limiter(pipe: FakePipeline, clock) -> RateLimiter:
    client = MagicMock()
    client.pipeline.return_value = pipe
    return RateLimiter(RedisRateLimitStore(client), clock=clock)


class TestRedisRateLimitStore:
    KEY = "rate_limit_complaint:user:1"

    @pytest.mark.asyncio
    async def test_hit_writes_counted_state_with_ttl(self, clock):
        data: dict = {}
        pipe = FakePipeline(data)

        result = await _redis_limiter(pipe, clock).hit("complaint", "user:1")

        assert result.allowed
        assert RateLimitState.loads(data[self.KEY]).count == 1
        assert pipe.queued[0][2] == 60 * 60 + 60

    @pytest.mark.asyncio
    async def test_hit_retries_when_another_instance_counts_first(self, clock):
        # Four attempts stored; a parallel request records the fifth mid-transaction.
        data = {self.KEY: RateLimitState(count=4, timestamp=clock.now).dumps()}
        fifth = RateLimitState(count=5, timestamp=clock.now).dumps()
        pipe = FakePipeline(data, concurrent_writes=[fifth])

        result = await _redis_limiter(pipe, clock).hit("complaint", "user:1")

        assert not result.allowed
        assert pipe.executions == 1
        assert RateLimitState.loads(data[self.KEY]).count == 5

    @pytest.mark.asyncio
    async def test_denied_hit_leaves_key_untouched(self, clock):
        locked = RateLimitState(count=5, timestamp=clock.now).dumps()
        data = {self.KEY: locked}
        pipe = FakePipeline(data)

        result = await _redis_limiter(pipe, clock).hit("complaint", "user:1")

        assert not result.allowed
        assert pipe.executions == 0
        assert data[self.KEY] == locked

    @pytest.mark.asyncio
    async def test_expired_window_is_deleted(self, clock):
        data = {self.KEY: RateLimitState(count=5, timestamp=clock.now).dumps()}
        clock.advance(60 * 60 + 1)

        result = await _redis_limiter(FakePipeline(data), clock).check("complaint", "user:1")

        assert result.allowed
        assert self.KEY not in data


# =============================================================================
# FastAPI helper
# =============================================================================


class TestClientKey:
    def test_user_id_preferred(self):
        assert get_client_key(_request(), "abc") == "user:abc"

    def test_falls_back_to_ip(self):
        assert get_client_key(_request(host="9.9.9.9"), None) == "ip:9.9.9.9"

    def test_uses_first_forwarded_address(self):
        request = _request(headers={"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
        assert get_client_key(request, None) == "ip:1.2.3.4"


class TestEnforceRateLimit:
    @pytest.mark.asyncio
    async def test_raises_429_with_retry_after(self, limiter):
        with patch("brocomp.core.rate_limit.get_rate_limiter", return_value=limiter), patch(
            "brocomp.core.rate_limit.settings"
        ) as mock_settings:
            mock_settings.rate_limit_enabled = True
            for _ in range(3):
                await enforce_rate_limit(_request(), action="feedback", user_id="u1")

            with pytest.raises(HTTPException) as exc_info:
                await enforce_rate_limit(_request(), action="feedback", user_id="u1")

        assert exc_info.value.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert "Please wait 60 minutes" in exc_info.value.detail
        assert exc_info.value.headers["Retry-After"] == "3600"

    @pytest.mark.asyncio
    async def test_record_false_only_checks(self, limiter, store):
        with patch("brocomp.core.rate_limit.get_rate_limiter", return_value=limiter), patch(
            "brocomp.core.rate_limit.settings"
        ) as mock_settings:
            mock_settings.rate_limit_enabled = True
            subject = await enforce_rate_limit(
                _request(host="5.5.5.5"), action="login", user_id=None, record=False
            )

        assert subject == "ip:5.5.5.5"
        assert await store.get("rate_limit_login:ip:5.5.5.5") is None

    @pytest.mark.asyncio
    async def test_disabled_never_raises(self, limiter):
        with patch("brocomp.core.rate_limit.get_rate_limiter", return_value=limiter), patch(
            "brocomp.core.rate_limit.settings"
        ) as mock_settings:
            mock_settings.rate_limit_enabled = False
            for _ in range(10):
                await enforce_rate_limit(_request(), action="feedback", user_id="u1")
