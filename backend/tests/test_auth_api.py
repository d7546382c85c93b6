"""Login flows: failure counting, lockout auditing and role gates.

The limiter runs over the in-memory store; password hashing, token issuance
and audit rows are stubbed so each test sees only the login rules.
"""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException, status
from starlette.requests import Request

from brocomp.api.v1.auth import _login
from brocomp.api.v1.users import change_role
from brocomp.core.config import settings
from brocomp.core.rate_limit import InMemoryRateLimitStore, RateLimiter, RateLimitState
from brocomp.models import User
from brocomp.schemas.auth import LoginRequest
from brocomp.schemas.user import UserRoleUpdate

EMAIL = "sam@brocomp.dev"
SUBJECT = "ip:10.0.0.7"


def _user(role: str = "student") -> User:
    return User(
        id=uuid.uuid4(),
        email=EMAIL,
        hashed_password="hashed",
        full_name="Sam Lee",
        role=role,
        admin_approved=True,
        email_verified=True,
        created_at=datetime.now(UTC),
    )


def _request() -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/v1/auth/login",
            "headers": [(b"user-agent", b"pytest")],
            "client": ("10.0.0.7", 5000),
        }
    )


def _mock_db(user: User | None) -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    db.execute.return_value = result
    return db


class LoginHarness:
    def __init__(
        self,
        store: InMemoryRateLimitStore,
        audit: AsyncMock,
        issue: AsyncMock,
        verify: MagicMock,
    ):
        self.store = store
        self.audit = audit
        self.issue = issue
        self.verify = verify

    async def failures(self, action: str = "login") -> int | None:
        raw = await self.store.get(RateLimiter.storage_key(action, SUBJECT))
        return RateLimitState.loads(raw).count if raw is not None else None

    @property
    def audited(self) -> list[str]:
        return [c.args[1] for c in self.audit.await_args_list]

    async def attempt(self, db, action: str = "login", password: str = "secret"):
        return await _login(LoginRequest(email=EMAIL, password=password), _request(), db, action)

    async def fail(self, db, action: str = "login") -> HTTPException:
        with pytest.raises(HTTPException) as exc_info:
            await self.attempt(db, action)
        return exc_info.value


@pytest.fixture
def harness():
    store = InMemoryRateLimitStore()
    limiter = RateLimiter(store)
    audit = AsyncMock()
    issue = AsyncMock(return_value="tokens")
    verify = MagicMock(return_value=False)
    with patch.object(settings, "rate_limit_enabled", True), patch(
        "brocomp.api.v1.auth.get_rate_limiter", return_value=limiter
    ), patch("brocomp.core.rate_limit.get_rate_limiter", return_value=limiter), patch(
        "brocomp.api.v1.auth.record_audit", audit
    ), patch("brocomp.api.v1.auth._issue_tokens", issue), patch(
        "brocomp.api.v1.auth.verify_password", verify
    ):
        yield LoginHarness(store, audit, issue, verify)


class TestLoginFailures:
    @pytest.mark.asyncio
    async def test_wrong_password_counted_and_audited(self, harness):
        db = _mock_db(_user())

        error = await harness.fail(db)

        assert error.status_code == status.HTTP_401_UNAUTHORIZED
        assert error.detail == "Invalid email or password"
        assert await harness.failures() == 1
        assert harness.audited == ["login_failed"]
        db.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_unknown_email_gives_same_error(self, harness):
        error = await harness.fail(_mock_db(None))

        assert error.status_code == status.HTTP_401_UNAUTHORIZED
        assert error.detail == "Invalid email or password"
        assert harness.audited == ["login_failed"]

    @pytest.mark.asyncio
    async def test_fifth_failure_audits_lockout(self, harness):
        db = _mock_db(_user())

        for _ in range(5):
            await harness.fail(db)

        assert harness.audited.count("login_failed") == 5
        assert harness.audited.count("account_lockout") == 1
        assert harness.audited[-1] == "account_lockout"

    @pytest.mark.asyncio
    async def test_locked_out_login_never_reaches_database(self, harness):
        db = _mock_db(_user())
        for _ in range(5):
            await harness.fail(db)
        lookups = db.execute.await_count

        error = await harness.fail(db)

        assert error.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert db.execute.await_count == lookups

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, harness):
        db = _mock_db(_user())
        for _ in range(3):
            await harness.fail(db)

        harness.verify.return_value = True
        assert await harness.attempt(db) == "tokens"

        assert await harness.failures() is None


class TestAdminLogin:
    @pytest.mark.asyncio
    async def test_student_credentials_rejected(self, harness):
        harness.verify.return_value = True

        error = await harness.fail(_mock_db(_user("student")), action="admin_login")

        assert error.status_code == status.HTTP_403_FORBIDDEN
        assert harness.audited == ["admin_login_failed"]
        harness.issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_credentials_accepted(self, harness):
        harness.verify.return_value = True

        assert await harness.attempt(_mock_db(_user("admin")), action="admin_login") == "tokens"

    @pytest.mark.asyncio
    async def test_lockout_alert_queued_after_commit(self, harness):
        db = _mock_db(_user("admin"))
        events: list = []
        db.commit.side_effect = lambda: events.append("commit")

        with patch("brocomp.workers.notifications.send_security_alert") as alert:
            alert.delay.side_effect = lambda **kwargs: events.append(kwargs["alert_type"])
            for _ in range(5):
                await harness.fail(db, action="admin_login")

        assert events[-2:] == ["commit", "admin_login_lockout"]
        alert.delay.assert_called_once()

    @pytest.mark.asyncio
    async def test_alert_queue_outage_keeps_login_response(self, harness):
        db = _mock_db(_user("admin"))

        with patch("brocomp.workers.notifications.send_security_alert") as alert:
            alert.delay.side_effect = ConnectionError("broker unreachable")
            for _ in range(4):
                await harness.fail(db, action="admin_login")
            error = await harness.fail(db, action="admin_login")

        assert error.status_code == status.HTTP_401_UNAUTHORIZED


class TestChangeRole:
    @pytest.mark.asyncio
    async def test_super_admin_cannot_change_own_role(self):
        admin = _user("super_admin")
        db = _mock_db(admin)

        with pytest.raises(HTTPException) as exc_info:
            await change_role(
                admin.id, UserRoleUpdate(role="student"), _request(), admin=admin, db=db
            )

        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
        assert admin.role == "super_admin"
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_role_change_is_audited(self):
        admin = _user("super_admin")
        target = _user("student")
        db = _mock_db(target)

        with patch("brocomp.api.v1.users.record_audit", AsyncMock()) as audit:
            await change_role(target.id, UserRoleUpdate(role="admin"), _request(), admin=admin, db=db)

        assert target.role == "admin"
        assert audit.await_args.args[1] == "role_change"
        assert audit.await_args.kwargs["metadata"] == {"from": "student", "to": "admin"}
