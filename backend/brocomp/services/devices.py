"""Device session tracking.

A session is identified by (user, user agent) while unrevoked; the client
heartbeats every few minutes to refresh ``last_active``.
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.models.device_session import DeviceSession

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 5 * 60

_MOBILE_RE = re.compile(r"mobile", re.IGNORECASE)

# Order matters: Edge UAs contain "Chrome", Chrome UAs contain "Safari".
_BROWSERS = (
    ("Firefox", "Firefox"),
    ("Edg", "Edge"),
    ("Chrome", "Chrome"),
    ("Safari", "Safari"),
)

_PLATFORMS = (
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Android", "Android"),
    ("Windows", "Windows"),
    ("Macintosh", "macOS"),
    ("Mac OS X", "macOS"),
    ("CrOS", "ChromeOS"),
    ("Linux", "Linux"),
)


@dataclass(frozen=True)
class DeviceInfo:
    device_name: str
    device_type: str
    browser: str


def detect_browser(user_agent: str) -> str:
    for token, name in _BROWSERS:
        if token in user_agent:
            return name
    return "Unknown"


def detect_platform(user_agent: str) -> str:
    for token, name in _PLATFORMS:
        if token in user_agent:
            return name
    return "Unknown"


def parse_user_agent(user_agent: str) -> DeviceInfo:
    return DeviceInfo(
        device_name=detect_platform(user_agent),
        device_type="mobile" if _MOBILE_RE.search(user_agent) else "desktop",
        browser=detect_browser(user_agent),
    )


async def touch_device_session(
    db: AsyncSession,
    user_id: UUID,
    user_agent: str,
    ip_address: str | None = None,
) -> DeviceSession:
    """Refresh the matching active session or create a new one."""
    now = datetime.now(UTC)
    result = await db.execute(
        select(DeviceSession)
        .where(
            DeviceSession.user_id == user_id,
            DeviceSession.user_agent == user_agent,
            DeviceSession.revoked.is_(False),
        )
        .order_by(DeviceSession.last_active.desc())
        .limit(1)
    )
    session = result.scalar_one_or_none()
    if session is not None:
        session.last_active = now
        if ip_address:
            session.ip_address = ip_address
        return session

    info = parse_user_agent(user_agent)
    session = DeviceSession(
        user_id=user_id,
        device_name=info.device_name,
        device_type=info.device_type,
        browser=info.browser,
        user_agent=user_agent,
        ip_address=ip_address,
        last_active=now,
    )
    db.add(session)
    await db.flush()
    logger.info(f"New device session {session.id} for user {user_id} ({info.browser})")
    return session


async def revoke_all_sessions(db: AsyncSession, user_id: UUID) -> int:
    """Revoke every active session of a user. Returns the number revoked."""
    result = await db.execute(
        update(DeviceSession)
        .where(DeviceSession.user_id == user_id, DeviceSession.revoked.is_(False))
        .values(revoked=True, revoked_at=datetime.now(UTC))
    )
    logger.info(f"Revoked {result.rowcount} sessions for user {user_id}")
    return result.rowcount or 0


def revoke_session(session: DeviceSession) -> None:
    session.revoked = True
    session.revoked_at = datetime.now(UTC)
