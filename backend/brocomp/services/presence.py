"""Presence and typing state for realtime channels.

State per channel is ``{presence_key: [meta, ...]}`` with one meta entry per
connection, so a user with two open tabs stays online until both close.
State is ephemeral and per-process; it is rebuilt as clients reconnect.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class PresenceMeta:
    conn_id: str
    user_id: str
    full_name: str = "Anonymous"
    avatar_url: str | None = None
    online_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    typing: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "online_at": self.online_at,
            "typing": self.typing,
        }


def typing_display_text(names: list[str]) -> str | None:
    """Render the typing indicator line, or None when nobody is typing."""
    if not names:
        return None
    if len(names) == 1:
        return f"{names[0]} is typing..."
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing..."
    return f"{len(names)} people are typing..."


class PresenceTracker:
    """Tracks which presence keys (user ids) are connected per channel."""

    def __init__(self) -> None:
        self._channels: dict[str, dict[str, list[PresenceMeta]]] = {}

    def track(self, channel: str, key: str, meta: PresenceMeta) -> bool:
        """Add or replace the meta for ``meta.conn_id``.

        Returns True when ``key`` was not present before (a join).
        """
        state = self._channels.setdefault(channel, {})
        metas = state.get(key)
        joined = not metas
        metas = [m for m in (metas or []) if m.conn_id != meta.conn_id]
        metas.append(meta)
        state[key] = metas
        return joined

    def untrack(self, channel: str, key: str, conn_id: str) -> bool:
        """Remove one connection. Returns True when ``key`` left entirely."""
        state = self._channels.get(channel)
        if not state or key not in state:
            return False
        remaining = [m for m in state[key] if m.conn_id != conn_id]
        if remaining:
            state[key] = remaining
            return False
        del state[key]
        if not state:
            del self._channels[channel]
        return True

    def state(self, channel: str) -> dict[str, list[dict[str, Any]]]:
        return {
            key: [m.to_dict() for m in metas]
            for key, metas in self._channels.get(channel, {}).items()
        }

    def online_users(self, channel: str) -> list[dict[str, Any]]:
        """One entry per connected user, earliest connection first."""
        return [metas[0].to_dict() for metas in self._channels.get(channel, {}).values()]

    def is_user_online(self, channel: str, user_id: str) -> bool:
        return user_id in self._channels.get(channel, {})

    def online_count(self, channel: str) -> int:
        return len(self._channels.get(channel, {}))

    def set_typing(self, channel: str, key: str, conn_id: str, typing: bool) -> bool:
        """Update the typing flag. Returns False when the connection is unknown."""
        for meta in self._channels.get(channel, {}).get(key, []):
            if meta.conn_id == conn_id:
                meta.typing = typing
                return True
        return False

    def typing_users(self, channel: str, exclude: str | None = None) -> list[dict[str, Any]]:
        users = []
        for key, metas in self._channels.get(channel, {}).items():
            if key == exclude:
                continue
            typing = [m for m in metas if m.typing]
            if typing:
                users.append(typing[0].to_dict())
        return users

    def typing_text(self, channel: str, exclude: str | None = None) -> str | None:
        return typing_display_text(
            [u["full_name"] for u in self.typing_users(channel, exclude=exclude)]
        )
