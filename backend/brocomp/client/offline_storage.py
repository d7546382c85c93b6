"""Local persistence for the BroComp client.

``LocalStorage`` is a small JSON-file key/value store with the same surface as
a browser's localStorage. ``OfflineStorage`` keeps complaint drafts and queued
chat messages in it until the client is back online.
"""

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from brocomp.core.rate_limit import RateLimitStore

logger = logging.getLogger(__name__)

DRAFTS_KEY = "complaint_drafts"
MESSAGES_QUEUE_KEY = "messages_queue"


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocalStorage:
    """String key/value store persisted to a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring corrupt local storage file {self.path}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


class OfflineStorage:
    """Complaint drafts and chat messages waiting to be sent."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    def _load_list(self, key: str) -> list[dict[str, Any]]:
        raw = self.storage.get_item(key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Dropping unreadable {key}")
            return []
        return items if isinstance(items, list) else []

    def _append(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        items = self._load_list(key)
        entry = {**fields, "id": str(uuid.uuid4()), "timestamp": _now_ms()}
        items.append(entry)
        self.storage.set_item(key, json.dumps(items, default=str))
        return entry

    def _remove(self, key: str, item_id: str) -> None:
        items = [item for item in self._load_list(key) if item.get("id") != item_id]
        self.storage.set_item(key, json.dumps(items, default=str))

    # Complaint drafts

    def save_draft(self, draft: dict[str, Any]) -> dict[str, Any]:
        return self._append(DRAFTS_KEY, draft)

    def get_drafts(self) -> list[dict[str, Any]]:
        return self._load_list(DRAFTS_KEY)

    def remove_draft(self, draft_id: str) -> None:
        self._remove(DRAFTS_KEY, draft_id)

    def clear_drafts(self) -> None:
        self.storage.remove_item(DRAFTS_KEY)

    # Message queue

    def queue_message(self, message: str, parent_id: str | None = None) -> dict[str, Any]:
        fields: dict[str, Any] = {"message": message}
        if parent_id is not None:
            fields["parent_id"] = parent_id
        return self._append(MESSAGES_QUEUE_KEY, fields)

    def get_message_queue(self) -> list[dict[str, Any]]:
        return self._load_list(MESSAGES_QUEUE_KEY)

    def remove_queued_message(self, message_id: str) -> None:
        self._remove(MESSAGES_QUEUE_KEY, message_id)

    def clear_message_queue(self) -> None:
        self.storage.remove_item(MESSAGES_QUEUE_KEY)

    def pending_count(self) -> int:
        return len(self.get_drafts()) + len(self.get_message_queue())


class LocalStorageRateLimitStore(RateLimitStore):
    """Rate limit state kept in local storage. Expiry is left to the limiter."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    async def get(self, key: str) -> str | None:
        return self.storage.get_item(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.storage.set_item(key, value)

    async def delete(self, key: str) -> None:
        self.storage.remove_item(key)
