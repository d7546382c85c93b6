"""Replay of offline drafts and queued messages."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from brocomp.client.api_client import BroCompClient
from brocomp.client.offline_storage import OfflineStorage

logger = logging.getLogger(__name__)

ItemCallback = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class SyncReport:
    synced_drafts: int = 0
    synced_messages: int = 0
    failed: int = 0
    skipped: bool = False

    @property
    def synced(self) -> int:
        return self.synced_drafts + self.synced_messages


async def sync_pending_items(
    storage: OfflineStorage,
    on_complaint: ItemCallback,
    on_message: ItemCallback,
    is_online: Callable[[], bool],
) -> SyncReport:
    """Replay drafts, then queued messages, oldest first.

    An item is removed only after its callback returns. A failing callback is
    logged and the item stays queued for the next attempt.
    """
    if not is_online():
        logger.info("Cannot sync: offline")
        return SyncReport(skipped=True)

    drafts = storage.get_drafts()
    messages = storage.get_message_queue()
    logger.info(f"Syncing {len(drafts)} drafts and {len(messages)} messages")

    report = SyncReport()
    for draft in drafts:
        try:
            await on_complaint(draft)
        except Exception as e:
            logger.error(f"Failed to sync draft {draft.get('id')}: {e}")
            report.failed += 1
            continue
        storage.remove_draft(draft["id"])
        report.synced_drafts += 1

    for message in messages:
        try:
            await on_message(message)
        except Exception as e:
            logger.error(f"Failed to sync message {message.get('id')}: {e}")
            report.failed += 1
            continue
        storage.remove_queued_message(message["id"])
        report.synced_messages += 1

    return report


class OfflineSync:
    """Watch connectivity and replay the offline queue when it comes back."""

    def __init__(
        self,
        client: BroCompClient,
        storage: OfflineStorage | None = None,
        interval: float = 5.0,
        on_offline: Callable[[], Any] | None = None,
        on_synced: Callable[[SyncReport], Any] | None = None,
    ):
        self.client = client
        self.storage = storage or client.offline_storage
        self.interval = interval
        self.on_offline = on_offline
        self.on_synced = on_synced
        self.online: bool | None = None
        self._stopped = asyncio.Event()

    async def replay(self) -> SyncReport:
        report = await sync_pending_items(
            self.storage,
            on_complaint=self.client.sync_draft,
            on_message=self.client.send_queued_message,
            is_online=lambda: bool(self.online),
        )
        if self.on_synced is not None and not report.skipped:
            self.on_synced(report)
        return report

    async def check(self) -> SyncReport | None:
        """Check once and react to a connectivity change."""
        was_online = self.online
        self.online = await self.client.is_reachable()

        if self.online and was_online is not True:
            logger.info("Connection restored, syncing pending items")
            return await self.replay()
        if not self.online and was_online is not False:
            logger.warning("Connection lost, changes will be queued")
            if self.on_offline is not None:
                self.on_offline()
        return None

    async def watch(self) -> None:
        """Poll until ``stop()`` is called."""
        self._stopped.clear()
        while not self._stopped.is_set():
            await self.check()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except TimeoutError:
                pass

    def stop(self) -> None:
        self._stopped.set()
