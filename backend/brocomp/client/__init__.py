"""Python client for BroComp with offline draft and message queueing."""

from brocomp.client.api_client import (
    BroCompAPIError,
    BroCompClient,
    ClientRateLimitError,
    Submission,
)
from brocomp.client.offline_storage import (
    LocalStorage,
    LocalStorageRateLimitStore,
    OfflineStorage,
)
from brocomp.client.sync import OfflineSync, SyncReport, sync_pending_items

__all__ = [
    "BroCompAPIError",
    "BroCompClient",
    "ClientRateLimitError",
    "LocalStorage",
    "LocalStorageRateLimitStore",
    "OfflineStorage",
    "OfflineSync",
    "Submission",
    "SyncReport",
    "sync_pending_items",
]
