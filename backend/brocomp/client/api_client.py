"""Async HTTP client for the BroComp API with offline fallback."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from brocomp.client.offline_storage import LocalStorageRateLimitStore, OfflineStorage
from brocomp.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class BroCompAPIError(Exception):
    """Error response from the BroComp API."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ClientRateLimitError(BroCompAPIError):
    """Raised before a request when the local limiter is locked out."""

    def __init__(self, action: str, remaining_minutes: int | None):
        self.action = action
        self.remaining_minutes = remaining_minutes
        super().__init__(
            f"Too many {action.replace('_', ' ')} attempts. "
            f"Please wait {remaining_minutes} minutes.",
            status_code=429,
        )


@dataclass
class Submission:
    """Outcome of a write: sent to the API, or kept locally for later."""

    queued: bool
    data: dict[str, Any]


class BroCompClient:
    """Client for the student-facing API.

    When a write cannot reach the server (``httpx.TransportError``) the payload
    is stored in ``OfflineStorage`` and returned as a queued ``Submission``.
    HTTP error responses are raised as ``BroCompAPIError`` and never queued.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=30.0, pool=10.0)
    # Subject for the local limiter; one client is one user.
    RATE_LIMIT_SUBJECT = "local"

    def __init__(
        self,
        base_url: str,
        offline_storage: OfflineStorage,
        token: str | None = None,
        api_prefix: str = "/v1",
        transport: httpx.AsyncBaseTransport | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.offline_storage = offline_storage
        self.token = token
        self.api_prefix = api_prefix.rstrip("/")
        self.rate_limiter = rate_limiter or RateLimiter(
            LocalStorageRateLimitStore(offline_storage.storage)
        )
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=self.DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "BroCompClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _handle_response_error(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        if not isinstance(detail, str):
            detail = str(detail)
        raise BroCompAPIError(detail or f"API error: {response.status_code}", response.status_code)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(
            method, self._url(path), headers=self._get_headers(), **kwargs
        )
        self._handle_response_error(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _check_rate_limit(self, action: str) -> None:
        result = await self.rate_limiter.check(action, self.RATE_LIMIT_SUBJECT)
        if not result.allowed:
            raise ClientRateLimitError(action, result.remaining_minutes)

    # Connectivity

    async def is_reachable(self) -> bool:
        """Ping the health endpoint."""
        try:
            response = await self._client.get(self._url("/health"))
        except httpx.TransportError:
            return False
        return response.is_success

    # Auth

    async def login(self, email: str, password: str) -> dict[str, Any]:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        return data

    # Complaints

    async def submit_complaint(self, complaint: dict[str, Any]) -> Submission:
        """Create a complaint, or save it as a draft when offline."""
        await self._check_rate_limit("complaint")
        try:
            data = await self._request("POST", "/complaints", json=complaint)
        except httpx.TransportError as e:
            draft = self.offline_storage.save_draft(complaint)
            logger.info(f"Offline, saved complaint draft {draft['id']}: {e}")
            return Submission(queued=True, data=draft)
        await self.rate_limiter.increment("complaint", self.RATE_LIMIT_SUBJECT)
        return Submission(queued=False, data=data)

    async def sync_draft(self, draft: dict[str, Any]) -> dict[str, Any]:
        """Replay one saved draft through the offline-sync endpoint."""
        data = await self._request("POST", "/complaints/offline-sync", json={"drafts": [draft]})
        result = data["results"][0]
        if not result["success"]:
            raise BroCompAPIError(result.get("error") or "Draft rejected", status_code=422)
        return result

    async def track_complaint(self, tracking_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/complaints/track/{tracking_id}")

    # Community chat

    async def send_message(self, message: str, parent_id: str | None = None) -> Submission:
        """Post a chat message, or queue it when offline."""
        await self._check_rate_limit("chat")
        payload: dict[str, Any] = {"message": message}
        if parent_id is not None:
            payload["parent_id"] = parent_id
        try:
            data = await self._request("POST", "/community/messages", json=payload)
        except httpx.TransportError as e:
            entry = self.offline_storage.queue_message(message, parent_id=parent_id)
            logger.info(f"Offline, queued chat message {entry['id']}: {e}")
            return Submission(queued=True, data=entry)
        await self.rate_limiter.increment("chat", self.RATE_LIMIT_SUBJECT)
        return Submission(queued=False, data=data)

    async def send_queued_message(self, entry: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": entry["message"]}
        if entry.get("parent_id"):
            payload["parent_id"] = entry["parent_id"]
        return await self._request("POST", "/community/messages", json=payload)
