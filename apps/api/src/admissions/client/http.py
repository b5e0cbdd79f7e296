"""
Admissions API Client

Thin async wrapper around ``httpx.AsyncClient`` for talking to the API from
scripts and offline-capable front ends.

- Base URL and bearer token are set once per client.
- Write requests (POST, PUT, PATCH, DELETE) that fail to reach the server
  are queued in the OfflineQueue when one is attached, instead of raising.
- ``sync_pending()`` replays the queue through this client.

Usage:
    client = AdmissionsClient("https://api.example.edu/api/v1", token=access_token,
                              queue=OfflineQueue(DraftStore("drafts.json"), user_id))
    response = await client.patch(f"/applications/{app_id}", json={"phone": "0977..."})
    if response is None:
        ...  # queued, will be sent by sync_pending()
"""

import logging
from typing import Any

import httpx

from admissions.client.queue import OfflineQueue, QueuedWrite, ReplayResult

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Failures where the request never got a response
OFFLINE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.PoolTimeout,
    httpx.NetworkError,
)


class AdmissionsClient:
    """
    Args:
        base_url: API root, e.g. ``https://host/api/v1``
        token: Bearer access token
        queue: Offline queue for writes that cannot reach the server
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        queue: OfflineQueue | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.queue = queue
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _send(self, method: str, path: str, json: Any = None, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(
                method, path, json=json, headers=self._headers(), **kwargs
            )
        response.raise_for_status()
        return response

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        queue_if_offline: bool = True,
        **kwargs,
    ) -> httpx.Response | None:
        """
        Perform a request.

        Returns:
            The response, or None when the write was queued for later

        Raises:
            httpx.HTTPStatusError: On 4xx/5xx responses
            httpx.TransportError: When offline and the request is not queued
        """
        method = method.upper()
        try:
            return await self._send(method, path, json=json, **kwargs)
        except OFFLINE_EXCEPTIONS as e:
            if self.queue is None or not queue_if_offline or method not in WRITE_METHODS:
                raise
            logger.warning(f"Offline, queuing {method} {path}: {e}")
            self.queue.enqueue(method, path, json)
            return None

    async def get(self, path: str, **kwargs) -> httpx.Response | None:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response | None:
        return await self.request("POST", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> httpx.Response | None:
        return await self.request("PATCH", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response | None:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response | None:
        return await self.request("DELETE", path, **kwargs)

    async def send_queued(self, item: QueuedWrite) -> httpx.Response:
        """Send one queued write; raises on any failure so the queue counts it."""
        return await self._send(item.method, item.path, json=item.body)

    async def sync_pending(self) -> ReplayResult:
        if self.queue is None:
            return ReplayResult()
        return await self.queue.replay(self)
