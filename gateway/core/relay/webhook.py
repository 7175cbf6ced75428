"""
HTTP client for the webhook sink.

Deliveries are fire-and-forget: deliver() schedules a POST and returns at
once. A failed delivery is logged and dropped. There is no retry queue.
"""

import asyncio
import base64
import logging
from typing import Any, Optional

import httpx
from fastapi.encoders import jsonable_encoder

from gateway.core.errors import RelayDeliveryFailed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Raw protocol messages carry binary fields (thumbnails, media keys)
BYTES_ENCODER = {bytes: lambda b: base64.b64encode(b).decode("ascii")}


class WebhookClient:
    """
    POSTs event payloads to a single URL.

    Example:
        webhook = WebhookClient("https://example.com/hook")
        webhook.deliver({"event": "message", "text": "hi"})
        await webhook.aclose()
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            url: Webhook sink address
            timeout: Per-delivery timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._pending: set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    @property
    def pending(self) -> int:
        """Deliveries still in flight."""
        return len(self._pending)

    def deliver(self, payload: dict[str, Any]) -> asyncio.Task:
        """Schedule a delivery and return without waiting for it."""
        task = asyncio.create_task(self._deliver_safely(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def post(self, payload: dict[str, Any]) -> None:
        """
        POST one payload.

        Raises:
            RelayDeliveryFailed: Unreachable, timed out, or non-2xx
        """
        client = self._get_client()
        try:
            body = jsonable_encoder(payload, custom_encoder=BYTES_ENCODER)
            response = await client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RelayDeliveryFailed(self.url, e) from e

    async def _deliver_safely(self, payload: dict[str, Any]) -> None:
        try:
            await self.post(payload)
            logger.debug(f"Webhook delivered: {payload.get('event')}")
        except RelayDeliveryFailed as e:
            logger.warning(str(e))
        except Exception as e:
            logger.warning(f"Webhook delivery to {self.url} failed unexpectedly: {e}")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries, cancelling what is left at timeout."""
        if not self._pending:
            return
        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Dropped {len(not_done)} webhook deliveries at shutdown")

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def __repr__(self) -> str:
        return f"<WebhookClient(url='{self.url}', timeout={self.timeout})>"
