"""Base HTTP client for the hosted backend (document store and identity API)."""

import logging
from typing import Awaitable, Callable, Optional, Union

import httpx

logger = logging.getLogger(__name__)

TokenSource = Callable[[], Awaitable[Optional[str]]]


class BaseServiceClient:
    """Base class for the backend REST clients.

    Requests carry the signed-in user's id token as a bearer token, plus an
    Idempotency-Key header on writes so the backend can discard replays.

    Usage:
        class DocumentsClient(BaseServiceClient):
            async def get_raw(self, path: str) -> dict:
                async with self._get_client() as client:
                    response = await client.get(
                        f"{self.base_url}/{path}",
                        headers=await self._headers(),
                    )
                    response.raise_for_status()
                    return response.json()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token_source: Optional[TokenSource] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Backend base URL (e.g., https://store.carebridge.example/v1)
            timeout: Request timeout in seconds (default: 30.0)
            token_source: Coroutine returning the current id token, if signed in
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_source = token_source
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={base_url}")

    async def _headers(
        self,
        idempotency_key: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Generate request headers.

        Args:
            idempotency_key: Client-generated key identifying one logical write
            correlation_id: Optional correlation ID for request tracing

        Returns:
            Headers dict
        """
        headers = {
            "Content-Type": "application/json",
        }

        if self.token_source is not None:
            token = await self.token_source()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        return headers

    def _get_client(self, timeout: Optional[Union[float, httpx.Timeout]] = None) -> httpx.AsyncClient:
        """Fresh AsyncClient for one request (or one stream); use as a context manager."""
        return httpx.AsyncClient(
            timeout=self.timeout if timeout is None else timeout,
            transport=self._transport,
        )

    async def close(self):
        """Release open streams; clients here hold no pooled connections."""
        pass
