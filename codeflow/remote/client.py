"""HTTP transport shared by the remote commit and history stores.

Retries with exponential backoff on connection failures, timeouts and 5xx
responses. Failures are raised as the codeflow error taxonomy so callers can
classify them without knowing about HTTP.
"""

import asyncio
import logging
from typing import Any

import httpx

from ..errors import (
    FALLBACK_STATUS_CODES,
    AuthorizationError,
    ConnectivityError,
    RemoteRequestError,
)

logger = logging.getLogger(__name__)


class RemoteClient:
    """Thin async JSON client for a codeflow remote server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the remote server (e.g., "http://cloud:8765").
            timeout: Request timeout in seconds.
            max_retries: Attempts per request before giving up.
            backoff_seconds: Initial delay between attempts, doubled each time.
            transport: Optional httpx transport, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        """Check if the remote server answers.

        Returns:
            True if server is healthy, False otherwise.
        """
        try:
            client = await self._get_client()
            response = await client.get("/api/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False

    async def request(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        """Make an HTTP request with exponential backoff retry.

        Args:
            method: HTTP method.
            path: URL path relative to the base URL.
            json_data: Optional JSON body.
            allow_not_found: Return 404 responses instead of raising.

        Returns:
            The successful (or allowed 404) response.

        Raises:
            ConnectivityError: Remote unreachable or failing after all retries.
            AuthorizationError: Remote returned 401 or 403.
            RemoteRequestError: Any other non-success response.
        """
        client = await self._get_client()
        backoff = self.backoff_seconds
        last_error = "no attempt made"
        last_status: int | None = None

        for attempt in range(self.max_retries):
            try:
                response = await client.request(method, path, json=json_data)
            except httpx.ConnectError as e:
                last_error = f"Connection failed: {e}"
                logger.warning(
                    f"Connection failed, attempt {attempt + 1}/{self.max_retries}"
                )
            except httpx.TimeoutException as e:
                last_error = f"Request timeout: {e}"
                logger.warning(
                    f"Request timeout, attempt {attempt + 1}/{self.max_retries}"
                )
            except httpx.HTTPError as e:
                raise ConnectivityError(f"Transport error: {e}") from e
            else:
                status = response.status_code
                if status < 300:
                    return response
                if status == 404 and allow_not_found:
                    return response
                if status in (401, 403):
                    raise AuthorizationError(
                        f"HTTP {status}: permission denied for {method} {path}",
                        status_code=status,
                    )
                if status < 500:
                    # Client error, don't retry
                    raise RemoteRequestError(
                        f"HTTP {status}: {response.text}", status_code=status
                    )

                last_error = f"HTTP {status}: {response.text}"
                last_status = status
                logger.warning(
                    f"Server error {status}, attempt {attempt + 1}/{self.max_retries}"
                )

            if attempt < self.max_retries - 1:
                await asyncio.sleep(backoff)
                backoff *= 2

        message = f"Max retries ({self.max_retries}) exceeded: {last_error}"
        if last_status is not None and last_status not in FALLBACK_STATUS_CODES:
            # 500 and other non-availability 5xx stay fatal
            raise RemoteRequestError(message, status_code=last_status)
        raise ConnectivityError(message, status_code=last_status)
