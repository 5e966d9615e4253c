"""HTTP transport for the POS backend API.

This module provides:
- HTTPClient: async HTTP client with a bounded timeout and uniform errors
- TransportResponse: status code and decoded body of a successful call
- TransportError / AuthenticationError: failures surfaced to the controllers

The client never retries. Retry policy belongs to the sync controllers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from possync.core.config import DEFAULT_TIMEOUT, ServerConfig

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Network failure, timeout, or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_network_error(self) -> bool:
        """True when no HTTP status was received (connection error, timeout)."""
        return self.status_code is None


class AuthenticationError(TransportError):
    """Token rejected by the server (401/403)."""


@dataclass
class TransportResponse:
    """Successful API response."""

    status_code: int
    body: Any


def _error_detail(response: httpx.Response) -> str:
    """Extract a human readable error from a failed response."""
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return text or response.reason_phrase
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            if data.get(key):
                return str(data[key])
    return response.reason_phrase


class HTTPClient:
    """Async HTTP client for the POS backend.

    Usage:
        async with HTTPClient(timeout=30.0) as client:
            response = await client.call(
                "GET", "https://pos.example.com/api/products",
                params={"page": 1}, token=token,
            )
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=verify_ssl,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config: ServerConfig) -> HTTPClient:
        """Create a client using the timeout and SSL settings of a config."""
        return cls(timeout=config.timeout, verify_ssl=config.verify_ssl)

    @property
    def timeout(self) -> float:
        """Request timeout in seconds."""
        return self._timeout

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def call(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> TransportResponse:
        """Perform one HTTP call.

        Args:
            method: HTTP method.
            url: Absolute URL.
            json: Optional JSON body.
            params: Optional query parameters.
            token: Bearer token, attached as Authorization header when set.

        Returns:
            TransportResponse with the decoded JSON body (or raw text when the
            body is not JSON, None when empty).

        Raises:
            AuthenticationError: On 401/403.
            TransportError: On network failure, timeout, or other non-2xx.
        """
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"{method} {url} timed out after {self._timeout:.0f}s"
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                response.status_code,
            )
        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                response.status_code,
            )

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        return TransportResponse(status_code=response.status_code, body=body)

    async def get(self, url: str, **kwargs: Any) -> TransportResponse:
        """Shortcut for call("GET", ...)."""
        return await self.call("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> TransportResponse:
        """Shortcut for call("POST", ...)."""
        return await self.call("POST", url, **kwargs)
