"""Shared configuration classes for possync.

This module defines the connection settings used by the transport client and
the tuning knobs used by the sync controllers and orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_TIMEOUT = 30.0
DEFAULT_SALES_INTERVAL = 120.0


@dataclass
class ServerConfig:
    """Configuration for connecting to the POS backend.

    Attributes:
        server_url: Base URL of the API (e.g., "https://pos.example.com/api").
        token: Bearer token of the signed-in user, if any.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncSettings:
    """Tuning for sync runs.

    Attributes:
        sales_interval: Seconds between scheduled sales sync runs.
        page_delay: Seconds to wait between two catalog pages.
        max_push_retries: Attempts per sale for transient network errors.
        retry_backoff: Initial backoff in seconds between those attempts.
        max_attempts: Sales with this many sync attempts are no longer pushed
            by scheduled runs (None means retry forever).
    """

    sales_interval: float = DEFAULT_SALES_INTERVAL
    page_delay: float = 0.0
    max_push_retries: int = 3
    retry_backoff: float = 1.0
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.sales_interval <= 0:
            raise ValueError("sales_interval must be positive")
        if self.max_push_retries < 1:
            raise ValueError("max_push_retries must be at least 1")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
