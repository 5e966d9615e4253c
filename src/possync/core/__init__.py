"""Core module - Shared configuration, enums and errors."""

from possync.core.config import (
    DEFAULT_SALES_INTERVAL,
    DEFAULT_TIMEOUT,
    ServerConfig,
    SyncSettings,
)
from possync.core.errors import SyncError, ValidationError
from possync.core.types import RunState, SaleSyncStatus, SyncKind

__all__ = [
    # Config
    "DEFAULT_SALES_INTERVAL",
    "DEFAULT_TIMEOUT",
    "ServerConfig",
    "SyncSettings",
    # Errors
    "SyncError",
    "ValidationError",
    # Types
    "RunState",
    "SaleSyncStatus",
    "SyncKind",
]
