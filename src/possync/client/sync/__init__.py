"""Sync operations between the local store and the POS backend.

Architecture:
    SyncOrchestrator → ProductSyncController ─┐
                     → SalesSyncController  ──┴→ LocalStore + HTTPClient

Components:
- **ProductSyncController**: Resumable paginated pull of the catalog
- **SalesSyncController**: Push of queued sales with per-sale isolation
- **SyncOrchestrator**: Interval and connectivity driven scheduling,
  at most one run per kind in flight
- **retry_with_backoff**: In-run retry of transient network errors
"""

from possync.client.sync.orchestrator import SyncOrchestrator
from possync.client.sync.products import (
    ProductSyncController,
    parse_page,
    parse_product,
)
from possync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_BACKOFF,
    is_transient,
    retry_with_backoff,
)
from possync.client.sync.sales import SalesSyncController, confirmed_at
from possync.client.sync.types import (
    SaleFailure,
    SalesSyncError,
    SyncError,
    SyncOutcome,
    SyncResult,
    ValidationError,
    describe_error,
)

__all__ = [
    # Controllers
    "ProductSyncController",
    "SalesSyncController",
    "SyncOrchestrator",
    # Parsing
    "confirmed_at",
    "parse_page",
    "parse_product",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_BACKOFF",
    "is_transient",
    "retry_with_backoff",
    # Types
    "SaleFailure",
    "SalesSyncError",
    "SyncError",
    "SyncOutcome",
    "SyncResult",
    "ValidationError",
    "describe_error",
]
