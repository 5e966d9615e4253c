"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, ValidationError, SalesSyncError: Exception classes
- SaleFailure: One failed sale push
- SyncOutcome: Why a run did (or did not do) something
- SyncResult: Result of one product or sales sync run
- describe_error: Status code and message of a failure, for display
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from possync.client.api import TransportError
from possync.core.errors import SyncError, ValidationError
from possync.core.types import SyncKind


@dataclass
class SaleFailure:
    """A sale whose push failed during a sales sync run."""

    sale_id: str
    invoice_number: str
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


class SalesSyncError(SyncError):
    """One or more sales failed to sync.

    Raised after the whole queue was attempted. Sales that succeeded in the
    same run stay synced.

    Attributes:
        failures: Every failed sale, in processing order.
        synced: Number of sales confirmed in the same run.
    """

    def __init__(self, failures: list[SaleFailure], synced: int = 0) -> None:
        self.failures = failures
        self.synced = synced
        last = failures[-1]
        super().__init__(
            f"{len(failures)} sale(s) failed to sync, last: "
            f"{last.invoice_number}: {last.message}"
        )

    @property
    def last_error(self) -> Exception:
        """Most recent per-sale failure."""
        return self.failures[-1].error


class SyncOutcome(str, Enum):
    """Outcome of a sync run.

    SKIPPED_* outcomes are guard conditions, not failures.
    """

    COMPLETED = "completed"
    NOTHING_TO_DO = "nothing_to_do"
    SKIPPED_NO_TOKEN = "skipped_no_token"
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_COMPLETED = "skipped_completed"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped_")


@dataclass
class SyncResult:
    """Result of a sync run.

    Attributes:
        kind: Products or sales.
        outcome: What happened.
        pages: Catalog pages committed (products).
        products: Products upserted (products).
        synced: Sales confirmed (sales).
        failed: Sales that failed (sales).
        error: Failure, when outcome is FAILED.
    """

    kind: SyncKind
    outcome: SyncOutcome
    pages: int = 0
    products: int = 0
    synced: int = 0
    failed: int = 0
    error: Exception | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        """True unless the run failed."""
        return self.outcome != SyncOutcome.FAILED


def describe_error(error: BaseException) -> dict[str, Any]:
    """Structure a failure for display.

    Returns:
        Dict with "status_code" (None when no HTTP status applies) and
        "message".
    """
    if isinstance(error, SalesSyncError):
        inner = describe_error(error.last_error)
        return {"status_code": inner["status_code"], "message": str(error)}
    if isinstance(error, TransportError):
        return {"status_code": error.status_code, "message": error.message}
    return {"status_code": None, "message": str(error) or type(error).__name__}


__all__ = [
    "SaleFailure",
    "SalesSyncError",
    "SyncError",
    "SyncOutcome",
    "SyncResult",
    "ValidationError",
    "describe_error",
]
