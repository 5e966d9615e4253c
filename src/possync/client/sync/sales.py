"""Push of locally recorded sales to the remote server.

This module provides:
- SalesSyncController: Pushes queued sales oldest first with per-sale isolation

Status transitions per sale and run:
    pending/failed --mark_sale_syncing--> syncing --+--> synced
                                                    +--> failed

A failed sale never stops the run; the remaining queue is still pushed and a
SalesSyncError summarizing the failures is raised at the end.
"""

from __future__ import annotations

import functools
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from possync.client.api import TransportError
from possync.client.sync.retry import (
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_ATTEMPTS,
    retry_with_backoff,
)
from possync.client.sync.types import (
    SaleFailure,
    SalesSyncError,
    SyncOutcome,
    SyncResult,
    ValidationError,
)
from possync.core.types import SyncKind

if TYPE_CHECKING:
    from possync.client.api import HTTPClient
    from possync.client.state import LocalStore, Sale

logger = logging.getLogger(__name__)

SALES_ENDPOINT = "/sales"


def confirmed_at(body: Any) -> datetime | None:
    """Extract the server confirmation time from a create-sale response.

    Looks for "synced_at" at the top level, then under "data" (and
    "data.attributes"). Returns None when absent or unparsable.
    """
    candidates: list[Any] = []
    if isinstance(body, dict):
        candidates.append(body.get("synced_at"))
        data = body.get("data")
        if isinstance(data, dict):
            candidates.append(data.get("synced_at"))
            attrs = data.get("attributes")
            if isinstance(attrs, dict):
                candidates.append(attrs.get("synced_at"))

    for value in candidates:
        if not isinstance(value, str):
            continue
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.debug("Ignoring unparsable synced_at %r", value)
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
    return None


class SalesSyncController:
    """Pushes unsynced sales to the server.

    Usage:
        controller = SalesSyncController(store, client)
        result = await controller.sync_sales(base_url, token)
    """

    def __init__(
        self,
        store: LocalStore,
        client: HTTPClient,
        max_push_retries: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff: float = DEFAULT_INITIAL_BACKOFF,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Local store holding the sales queue.
            client: Transport client.
            max_push_retries: Pushes per sale within one run for transient
                network errors. Every push counts in sync_attempts.
            retry_backoff: Initial backoff between those attempts.
        """
        self._store = store
        self._client = client
        self._max_push_retries = max_push_retries
        self._retry_backoff = retry_backoff

    def unsynced_count(self) -> int:
        """Number of sales waiting for server confirmation."""
        return self._store.count_unsynced_sales()

    def recover_interrupted(self) -> int:
        """Requeue sales left in syncing by a run that never finished.

        Must only be called while no sales sync is in flight.
        """
        return self._store.recover_interrupted_sales()

    def _count_retry(self, sale_id: str, error: Exception, attempt: int) -> None:
        self._store.count_sale_attempt(sale_id)

    async def push_sale(self, sale: Sale, base_url: str, user_token: str) -> datetime | None:
        """Send one sale to the server.

        The server treats invoice_number as an idempotency key, so pushing a
        sale again after an ambiguous failure does not book it twice.

        Returns:
            Confirmation time echoed by the server, if any.
        """
        response = await self._client.post(
            f"{base_url.rstrip('/')}{SALES_ENDPOINT}",
            json=sale.to_payload(),
            token=user_token,
        )
        return confirmed_at(response.body)

    async def sync_sales(
        self,
        base_url: str,
        user_token: str | None,
        max_attempts: int | None = None,
    ) -> SyncResult:
        """Push every unsynced sale, oldest first.

        Args:
            base_url: API base URL.
            user_token: Bearer token.
            max_attempts: Leave out sales that already had this many attempts.

        Returns:
            SyncResult with SKIPPED_NO_TOKEN without a token or NOTHING_TO_DO
            when the queue is empty (no network call, no sale touched), else
            COMPLETED.

        Raises:
            SalesSyncError: After the whole queue, if any sale failed.
        """
        if not user_token:
            logger.debug("No auth token, skipping sales sync")
            return SyncResult(SyncKind.SALES, SyncOutcome.SKIPPED_NO_TOKEN)

        sales = self._store.list_unsynced_sales(max_attempts=max_attempts)
        if not sales:
            logger.debug("No unsynced sales")
            return SyncResult(SyncKind.SALES, SyncOutcome.NOTHING_TO_DO)

        logger.info("Found %d unsynced sales, starting sync", len(sales))

        synced = 0
        failures: list[SaleFailure] = []
        for sale in sales:
            if not self._store.mark_sale_syncing(sale.id):
                logger.debug("Sale %s no longer pending, skipping", sale.invoice_number)
                continue

            push = functools.partial(self.push_sale, sale, base_url, user_token)
            try:
                when = await retry_with_backoff(
                    push,
                    max_attempts=self._max_push_retries,
                    initial_backoff=self._retry_backoff,
                    on_retry=functools.partial(self._count_retry, sale.id),
                )
            except (TransportError, ValidationError) as e:
                self._store.mark_sale_failed(sale.id, str(e))
                failures.append(SaleFailure(sale.id, sale.invoice_number, e))
                logger.warning("Failed to sync sale %s: %s", sale.invoice_number, e)
                continue
            except Exception as e:
                self._store.mark_sale_failed(sale.id, str(e) or type(e).__name__)
                raise

            self._store.mark_sale_synced(sale.id, when)
            synced += 1
            logger.info("Sale %s synced", sale.invoice_number)

        if failures:
            logger.error(
                "Sales sync finished with %d failure(s), %d synced",
                len(failures),
                synced,
            )
            raise SalesSyncError(failures, synced=synced)

        logger.info("Sales sync completed: %d synced", synced)
        return SyncResult(SyncKind.SALES, SyncOutcome.COMPLETED, synced=synced)

    async def manual_sync(self, base_url: str, user_token: str | None) -> SyncResult:
        """Sync on user request. Ignores any attempt cap."""
        logger.info("Manual sales sync requested")
        return await self.sync_sales(base_url, user_token)
