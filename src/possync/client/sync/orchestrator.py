"""Scheduling of product and sales sync runs.

This module provides:
- SyncOrchestrator: Owns the per-kind run state, the recurring sales job and
  the reaction to connectivity changes

Triggers:
    | Trigger                 | Action                                        |
    |-------------------------|-----------------------------------------------|
    | start()                 | Schedule sales every interval, run both now   |
    | interval elapsed        | Run sales sync                                |
    | set_online(True)        | start() if not scheduled                      |
    | set_online(False)       | stop() recurring job, in-flight runs continue |
    | manual_sync()           | Run sales sync now, ignoring the attempt cap  |

Guards (returned as SyncOutcome, never raised):
    - a run of the same kind is in flight -> SKIPPED_RUNNING
    - no bearer token available           -> SKIPPED_NO_TOKEN
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from possync.client.api import TransportError
from possync.client.sync.types import (
    SalesSyncError,
    SyncError,
    SyncOutcome,
    SyncResult,
    describe_error,
)
from possync.core.config import SyncSettings
from possync.core.types import RunState, SyncKind

if TYPE_CHECKING:
    from possync.client.sync.products import ProductSyncController
    from possync.client.sync.sales import SalesSyncController

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]
BaseUrlProvider = Callable[[], str]
SyncCall = Callable[[str, str], Awaitable[SyncResult]]

SALES_JOB_ID = "sales_sync"


class SyncOrchestrator:
    """Runs sync attempts, at most one in flight per kind.

    Constructed at application start and disposed with shutdown() at exit.

    Usage:
        orchestrator = SyncOrchestrator(
            products=product_controller,
            sales=sales_controller,
            token_provider=lambda: session.token,
            base_url_provider=lambda: resolve_base_url(load_config()),
        )
        orchestrator.start()          # inside a running event loop
        ...
        orchestrator.set_online(False)
        ...
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        products: ProductSyncController,
        sales: SalesSyncController,
        token_provider: TokenProvider,
        base_url_provider: BaseUrlProvider,
        settings: SyncSettings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            products: Product sync controller.
            sales: Sales sync controller.
            token_provider: Returns the current bearer token or None.
            base_url_provider: Returns the API base URL; called per attempt.
            settings: Interval and dead-letter settings.
        """
        self._products = products
        self._sales = sales
        self._token_provider = token_provider
        self._base_url_provider = base_url_provider
        self._settings = settings or SyncSettings()

        self._states: dict[SyncKind, RunState] = {
            kind: RunState.IDLE for kind in SyncKind
        }
        self._last_results: dict[SyncKind, SyncResult] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._online = True
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def online(self) -> bool:
        """Last connectivity state reported through set_online()."""
        return self._online

    @property
    def is_scheduled(self) -> bool:
        """True while the recurring sales job is registered."""
        return self._scheduler is not None

    def state(self, kind: SyncKind) -> RunState:
        """Run state of a sync kind."""
        return self._states[kind]

    def last_result(self, kind: SyncKind) -> SyncResult | None:
        """Result of the last finished run of a kind."""
        return self._last_results.get(kind)

    # === Runs ===

    async def _run(self, kind: SyncKind, call: SyncCall) -> SyncResult:
        """Run one sync attempt behind the guards."""
        if self._states[kind] == RunState.RUNNING:
            logger.debug("%s sync already in progress, skipping", kind.value)
            return SyncResult(kind, SyncOutcome.SKIPPED_RUNNING)

        token = self._token_provider()
        if not token:
            logger.debug("No auth token, skipping %s sync", kind.value)
            return SyncResult(kind, SyncOutcome.SKIPPED_NO_TOKEN)

        self._states[kind] = RunState.RUNNING
        try:
            base_url = self._base_url_provider()
            result = await call(base_url, token)
        except SalesSyncError as e:
            logger.warning("Sales sync failed: %s", e)
            result = SyncResult(
                kind,
                SyncOutcome.FAILED,
                synced=e.synced,
                failed=len(e.failures),
                error=e,
            )
        except (SyncError, TransportError) as e:
            logger.warning("%s sync failed: %s", kind.value.capitalize(), e)
            result = SyncResult(kind, SyncOutcome.FAILED, error=e)
        except Exception as e:
            logger.exception("Unexpected error during %s sync", kind.value)
            result = SyncResult(kind, SyncOutcome.FAILED, error=e)
        finally:
            self._states[kind] = RunState.IDLE

        self._last_results[kind] = result
        return result

    async def run_products(self) -> SyncResult:
        """Pull the remaining catalog pages."""
        return await self._run(SyncKind.PRODUCTS, self._products.start_sync)

    async def run_sales(self) -> SyncResult:
        """Push queued sales, leaving out those past the attempt cap."""
        call = functools.partial(
            self._sales.sync_sales, max_attempts=self._settings.max_attempts
        )
        return await self._run(SyncKind.SALES, call)

    async def manual_sync(self) -> SyncResult:
        """Push queued sales now on user request."""
        return await self._run(SyncKind.SALES, self._sales.manual_sync)

    async def run_all(self) -> list[SyncResult]:
        """Run product and sales sync concurrently."""
        return list(await asyncio.gather(self.run_products(), self.run_sales()))

    def reset_products(self) -> bool:
        """Reset the catalog checkpoint.

        Returns:
            False if a product sync is in flight (nothing was reset).
        """
        if self._states[SyncKind.PRODUCTS] == RunState.RUNNING:
            logger.warning("Cannot reset product sync while it is running")
            return False
        self._products.reset_sync()
        return True

    # === Scheduling ===

    def start(self) -> asyncio.Task[list[SyncResult]] | None:
        """Register the recurring sales job and check immediately.

        Must be called from a running event loop.

        Returns:
            The task running the immediate check, or None if already started.
        """
        if self._scheduler is not None:
            return None  # Already running

        if self._states[SyncKind.SALES] == RunState.IDLE:
            self._sales.recover_interrupted()

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_sales,
            trigger=IntervalTrigger(seconds=self._settings.sales_interval),
            id=SALES_JOB_ID,
            name="Periodic sales sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            "Sync orchestrator started (sales every %.0fs)",
            self._settings.sales_interval,
        )

        task = asyncio.get_running_loop().create_task(self.run_all())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def stop(self) -> None:
        """Stop scheduling runs. In-flight runs finish on their own."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync orchestrator stopped")

    def set_online(self, online: bool) -> asyncio.Task[list[SyncResult]] | None:
        """React to a connectivity change.

        Returns:
            The immediate-check task when going online starts scheduling.
        """
        was_online = self._online
        self._online = online
        if online and not self.is_scheduled:
            logger.info("Back online, resuming sync")
            return self.start()
        if not online and was_online and self.is_scheduled:
            logger.info("Gone offline, pausing sync")
            self.stop()
        return None

    async def shutdown(self) -> None:
        """Stop scheduling and wait for outstanding immediate checks."""
        self.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # === Status ===

    def get_status(self) -> dict[str, Any]:
        """Read-only snapshot for a status display."""
        status: dict[str, Any] = {
            "online": self._online,
            "scheduled": self.is_scheduled,
            "products": {
                "state": self._states[SyncKind.PRODUCTS].value,
                "progress": self._products.get_progress().to_dict(),
            },
            "sales": {
                "state": self._states[SyncKind.SALES].value,
                "unsynced": self._sales.unsynced_count(),
            },
        }
        for kind, result in self._last_results.items():
            entry: dict[str, Any] = {"outcome": result.outcome.value}
            if result.error is not None:
                entry["error"] = describe_error(result.error)
            status[kind.value]["last_result"] = entry
        return status
