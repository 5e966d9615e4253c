"""Tests for the sync orchestrator."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from possync.client.api import AuthenticationError, TransportError
from possync.client.state import SyncProgress
from possync.client.sync.orchestrator import SALES_JOB_ID, SyncOrchestrator
from possync.client.sync.types import (
    SaleFailure,
    SalesSyncError,
    SyncOutcome,
    SyncResult,
    ValidationError,
)
from possync.core.config import SyncSettings
from possync.core.types import RunState, SyncKind

BASE_URL = "http://test"


def make_products() -> MagicMock:
    """Create a mock product controller."""
    products = MagicMock()
    products.start_sync = AsyncMock(
        return_value=SyncResult(SyncKind.PRODUCTS, SyncOutcome.COMPLETED, pages=1, products=5)
    )
    products.get_progress.return_value = SyncProgress(current_page=1, last_page=2)
    return products


def make_sales() -> MagicMock:
    """Create a mock sales controller."""
    sales = MagicMock()
    sales.sync_sales = AsyncMock(
        return_value=SyncResult(SyncKind.SALES, SyncOutcome.COMPLETED, synced=2)
    )
    sales.manual_sync = AsyncMock(
        return_value=SyncResult(SyncKind.SALES, SyncOutcome.COMPLETED, synced=1)
    )
    sales.unsynced_count.return_value = 3
    sales.recover_interrupted.return_value = 0
    return sales


def make_orchestrator(
    token: str | None = "tok",
    settings: SyncSettings | None = None,
) -> tuple[SyncOrchestrator, MagicMock, MagicMock]:
    """Create an orchestrator with mock controllers."""
    products = make_products()
    sales = make_sales()
    orchestrator = SyncOrchestrator(
        products=products,
        sales=sales,
        token_provider=lambda: token,
        base_url_provider=lambda: BASE_URL,
        settings=settings,
    )
    return orchestrator, products, sales


class TestGuards:
    """Tests for the run guards."""

    @pytest.mark.asyncio
    async def test_runs_controller(self) -> None:
        """Should call the controller with the base URL and token."""
        orchestrator, products, _ = make_orchestrator()

        result = await orchestrator.run_products()

        assert result.outcome == SyncOutcome.COMPLETED
        products.start_sync.assert_awaited_once_with(BASE_URL, "tok")
        assert orchestrator.state(SyncKind.PRODUCTS) == RunState.IDLE
        assert orchestrator.last_result(SyncKind.PRODUCTS) == result

    @pytest.mark.asyncio
    async def test_no_token_skips_silently(self) -> None:
        """Should not call the controller without a token."""
        orchestrator, products, sales = make_orchestrator(token=None)

        results = await orchestrator.run_all()

        assert [r.outcome for r in results] == [SyncOutcome.SKIPPED_NO_TOKEN] * 2
        products.start_sync.assert_not_awaited()
        sales.sync_sales.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_at_most_one_run_per_kind(self) -> None:
        """Should skip a second run of the same kind while one is in flight."""
        orchestrator, products, _ = make_orchestrator()
        gate = asyncio.Event()

        async def slow_sync(base_url: str, token: str) -> SyncResult:
            await gate.wait()
            return SyncResult(SyncKind.PRODUCTS, SyncOutcome.COMPLETED, pages=1)

        products.start_sync.side_effect = slow_sync

        first = asyncio.create_task(orchestrator.run_products())
        await asyncio.sleep(0)
        assert orchestrator.state(SyncKind.PRODUCTS) == RunState.RUNNING
        second = await orchestrator.run_products()
        gate.set()
        first_result = await first

        assert second.outcome == SyncOutcome.SKIPPED_RUNNING
        assert first_result.outcome == SyncOutcome.COMPLETED
        assert products.start_sync.await_count == 1
        assert orchestrator.state(SyncKind.PRODUCTS) == RunState.IDLE

    @pytest.mark.asyncio
    async def test_concurrent_triggers(self) -> None:
        """Should run only one of two simultaneous sales triggers."""
        orchestrator, _, sales = make_orchestrator()

        async def slow_sync(base_url: str, token: str, **kwargs: object) -> SyncResult:
            await asyncio.sleep(0)
            return SyncResult(SyncKind.SALES, SyncOutcome.COMPLETED, synced=1)

        sales.sync_sales.side_effect = slow_sync

        results = await asyncio.gather(orchestrator.run_sales(), orchestrator.run_sales())

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == [SyncOutcome.COMPLETED.value, SyncOutcome.SKIPPED_RUNNING.value]
        assert sales.sync_sales.await_count == 1

    @pytest.mark.asyncio
    async def test_kinds_run_independently(self) -> None:
        """Should let products and sales run at the same time."""
        orchestrator, products, sales = make_orchestrator()

        results = await orchestrator.run_all()

        assert [r.outcome for r in results] == [SyncOutcome.COMPLETED] * 2
        products.start_sync.assert_awaited_once()
        sales.sync_sales.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_base_url_resolved_per_attempt(self) -> None:
        """Should ask for the base URL on every run."""
        products = make_products()
        urls = iter(["http://one", "http://two"])
        orchestrator = SyncOrchestrator(
            products=products,
            sales=make_sales(),
            token_provider=lambda: "tok",
            base_url_provider=lambda: next(urls),
        )

        await orchestrator.run_products()
        await orchestrator.run_products()

        called = [c.args[0] for c in products.start_sync.await_args_list]
        assert called == ["http://one", "http://two"]


class TestFailures:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_transport_error_becomes_failed(self) -> None:
        """Should return FAILED with the error attached."""
        orchestrator, products, _ = make_orchestrator()
        error = TransportError("HTTP 500: boom", 500)
        products.start_sync.side_effect = error

        result = await orchestrator.run_products()

        assert result.outcome == SyncOutcome.FAILED
        assert result.error is error
        assert orchestrator.state(SyncKind.PRODUCTS) == RunState.IDLE

    @pytest.mark.asyncio
    async def test_validation_error_becomes_failed(self) -> None:
        """Should return FAILED for malformed payloads."""
        orchestrator, products, _ = make_orchestrator()
        products.start_sync.side_effect = ValidationError("no data")

        result = await orchestrator.run_products()

        assert result.outcome == SyncOutcome.FAILED
        assert not result.ok

    @pytest.mark.asyncio
    async def test_sales_sync_error_counts(self) -> None:
        """Should report synced and failed counts of a partial failure."""
        orchestrator, _, sales = make_orchestrator()
        failure = SaleFailure("id-2", "INV-2", TransportError("HTTP 500", 500))
        sales.sync_sales.side_effect = SalesSyncError([failure], synced=2)

        result = await orchestrator.run_sales()

        assert result.outcome == SyncOutcome.FAILED
        assert result.synced == 2
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed(self) -> None:
        """Should not let a bug escape the orchestrator."""
        orchestrator, products, _ = make_orchestrator()
        products.start_sync.side_effect = RuntimeError("bug")

        result = await orchestrator.run_products()

        assert result.outcome == SyncOutcome.FAILED
        assert orchestrator.state(SyncKind.PRODUCTS) == RunState.IDLE

    @pytest.mark.asyncio
    async def test_error_in_status(self) -> None:
        """Should expose the last error with its status code."""
        orchestrator, _, sales = make_orchestrator()
        sales.sync_sales.side_effect = AuthenticationError("HTTP 401: expired", 401)

        await orchestrator.run_sales()
        status = orchestrator.get_status()

        assert status["sales"]["last_result"] == {
            "outcome": "failed",
            "error": {"status_code": 401, "message": "HTTP 401: expired"},
        }


class TestRuns:
    """Tests for the run entry points."""

    @pytest.mark.asyncio
    async def test_run_sales_passes_attempt_cap(self) -> None:
        """Should apply the configured attempt cap to scheduled runs."""
        orchestrator, _, sales = make_orchestrator(settings=SyncSettings(max_attempts=5))

        await orchestrator.run_sales()

        sales.sync_sales.assert_awaited_once_with(BASE_URL, "tok", max_attempts=5)

    @pytest.mark.asyncio
    async def test_manual_sync(self) -> None:
        """Should run the manual sales sync."""
        orchestrator, _, sales = make_orchestrator(settings=SyncSettings(max_attempts=5))

        result = await orchestrator.manual_sync()

        assert result.synced == 1
        sales.manual_sync.assert_awaited_once_with(BASE_URL, "tok")
        sales.sync_sales.assert_not_awaited()

    def test_reset_products(self) -> None:
        """Should reset the catalog checkpoint when idle."""
        orchestrator, products, _ = make_orchestrator()

        assert orchestrator.reset_products() is True
        products.reset_sync.assert_called_once()

    @pytest.mark.asyncio
    async def test_reset_refused_while_running(self) -> None:
        """Should not reset while a product sync is in flight."""
        orchestrator, products, _ = make_orchestrator()
        gate = asyncio.Event()

        async def slow_sync(base_url: str, token: str) -> SyncResult:
            await gate.wait()
            return SyncResult(SyncKind.PRODUCTS, SyncOutcome.COMPLETED)

        products.start_sync.side_effect = slow_sync
        task = asyncio.create_task(orchestrator.run_products())
        await asyncio.sleep(0)

        assert orchestrator.reset_products() is False
        products.reset_sync.assert_not_called()
        gate.set()
        await task


class TestScheduling:
    """Tests for start, stop and connectivity changes."""

    @pytest.mark.asyncio
    async def test_start_registers_sales_job(self) -> None:
        """Should schedule sales every interval and check immediately."""
        orchestrator, products, sales = make_orchestrator(
            settings=SyncSettings(sales_interval=60)
        )

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler") as scheduler_cls:
            task = orchestrator.start()
            assert task is not None
            await task

        scheduler = scheduler_cls.return_value
        scheduler.add_job.assert_called_once()
        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == SALES_JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["trigger"].interval == timedelta(seconds=60)
        scheduler.start.assert_called_once()
        sales.recover_interrupted.assert_called_once()
        products.start_sync.assert_awaited_once()
        sales.sync_sales.assert_awaited_once()
        assert orchestrator.is_scheduled

    @pytest.mark.asyncio
    async def test_default_interval(self) -> None:
        """Should push sales every two minutes by default."""
        orchestrator, _, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler") as scheduler_cls:
            await orchestrator.start()  # type: ignore[misc]

        trigger = scheduler_cls.return_value.add_job.call_args.kwargs["trigger"]
        assert trigger.interval == timedelta(seconds=120)

    @pytest.mark.asyncio
    async def test_start_twice(self) -> None:
        """Should not register a second job."""
        orchestrator, _, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler") as scheduler_cls:
            first = orchestrator.start()
            second = orchestrator.start()
            assert first is not None
            await first

        assert second is None
        assert scheduler_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_stop(self) -> None:
        """Should shut the scheduler down."""
        orchestrator, _, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler") as scheduler_cls:
            await orchestrator.start()  # type: ignore[misc]
            orchestrator.stop()

        scheduler_cls.return_value.shutdown.assert_called_once_with(wait=False)
        assert not orchestrator.is_scheduled

    @pytest.mark.asyncio
    async def test_offline_then_online(self) -> None:
        """Should stop when going offline and start again when back online."""
        orchestrator, products, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler"):
            await orchestrator.start()  # type: ignore[misc]

            assert orchestrator.set_online(False) is None
            assert not orchestrator.is_scheduled
            assert not orchestrator.online

            task = orchestrator.set_online(True)
            assert task is not None
            await task

            assert orchestrator.is_scheduled
            assert orchestrator.online
            await orchestrator.shutdown()

        assert products.start_sync.await_count == 2

    @pytest.mark.asyncio
    async def test_online_while_scheduled_is_noop(self) -> None:
        """Should not restart an already running schedule."""
        orchestrator, _, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler") as scheduler_cls:
            await orchestrator.start()  # type: ignore[misc]
            assert orchestrator.set_online(True) is None
            await orchestrator.shutdown()

        assert scheduler_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_immediate_check(self) -> None:
        """Should stop scheduling and finish the immediate check."""
        orchestrator, products, _ = make_orchestrator()

        with patch("possync.client.sync.orchestrator.AsyncIOScheduler"):
            orchestrator.start()
            await orchestrator.shutdown()

        products.start_sync.assert_awaited_once()
        assert not orchestrator.is_scheduled

    @pytest.mark.asyncio
    async def test_with_real_scheduler(self) -> None:
        """Should start and stop an actual AsyncIOScheduler."""
        orchestrator, _, _ = make_orchestrator(settings=SyncSettings(sales_interval=3600))

        task = orchestrator.start()
        assert task is not None
        await task
        assert orchestrator.is_scheduled

        await orchestrator.shutdown()
        assert not orchestrator.is_scheduled


class TestStatus:
    """Tests for get_status."""

    def test_status_snapshot(self) -> None:
        """Should report state, progress and queue size."""
        orchestrator, _, _ = make_orchestrator()

        status = orchestrator.get_status()

        assert status["online"] is True
        assert status["scheduled"] is False
        assert status["products"]["state"] == "idle"
        assert status["products"]["progress"]["current_page"] == 1
        assert status["products"]["progress"]["last_page"] == 2
        assert status["sales"]["unsynced"] == 3
        assert "last_result" not in status["sales"]
