"""Background sync commands for the possync CLI.

Commands:
- run: Keep the terminal in sync until interrupted
- status: Show configuration, catalog progress and the sales queue
"""

from __future__ import annotations

import asyncio
import sys

import click

from possync.client.api import HTTPClient
from possync.client.cli.common import format_result, open_store, require_server_config
from possync.client.cli.config import (
    ConfigError,
    get_auth_token,
    get_database_path,
    get_sync_settings,
    load_config,
    resolve_base_url,
)
from possync.client.state import LocalStore
from possync.client.sync.orchestrator import SyncOrchestrator
from possync.client.sync.products import ProductSyncController
from possync.client.sync.sales import SalesSyncController
from possync.client.sync.types import SyncResult
from possync.core.config import ServerConfig, SyncSettings


def _current_token() -> str | None:
    return get_auth_token(load_config())


def _current_base_url() -> str:
    return resolve_base_url(load_config())


async def _serve(
    store: LocalStore,
    server_config: ServerConfig,
    settings: SyncSettings,
    once: bool,
) -> list[SyncResult]:
    """Run the orchestrator until cancelled, or for one check with once."""
    async with HTTPClient.from_config(server_config) as client:
        orchestrator = SyncOrchestrator(
            products=ProductSyncController(store, client, page_delay=settings.page_delay),
            sales=SalesSyncController(
                store,
                client,
                max_push_retries=settings.max_push_retries,
                retry_backoff=settings.retry_backoff,
            ),
            token_provider=_current_token,
            base_url_provider=_current_base_url,
            settings=settings,
        )

        if once:
            store.recover_interrupted_sales()
            return await orchestrator.run_all()

        try:
            first_check = orchestrator.start()
            if first_check is not None:
                for result in await first_check:
                    click.echo(format_result(result))
            # Scheduled sales runs continue until the task is cancelled.
            await asyncio.Event().wait()
        finally:
            await orchestrator.shutdown()
    return []


@click.command()
@click.option("--once", is_flag=True, help="Run one product and sales check, then exit.")
def run(once: bool) -> None:
    """Keep this terminal in sync with the server.

    Pulls the product catalog, then pushes queued sales every interval
    (120 seconds by default) until interrupted with Ctrl+C.
    """
    config = load_config()
    server_config, _ = require_server_config(config)
    try:
        settings = get_sync_settings(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with open_store(config) as store:
        if not once:
            click.echo(
                f"Syncing with {server_config.server_url} "
                f"(sales every {settings.sales_interval:.0f}s). Press Ctrl+C to stop."
            )
        try:
            results = asyncio.run(_serve(store, server_config, settings, once))
        except KeyboardInterrupt:
            click.echo("\nStopped.")
            return

    for result in results:
        click.echo(format_result(result))
    if any(not result.ok for result in results):
        sys.exit(1)


@click.command()
def status() -> None:
    """Show configuration, catalog progress and the sales queue."""
    config = load_config()

    try:
        base_url: str | None = resolve_base_url(config)
    except ConfigError:
        base_url = None

    click.echo(f"Server: {base_url or '(not configured)'}")
    click.echo(f"Signed in: {'yes' if get_auth_token(config) else 'no'}")
    click.echo(f"Database: {get_database_path(config)}")

    with open_store(config) as store:
        progress = store.get_sync_progress()
        product_count = store.count_products()
        unsynced = store.count_unsynced_sales()

    catalog = "completed" if progress.is_completed else (
        f"page {progress.current_page}/{progress.last_page or '?'}"
    )
    click.echo(f"Catalog: {catalog} ({product_count} products)")
    click.echo(f"Unsynced sales: {unsynced}")
