"""Product catalog commands for the possync CLI.

Commands:
- products sync: Pull the remaining catalog pages
- products status: Show the catalog checkpoint
- products reset: Clear the checkpoint so the next sync starts at page 1
- products search: Search the local catalog
"""

from __future__ import annotations

import asyncio
import sys

import click

from possync.client.api import HTTPClient, TransportError
from possync.client.cli.common import format_result, open_store, require_server_config
from possync.client.cli.config import ConfigError, get_sync_settings, load_config
from possync.client.state import LocalStore
from possync.client.sync.products import ProductSyncController
from possync.client.sync.types import SyncError, SyncOutcome, SyncResult
from possync.core.config import ServerConfig, SyncSettings


async def _pull(
    store: LocalStore, server_config: ServerConfig, token: str, settings: SyncSettings
) -> SyncResult:
    async with HTTPClient.from_config(server_config) as client:
        controller = ProductSyncController(store, client, page_delay=settings.page_delay)
        return await controller.start_sync(server_config.server_url, token)


@click.group()
def products() -> None:
    """Product catalog commands."""


@products.command("sync")
def sync_cmd() -> None:
    """Pull the product catalog from the server.

    Resumes after the last page stored locally. An interrupted sync can be
    run again without pulling finished pages twice.
    """
    config = load_config()
    server_config, token = require_server_config(config)
    try:
        settings = get_sync_settings(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with open_store(config) as store:
        try:
            result = asyncio.run(_pull(store, server_config, token, settings))
        except (TransportError, SyncError) as e:
            progress = store.get_sync_progress()
            click.echo(f"Error: Product sync failed: {e}", err=True)
            click.echo(
                f"Stopped after page {progress.current_page} of "
                f"{progress.last_page or '?'}. Run again to resume.",
                err=True,
            )
            sys.exit(1)

        click.echo(format_result(result))
        if result.outcome == SyncOutcome.SKIPPED_COMPLETED:
            click.echo(
                f"Catalog already synced ({store.count_products()} products). "
                "Run 'possync products reset' to pull it again."
            )


@products.command("status")
def status_cmd() -> None:
    """Show product sync progress."""
    with open_store() as store:
        progress = store.get_sync_progress()
        count = store.count_products()

    state = "completed" if progress.is_completed else "incomplete"
    click.echo(f"Catalog: {state}")
    click.echo(f"Pages: {progress.current_page}/{progress.last_page or '?'}")
    click.echo(f"Products stored: {count}")
    if progress.last_sync_at:
        click.echo(f"Last page synced at: {progress.last_sync_at.isoformat()}")


@products.command("reset")
@click.option("--force", is_flag=True, help="Skip confirmation prompt.")
def reset_cmd(force: bool) -> None:
    """Reset product sync progress.

    Stored products are kept; the next sync pulls the catalog from page 1
    and overwrites them.
    """
    if not force and not click.confirm("Pull the whole catalog again on the next sync?"):
        click.echo("Aborted.")
        return

    with open_store() as store:
        store.reset_sync_progress()
    click.echo("Product sync progress has been reset.")


@products.command("search")
@click.argument("query")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Maximum results.")
def search_cmd(query: str, limit: int) -> None:
    """Search the local catalog by name, code or category."""
    with open_store() as store:
        results = store.search_products(query, limit=limit)

    if not results:
        click.echo("No products found.")
        return

    for product in results:
        code = f" [{product.code}]" if product.code else ""
        click.echo(f"{product.name}{code}  {product.price}  ({product.category})")
