"""Sales queue commands for the possync CLI.

Commands:
- sales add: Record a sale locally
- sales sync: Push unsynced sales now
- sales status: Show the unsynced queue
- sales cleanup: Purge old synced sales
"""

from __future__ import annotations

import asyncio
import sys

import click

from possync.client.api import AuthenticationError, HTTPClient, TransportError
from possync.client.cli.common import format_result, open_store, require_server_config
from possync.client.cli.config import ConfigError, get_sync_settings, load_config
from possync.client.state import LocalStore
from possync.client.sync.sales import SalesSyncController
from possync.client.sync.types import SalesSyncError, SyncResult, ValidationError
from possync.core.config import ServerConfig, SyncSettings


async def _push(
    store: LocalStore, server_config: ServerConfig, token: str, settings: SyncSettings
) -> SyncResult:
    async with HTTPClient.from_config(server_config) as client:
        controller = SalesSyncController(
            store,
            client,
            max_push_retries=settings.max_push_retries,
            retry_backoff=settings.retry_backoff,
        )
        return await controller.manual_sync(server_config.server_url, token)


@click.group()
def sales() -> None:
    """Sales queue commands."""


@sales.command("add")
@click.argument("invoice_number")
@click.option("--subtotal", required=True, help="Amount before tax.")
@click.option("--tax", "tax_amount", default="0", show_default=True, help="Tax amount.")
@click.option("--method", "payment_method", default="cash", show_default=True, help="Payment method.")
@click.option("--customer", "customer_name", default=None, help="Customer name.")
@click.option("--phone", "customer_phone", default=None, help="Customer phone.")
def add_cmd(
    invoice_number: str,
    subtotal: str,
    tax_amount: str,
    payment_method: str,
    customer_name: str | None,
    customer_phone: str | None,
) -> None:
    """Record a sale in the local store.

    The sale is queued and pushed by the next sync.
    """
    config = load_config()

    with open_store(config) as store:
        try:
            sale = store.create_sale(
                invoice_number,
                subtotal=subtotal,
                tax_amount=tax_amount,
                payment_method=payment_method,
                customer_name=customer_name,
                customer_phone=customer_phone,
            )
        except ValidationError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Recorded sale {sale.invoice_number} ({sale.total_amount}), pending sync.")


@sales.command("sync")
def sync_cmd() -> None:
    """Push every unsynced sale to the server now."""
    config = load_config()
    server_config, token = require_server_config(config)
    try:
        settings = get_sync_settings(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with open_store(config) as store:
        try:
            result = asyncio.run(_push(store, server_config, token, settings))
        except SalesSyncError as e:
            click.echo(f"Error: {e}", err=True)
            for failure in e.failures:
                click.echo(f"  {failure.invoice_number}: {failure.message}", err=True)
            click.echo(f"{e.synced} sale(s) synced. Failed sales are retried on the next sync.")
            if any(isinstance(f.error, AuthenticationError) for f in e.failures):
                click.echo("Server rejected the token.", err=True)
                click.echo("Sign in again with 'possync configure --token TOKEN'.", err=True)
            sys.exit(1)
        except TransportError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(format_result(result))


@sales.command("status")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Maximum sales to list.")
def status_cmd(limit: int) -> None:
    """Show sales waiting for the server."""
    with open_store() as store:
        count = store.count_unsynced_sales()
        queued = store.list_unsynced_sales()

    click.echo(f"Unsynced sales: {count}")
    for sale in queued[:limit]:
        line = (
            f"  {sale.invoice_number}  {sale.total_amount}  {sale.sync_status.value}"
            f"  attempts={sale.sync_attempts}"
        )
        if sale.last_sync_error:
            line += f"  error={sale.last_sync_error}"
        click.echo(line)


@sales.command("cleanup")
@click.option(
    "--days",
    "-d",
    type=click.IntRange(min=0),
    default=30,
    show_default=True,
    help="Delete synced sales confirmed more than N days ago.",
)
def cleanup_cmd(days: int) -> None:
    """Purge synced sales from the local store.

    Unsynced sales are never deleted.
    """
    with open_store() as store:
        deleted = store.cleanup_synced_sales(older_than_days=days)

    if deleted:
        click.echo(f"Deleted {deleted} synced sale(s) older than {days} days.")
    else:
        click.echo("No synced sales to clean up.")
