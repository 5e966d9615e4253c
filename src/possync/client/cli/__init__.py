"""Command-line interface for possync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Show or update the terminal configuration
- products: Catalog sync, progress, reset and search
- sales: Record, push, inspect and clean up sales
- status: Overall sync status
- run: Keep the terminal in sync until interrupted
"""

from __future__ import annotations

import logging

import click

from possync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_database_path,
    load_config,
    resolve_base_url,
    save_config,
)
from possync.client.cli.configure import configure
from possync.client.cli.products import products
from possync.client.cli.run import run, status
from possync.client.cli.sales import sales

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(package_name="possync")
@click.option("--verbose", "-v", count=True, help="Show sync logs (-vv for debug output).")
def cli(verbose: int) -> None:
    """possync - Offline-first POS synchronization."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")


# Setup
cli.add_command(configure)

# Sync commands
cli.add_command(products)
cli.add_command(sales)
cli.add_command(status)
cli.add_command(run)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_database_path",
    "load_config",
    "resolve_base_url",
    "save_config",
]
