"""Helpers shared by the CLI commands."""

from __future__ import annotations

import sys
from typing import Any

import click

from possync.client.cli.config import (
    ConfigError,
    get_database_path,
    get_server_config,
    load_config,
)
from possync.client.state import LocalStore
from possync.client.sync.types import SyncResult, describe_error
from possync.core.config import ServerConfig


def require_server_config(config: dict[str, Any]) -> tuple[ServerConfig, str]:
    """Get connection settings and the bearer token, or exit with an error."""
    try:
        server_config = get_server_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not server_config.token:
        click.echo(
            "Error: Not signed in. Run 'possync configure --token TOKEN' first.",
            err=True,
        )
        sys.exit(1)
    return server_config, server_config.token


def open_store(config: dict[str, Any] | None = None) -> LocalStore:
    """Open the local store named by the config."""
    if config is None:
        config = load_config()
    db_path = get_database_path(config)
    return LocalStore(db_path)


def format_result(result: SyncResult) -> str:
    """One-line summary of a sync result."""
    kind = result.kind.value.capitalize()
    parts = [f"{kind}: {result.outcome.value}"]
    if result.pages:
        parts.append(f"{result.pages} page(s)")
    if result.products:
        parts.append(f"{result.products} product(s)")
    if result.synced:
        parts.append(f"{result.synced} synced")
    if result.failed:
        parts.append(f"{result.failed} failed")
    line = ", ".join(parts)
    if result.error is not None:
        detail = describe_error(result.error)
        code = f" (HTTP {detail['status_code']})" if detail["status_code"] else ""
        line += f" - {detail['message']}{code}"
    return line
