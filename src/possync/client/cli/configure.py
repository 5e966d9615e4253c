"""Configuration command for the possync CLI.

Commands:
- configure: Store the server URL, token and local options
"""

from __future__ import annotations

import click

from possync.client.cli.config import (
    get_config_file,
    get_database_path,
    load_config,
    save_config,
)


def _mask(token: str) -> str:
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


@click.command()
@click.option("--base-url", default=None, help="API base URL (e.g., https://pos.example.com/api).")
@click.option("--token", default=None, help="Bearer token of the signed-in user.")
@click.option("--clear-token", is_flag=True, help="Forget the stored token (sign out).")
@click.option(
    "--database",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the local SQLite store (default: ~/.possync/pos.db).",
)
@click.option(
    "--tax/--no-tax",
    "tax_enabled",
    default=None,
    help="Whether tax is applied to new sales.",
)
def configure(
    base_url: str | None,
    token: str | None,
    clear_token: bool,
    database: str | None,
    tax_enabled: bool | None,
) -> None:
    """Show or update the terminal configuration.

    Without options, prints the current settings.
    """
    config = load_config()
    changed = False

    if base_url is not None:
        config["base_url"] = base_url.rstrip("/")
        changed = True
    if token is not None:
        config["auth_token"] = token
        changed = True
    elif clear_token and "auth_token" in config:
        del config["auth_token"]
        changed = True
    if database is not None:
        config["database"] = database
        changed = True
    if tax_enabled is not None:
        config["tax_enabled"] = tax_enabled
        changed = True

    if changed:
        save_config(config)
        click.echo(f"Configuration saved to {get_config_file()}")

    token_value = config.get("auth_token")
    click.echo(f"Server: {config.get('base_url') or '(not set)'}")
    click.echo(f"Token: {_mask(token_value) if token_value else '(not signed in)'}")
    click.echo(f"Database: {get_database_path(config)}")
    click.echo(f"Tax: {'enabled' if config.get('tax_enabled') else 'disabled'}")
