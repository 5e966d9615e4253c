"""Configuration utilities for the possync CLI.

This module provides shared configuration functions used across CLI commands.
Settings live in ~/.possync/config.json:

    {
      "base_url": "https://pos.example.com/api",
      "auth_token": "...",
      "database": "/var/lib/possync/pos.db",
      "tax_enabled": true,
      "sync": {"sales_interval": 120, "max_attempts": 10}
    }
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from possync.core.config import DEFAULT_TIMEOUT, ServerConfig, SyncSettings

BASE_URL_ENV = "POSSYNC_BASE_URL"
DATABASE_FILENAME = "pos.db"


class ConfigError(Exception):
    """Raised when a required setting is missing or invalid."""


def get_config_dir() -> Path:
    """Get the configuration directory for possync.

    Returns:
        Path to ~/.possync.
    """
    return Path.home() / ".possync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_database_path(config: dict[str, Any]) -> Path:
    """Get the local store path.

    Returns:
        Configured database path, or pos.db in the config directory.
    """
    if config.get("database"):
        return Path(config["database"]).expanduser()
    return get_config_dir() / DATABASE_FILENAME


def resolve_base_url(config: dict[str, Any]) -> str:
    """Resolve the API base URL.

    The POSSYNC_BASE_URL environment variable takes precedence over the
    config file. Called for every sync attempt, so a changed setting is
    picked up without a restart.

    Raises:
        ConfigError: If no base URL is configured.
    """
    base_url = os.environ.get(BASE_URL_ENV) or config.get("base_url")
    if not base_url:
        raise ConfigError(
            "No server configured. Run 'possync configure --base-url URL' "
            f"or set {BASE_URL_ENV}."
        )
    return str(base_url).rstrip("/")


def get_auth_token(config: dict[str, Any]) -> str | None:
    """Get the stored bearer token, if any."""
    token = config.get("auth_token")
    return str(token) if token else None


def get_server_config(config: dict[str, Any]) -> ServerConfig:
    """Build the connection settings from the config file.

    Raises:
        ConfigError: If no base URL is configured.
    """
    return ServerConfig(
        server_url=resolve_base_url(config),
        token=get_auth_token(config),
        timeout=float(config.get("timeout", DEFAULT_TIMEOUT)),
        verify_ssl=bool(config.get("verify_ssl", True)),
    )


def get_sync_settings(config: dict[str, Any]) -> SyncSettings:
    """Build sync tuning from the optional "sync" section of the config.

    Raises:
        ConfigError: If a value is out of range.
    """
    section = config.get("sync") or {}
    try:
        return SyncSettings(**section)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid sync settings: {e}") from e
