"""Tests for CLI configuration helpers."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from possync.client.cli.config import (
    BASE_URL_ENV,
    ConfigError,
    get_auth_token,
    get_config_file,
    get_database_path,
    get_server_config,
    get_sync_settings,
    load_config,
    resolve_base_url,
    save_config,
)


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Use a temporary config directory."""
    monkeypatch.delenv(BASE_URL_ENV, raising=False)
    with patch("possync.client.cli.config.get_config_dir", return_value=tmp_path / ".possync"):
        yield tmp_path / ".possync"


class TestConfigFile:
    """Tests for loading and saving the config file."""

    def test_load_missing(self, config_dir: Path) -> None:
        """Should return an empty config when no file exists."""
        assert load_config() == {}

    def test_save_and_load(self, config_dir: Path) -> None:
        """Should create the directory and round-trip values."""
        save_config({"base_url": "http://test", "tax_enabled": True})

        assert get_config_file() == config_dir / "config.json"
        assert load_config() == {"base_url": "http://test", "tax_enabled": True}


class TestResolvers:
    """Tests for the setting resolvers."""

    def test_database_default(self, config_dir: Path) -> None:
        """Should default to pos.db in the config directory."""
        assert get_database_path({}) == config_dir / "pos.db"

    def test_database_configured(self, config_dir: Path, tmp_path: Path) -> None:
        """Should use the configured path."""
        assert get_database_path({"database": str(tmp_path / "x.db")}) == tmp_path / "x.db"

    def test_base_url_from_config(self, config_dir: Path) -> None:
        """Should strip the trailing slash."""
        assert resolve_base_url({"base_url": "http://test/api/"}) == "http://test/api"

    def test_base_url_env_override(self, config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should prefer the environment variable."""
        monkeypatch.setenv(BASE_URL_ENV, "http://env")

        assert resolve_base_url({"base_url": "http://test"}) == "http://env"

    def test_base_url_missing(self, config_dir: Path) -> None:
        """Should raise ConfigError without a base URL."""
        with pytest.raises(ConfigError, match="No server configured"):
            resolve_base_url({})

    def test_auth_token(self, config_dir: Path) -> None:
        """Should return None for a missing or empty token."""
        assert get_auth_token({"auth_token": "tok"}) == "tok"
        assert get_auth_token({"auth_token": ""}) is None
        assert get_auth_token({}) is None

    def test_server_config(self, config_dir: Path) -> None:
        """Should build connection settings."""
        server_config = get_server_config(
            {"base_url": "https://pos.example.com/", "auth_token": "tok", "timeout": 10}
        )

        assert server_config.server_url == "https://pos.example.com"
        assert server_config.token == "tok"
        assert server_config.timeout == 10.0
        assert server_config.verify_ssl is True

    def test_sync_settings(self, config_dir: Path) -> None:
        """Should read the sync section."""
        settings = get_sync_settings({"sync": {"sales_interval": 30, "max_attempts": 4}})

        assert settings.sales_interval == 30
        assert settings.max_attempts == 4
        assert get_sync_settings({}).sales_interval == 120.0

    @pytest.mark.parametrize("section", [{"sales_interval": -1}, {"unknown": 1}])
    def test_sync_settings_invalid(self, config_dir: Path, section: dict[str, object]) -> None:
        """Should raise ConfigError for bad values or unknown keys."""
        with pytest.raises(ConfigError, match="Invalid sync settings"):
            get_sync_settings({"sync": section})
