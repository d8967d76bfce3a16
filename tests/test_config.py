"""
Tests for Config loading, overrides and typed properties.
"""

from pathlib import Path

import pytest
import yaml

from signage_player.common.config import Config, DEFAULT_CONFIG_PATH, _deep_merge


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove SIGNAGE_* variables so tests see packaged defaults."""
    for name in ("SIGNAGE_CONFIG", "SIGNAGE_API_URL", "SIGNAGE_SOCKET_URL",
                 "SIGNAGE_CONSOLE_URL", "SIGNAGE_CACHE_DIR",
                 "SIGNAGE_IDENTITY_FILE", "SIGNAGE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for the packaged default configuration."""

    def test_default_path_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_defaults_loaded(self):
        config = Config()
        assert config.api_base_url == "https://staging.service.dscdn.salext.net"
        assert config.socket_namespace == "/screen-socket"
        assert config.refresh_interval == 5
        assert config.heartbeat_interval == 5
        assert config.splash_min_seconds == 5
        assert config.default_duration == 10
        assert config.default_background == "black"
        assert config.content_version == 1
        assert config.request_timeout == 10

    def test_paths_are_expanded(self):
        config = Config()
        assert isinstance(config.cache_dir, Path)
        assert "~" not in str(config.cache_dir)
        assert "~" not in str(config.identity_file)


class TestUserConfig:
    """Tests for layering a user file over the defaults."""

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_path / "missing.yaml"))

    def test_user_values_override_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"player": {"refresh_interval": 30}}))

        config = Config(str(path))

        assert config.refresh_interval == 30
        # Untouched keys keep their defaults
        assert config.heartbeat_interval == 5

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"api": {"console_url": "https://console.test/"}}))
        monkeypatch.setenv("SIGNAGE_CONFIG", str(path))

        config = Config()

        assert config.console_url == "https://console.test"

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SIGNAGE_API_URL", "https://api.test/")
        monkeypatch.setenv("SIGNAGE_CACHE_DIR", str(tmp_path / "cache"))

        config = Config()

        assert config.api_base_url == "https://api.test"
        assert config.cache_dir == tmp_path / "cache"

    def test_socket_url_falls_back_to_api_url(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"api": {"base_url": "https://api.test", "socket_url": None}}))

        assert Config(str(path)).socket_url == "https://api.test"


class TestGetSet:
    """Tests for dot-notation access and saving."""

    def test_get_missing_returns_default(self):
        assert Config().get("nope.nothing", "fallback") == "fallback"

    def test_set_creates_nested_keys(self):
        config = Config()
        config.set("extra.section.value", 3)
        assert config.get("extra.section.value") == 3

    def test_save_round_trip(self, tmp_path):
        config = Config()
        config.set("player.refresh_interval", 12)
        target = tmp_path / "saved.yaml"

        config.save(str(target))

        assert Config(str(target)).refresh_interval == 12


def test_deep_merge_recurses():
    base = {"a": {"b": 1, "c": 2}, "d": 1}
    _deep_merge(base, {"a": {"b": 5}, "e": 3})
    assert base == {"a": {"b": 5, "c": 2}, "d": 1, "e": 3}
