"""
Tests for the SignagePlayer orchestrator and the command line entry point.
"""

from unittest.mock import MagicMock, patch

import pytest
import yaml

from signage_player.player.app import SignagePlayer, main
from signage_player.player.display import Renderer
from signage_player.player.pairing import AppView

from conftest import make_item


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "api": {"base_url": "https://api.test", "console_url": "https://console.test"},
        "device": {"identity_file": str(tmp_path / "identity.json")},
        "player": {"cache_dir": str(tmp_path / "cache")},
    }))
    return str(path)


@pytest.fixture
def renderer():
    return MagicMock(spec=Renderer)


@pytest.fixture
def player(config_file, renderer):
    """Player with real state and mocked network-facing services."""
    player = SignagePlayer(config_path=config_file, renderer=renderer)
    assert player._load_config()
    player._initialize_components()

    player._resolver = MagicMock()
    player._playback = MagicMock()
    player._channel = MagicMock()
    player._network_monitor = MagicMock(is_online=True)
    player._media_cache = MagicMock()
    player._pairing = MagicMock(pairing_code="123456",
                                qr_payload="https://console.test/screen/x",
                                device_info={"ip_address": "10.0.0.5"})
    return player


class TestStartup:
    """Tests for configuration loading."""

    def test_missing_config_fails_start(self, tmp_path):
        player = SignagePlayer(config_path=str(tmp_path / "missing.yaml"))
        assert player.start() is False
        assert not player.is_running

    def test_identity_persisted(self, config_file, tmp_path):
        first = SignagePlayer(config_path=config_file)
        first._load_config()
        second = SignagePlayer(config_path=config_file)
        second._load_config()

        assert first._identity == second._identity
        assert (tmp_path / "identity.json").exists()

    def test_start_shows_splash_then_runs_gate(self, player, renderer):
        with patch.object(SignagePlayer, "_initialize_components"):
            player.start()

        renderer.show_splash.assert_called()
        player._network_monitor.start.assert_called_once()
        player._channel.connect.assert_called_once()
        player._pairing.prepare.assert_called_once()
        assert player.is_running


class TestNavigation:
    """Playback services run only while the playback view is shown."""

    def test_enter_playback_starts_services(self, player):
        player._navigate(AppView.PLAYBACK)

        assert player.view == AppView.PLAYBACK
        player._resolver.start.assert_called_once()
        player._playback.start.assert_called_once()

    def test_leave_playback_stops_services(self, player, renderer):
        player._navigate(AppView.PLAYBACK)
        player._navigate(AppView.PAIRING)

        player._resolver.stop.assert_called_once()
        player._playback.stop.assert_called_once()
        renderer.show_pairing.assert_called_once_with(
            "123456", "https://console.test/screen/x", {"ip_address": "10.0.0.5"}
        )

    def test_repeated_playback_is_noop(self, player):
        player._navigate(AppView.PLAYBACK)
        player._navigate(AppView.PLAYBACK)

        player._resolver.start.assert_called_once()

    def test_pairing_redrawn_on_repeat(self, player, renderer):
        player._navigate(AppView.PAIRING)
        player._navigate(AppView.PAIRING)

        assert renderer.show_pairing.call_count == 2

    def test_offline_notice_on_pairing(self, player, renderer):
        player._network_monitor.is_online = False

        player._navigate(AppView.PAIRING)

        renderer.show_offline.assert_called_once()


class TestCallbacks:
    """Tests for state and network callbacks."""

    def test_new_items_prefetched(self, player):
        items = [make_item("a", media_id=1)]
        player._state.replace_items(items)

        player._media_cache.prefetch.assert_called_with(items)

    def test_connection_indicator(self, player, renderer):
        player._state.set_connected(True)
        renderer.set_connection_indicator.assert_called_with(True)

    def test_media_path_starts_download(self, player, tmp_path):
        assert player._media_path(5) is None
        player._media_cache.resolve_async.assert_called_once_with(5)

        player._state.set_media_path(5, tmp_path / "media_5")
        assert player._media_path(5) == tmp_path / "media_5"

    def test_network_back_reconnects_channel(self, player):
        player._running = True
        player._channel.is_connected = False

        player._on_network_changed(True)

        player._channel.connect.assert_called_once()


class TestShutdown:
    """Tests for stop()."""

    def test_stop_tears_down_in_order(self, player):
        player._running = True
        player._navigate(AppView.PLAYBACK)

        player.stop()

        player._network_monitor.stop.assert_called_once()
        player._resolver.stop.assert_called_once()
        player._playback.stop.assert_called_once()
        player._channel.close.assert_called_once()
        player._media_cache.shutdown.assert_called_once()
        assert not player.is_running

    def test_status(self, player):
        status = player.get_status()

        assert status["view"] == "splash"
        assert status["identity"]
        assert status["state"]["items"] == 0


def test_main_parses_arguments():
    with patch("signage_player.player.app.SignagePlayer") as player_cls:
        main(["--config", "/tmp/player.yaml", "--log-level", "DEBUG"])

    player_cls.assert_called_once_with(config_path="/tmp/player.yaml", log_level="DEBUG")
    player_cls.return_value.run.assert_called_once()
