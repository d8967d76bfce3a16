"""
SignagePlayer - main orchestrator for the signage player.
Coordinates pairing, the realtime channel, playlist resolution, the media
cache and the playback loop, and handles coordinated shutdown.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from signage_player import __version__
from signage_player.common.api_client import ScreenApiClient
from signage_player.common.config import Config
from signage_player.common.device_id import IdentityStore
from signage_player.common.logger import configure_logging, setup_logger
from .display import HeadlessRenderer, NotificationBanner, Renderer
from .media_cache import MediaCache
from .network_monitor import NetworkMonitor
from .pairing import AppView, PairingController
from .playback import PlaybackLoop
from .playlist_resolver import PlaylistResolver
from .realtime import RealtimeChannel
from .state import CONNECTED, ITEMS, DeviceState

logger = setup_logger(__name__)


class SignagePlayer:
    """
    Main player orchestrator that:
    1. Loads configuration and the device identity
    2. Connects the realtime channel
    3. Shows the splash view until the pairing check and minimum delay finish
    4. Shows the pairing view until the screen is linked
    5. Runs playlist resolution and playback while linked
    6. Handles coordinated shutdown
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        renderer: Optional[Renderer] = None,
        log_level: Optional[str] = None
    ):
        """
        Initialize the SignagePlayer orchestrator.

        Args:
            config_path: Path to a YAML config file (uses defaults if None)
            renderer: Display surface (logs to the console if None)
            log_level: Overrides the configured log level
        """
        self._config_path = config_path
        self._log_level = log_level
        self._renderer: Renderer = renderer or HeadlessRenderer()

        self._running = False
        self._stop_event = threading.Event()
        self._view_lock = threading.RLock()
        self._view = AppView.SPLASH

        # Components (initialized in start())
        self._config: Optional[Config] = None
        self._identity: Optional[str] = None
        self._api: Optional[ScreenApiClient] = None
        self._state: Optional[DeviceState] = None
        self._media_cache: Optional[MediaCache] = None
        self._resolver: Optional[PlaylistResolver] = None
        self._playback: Optional[PlaybackLoop] = None
        self._banner: Optional[NotificationBanner] = None
        self._pairing: Optional[PairingController] = None
        self._channel: Optional[RealtimeChannel] = None
        self._network_monitor: Optional[NetworkMonitor] = None

    def _load_config(self) -> bool:
        """
        Load configuration and the persistent device identity.

        Returns:
            True if both loaded successfully, False otherwise
        """
        try:
            self._config = Config(self._config_path)
            configure_logging(self._log_level or self._config.log_level, self._config.log_file)
            self._identity = IdentityStore(self._config.identity_file).get_or_create_device_id()
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Failed to load configuration: %s", e)
            return False

        logger.info(
            "Configuration loaded - identity: %s, api: %s",
            self._identity,
            self._config.api_base_url
        )
        return True

    def _initialize_components(self) -> None:
        config = self._config
        identity = self._identity

        self._api = ScreenApiClient(config.api_base_url, timeout=config.request_timeout)

        self._state = DeviceState(default_background=config.default_background)
        self._state.add_listener(self._on_state_changed)

        self._media_cache = MediaCache(
            self._api,
            self._state,
            config.cache_dir,
            max_workers=config.download_workers
        )

        self._resolver = PlaylistResolver(
            self._api,
            self._state,
            identity,
            refresh_interval=config.refresh_interval,
            content_version=config.content_version,
            default_duration=config.default_duration
        )

        self._playback = PlaybackLoop(
            self._state,
            self._renderer,
            self._media_path,
            default_duration=config.default_duration
        )

        self._banner = NotificationBanner(self._state, self._renderer)

        self._pairing = PairingController(
            self._api,
            identity,
            config.console_url,
            splash_min_seconds=config.splash_min_seconds,
            on_navigate=self._navigate
        )

        self._channel = RealtimeChannel(
            self._api,
            self._state,
            identity,
            config.socket_url,
            namespace=config.socket_namespace,
            heartbeat_interval=config.heartbeat_interval,
            on_linked=self._pairing.handle_linked_event,
            on_unlinked=self._pairing.handle_unlinked_event,
            on_notification=self._banner.show
        )

        self._network_monitor = NetworkMonitor(
            config.api_base_url,
            check_interval=config.network_check_interval,
            on_state_changed=self._on_network_changed
        )

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def _navigate(self, view: AppView) -> None:
        """Switch the top-level view; playback services run only in PLAYBACK."""
        with self._view_lock:
            old_view = self._view
            if old_view == view and view != AppView.PAIRING:
                return
            self._view = view

            if old_view == AppView.PLAYBACK and view != AppView.PLAYBACK:
                self._stop_playback()

            logger.info("View: %s -> %s", old_view.name, view.name)

            if view == AppView.PAIRING:
                self._show_pairing()
            elif view == AppView.PLAYBACK:
                self._start_playback()
            else:
                self._renderer.show_splash()

    def _show_pairing(self) -> None:
        self._renderer.show_pairing(
            self._pairing.pairing_code,
            self._pairing.qr_payload,
            self._pairing.device_info
        )
        if self._network_monitor and not self._network_monitor.is_online:
            self._renderer.show_offline()

    def _start_playback(self) -> None:
        self._state.set_loading(True)
        self._resolver.start()
        self._playback.start()

    def _stop_playback(self) -> None:
        self._resolver.stop()
        self._playback.stop()

    def _media_path(self, media_id: Any) -> Optional[Path]:
        """Cached file for a media id, starting a download if there is none yet."""
        path = self._state.get_media_path(media_id)
        if path is None:
            self._media_cache.resolve_async(media_id)
        return path

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def _on_state_changed(self, field_name: str) -> None:
        if field_name == ITEMS:
            self._media_cache.prefetch(self._state.items)
        elif field_name == CONNECTED:
            self._renderer.set_connection_indicator(self._state.connected)

    def _on_network_changed(self, online: bool) -> None:
        with self._view_lock:
            if self._view == AppView.PAIRING:
                self._show_pairing()

        if online and self._running and not self._channel.is_connected:
            logger.info("Network back online - reconnecting realtime channel")
            self._channel.connect()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start the player.

        Startup flow:
        1. Load configuration and identity
        2. Build components and show the splash view
        3. Connect the realtime channel and start the network monitor
        4. Run the readiness gate, which navigates to pairing or playback

        Returns:
            True if startup successful, False otherwise
        """
        if self._running:
            logger.warning("Player already running")
            return True

        logger.info("=" * 60)
        logger.info("Starting SignagePlayer %s", __version__)
        logger.info("=" * 60)

        if not self._load_config():
            logger.error("Failed to load config - cannot start")
            return False

        self._initialize_components()
        self._running = True
        self._stop_event.clear()

        self._renderer.show_splash()
        self._network_monitor.start()

        if not self._channel.connect():
            logger.warning("Realtime channel unavailable - will retry when online")

        self._pairing.prepare()

        logger.info("SignagePlayer started successfully")
        return True

    def stop(self) -> None:
        """Stop the player and all services."""
        if not self._running:
            return

        logger.info("Stopping SignagePlayer...")

        self._running = False
        self._stop_event.set()

        self._network_monitor.stop()
        with self._view_lock:
            if self._view == AppView.PLAYBACK:
                self._stop_playback()
        self._banner.cancel()
        self._channel.close()
        self._media_cache.shutdown()

        logger.info("SignagePlayer stopped")

    def run(self) -> None:
        """
        Run the player (blocking).

        This method blocks until stop() is called or a signal is received.
        """
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        if not self.start():
            logger.error("Failed to start player")
            sys.exit(1)

        logger.info("Player running - press Ctrl+C to stop")

        try:
            while self._running:
                if self._stop_event.wait(timeout=1.0):
                    break
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")

        self.stop()

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle system signals for graceful shutdown."""
        logger.info("Received signal: %s", signal.Signals(signum).name)
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def view(self) -> AppView:
        with self._view_lock:
            return self._view

    def get_status(self) -> Dict[str, Any]:
        """
        Get comprehensive player status.

        Returns:
            Dictionary with status from all components
        """
        status: Dict[str, Any] = {
            "running": self._running,
            "view": self.view.value,
            "identity": self._identity,
            "pairing": None,
            "state": None,
            "resolver": None,
            "playback": None,
            "media_cache": None,
            "realtime": None,
            "network": None,
        }

        if self._pairing:
            status["pairing"] = self._pairing.get_status()
        if self._state:
            status["state"] = self._state.snapshot()
        if self._resolver:
            status["resolver"] = self._resolver.get_status()
        if self._playback:
            status["playback"] = self._playback.get_status()
        if self._media_cache:
            status["media_cache"] = self._media_cache.get_status()
        if self._channel:
            status["realtime"] = self._channel.get_status()
        if self._network_monitor:
            status["network"] = self._network_monitor.get_status()

        return status


def main(argv=None) -> None:
    """Main entry point for running the player."""
    parser = argparse.ArgumentParser(description="Digital signage player")
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    logger.info("Signage player starting...")

    player = SignagePlayer(config_path=args.config, log_level=args.log_level)
    player.run()


if __name__ == "__main__":
    main()
