"""
Display surface for the signage player.

The Renderer interface is what the application draws through; the
HeadlessRenderer logs every call and is used when no screen is attached.
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from signage_player.common.logger import setup_logger
from .models import ErrorInfo, PlayableItem
from .state import DeviceState

logger = setup_logger(__name__)

NOTIFICATION_SUFFIX = "Updating screen content..."
NO_CONTENT_MESSAGE = "No content is currently assigned."
OFFLINE_MESSAGE = "No Internet Connection"


class View(Enum):
    """Content area views shown while in playback mode."""
    LOADING = "loading"
    ERROR = "error"
    PLAYBACK = "playback"
    NO_CONTENT = "no_content"


def select_view(state: DeviceState) -> View:
    """
    Pick the content view for the current device state.

    Loading wins, then the blocking error view (complete error and no
    items), then playback, then the no-content fallback.
    """
    if state.loading:
        return View.LOADING
    items = state.items
    if state.error.is_complete and not items:
        return View.ERROR
    if items:
        return View.PLAYBACK
    return View.NO_CONTENT


class Renderer:
    """Drawing operations used by the player."""

    def show_splash(self) -> None:
        raise NotImplementedError

    def show_pairing(self, code: str, qr_payload: str, device_info: Dict[str, Any]) -> None:
        raise NotImplementedError

    def show_offline(self) -> None:
        raise NotImplementedError

    def show_loading(self) -> None:
        raise NotImplementedError

    def show_item(
        self,
        item: PlayableItem,
        path: Optional[Path],
        effect: str,
        background_color: str
    ) -> None:
        raise NotImplementedError

    def show_no_content(self, background_color: str) -> None:
        raise NotImplementedError

    def show_error(self, error: ErrorInfo) -> None:
        raise NotImplementedError

    def show_notification(self, message: Optional[str], opacity: float) -> None:
        raise NotImplementedError

    def set_connection_indicator(self, connected: bool) -> None:
        raise NotImplementedError

    def show_download_progress(self, progress: Dict[Any, float]) -> None:
        raise NotImplementedError


class HeadlessRenderer(Renderer):
    """Renderer that logs what would be drawn."""

    def __init__(self):
        self.current_view: Optional[str] = None

    def _set_view(self, view: str) -> None:
        self.current_view = view

    def show_splash(self) -> None:
        self._set_view("splash")
        logger.info("[display] splash")

    def show_pairing(self, code: str, qr_payload: str, device_info: Dict[str, Any]) -> None:
        self._set_view("pairing")
        logger.info("[display] pairing code %s (scan: %s, ip: %s)",
                    code, qr_payload, device_info.get("ip_address", ""))

    def show_offline(self) -> None:
        logger.info("[display] %s", OFFLINE_MESSAGE)

    def show_loading(self) -> None:
        self._set_view("loading")
        logger.info("[display] Loading content...")

    def show_item(
        self,
        item: PlayableItem,
        path: Optional[Path],
        effect: str,
        background_color: str
    ) -> None:
        self._set_view("playback")
        kind = "video" if item.is_video else "image"
        logger.info("[display] %s %s #%d for %ss (%s, bg=%s): %s",
                    kind, item.media_id, item.position, item.duration,
                    effect, background_color, path or "pending download")

    def show_no_content(self, background_color: str) -> None:
        self._set_view("no_content")
        logger.info("[display] %s (bg=%s)", NO_CONTENT_MESSAGE, background_color)

    def show_error(self, error: ErrorInfo) -> None:
        self._set_view("error")
        logger.info("[display] %s / %s / Error code: %s",
                    error.general, error.technical, error.code)

    def show_notification(self, message: Optional[str], opacity: float) -> None:
        if message:
            logger.info("[display] notification (opacity %.1f): %s", opacity, message)
        else:
            logger.info("[display] notification cleared")

    def set_connection_indicator(self, connected: bool) -> None:
        logger.info("[display] connection indicator: %s", "green" if connected else "red")

    def show_download_progress(self, progress: Dict[Any, float]) -> None:
        for media_id, fraction in progress.items():
            logger.info("[display] Downloading media %s... %d%%", media_id, round(fraction * 100))


class NotificationBanner:
    """
    Shows a notification with a fade in, hold and fade out timeline,
    then clears it from the device state.

    A new notification replaces the one on screen and restarts the timeline.
    """

    FADE_IN_SECONDS = 0.5
    HOLD_SECONDS = 5.0
    FADE_OUT_SECONDS = 0.5

    def __init__(
        self,
        state: DeviceState,
        renderer: Renderer,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer
    ):
        self._state = state
        self._renderer = renderer
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._generation = 0

    @staticmethod
    def format_message(message: str) -> str:
        return f"{message} {NOTIFICATION_SUFFIX}"

    def show(self, message: str) -> None:
        """Start the timeline for a new notification."""
        text = self.format_message(message)
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            generation = self._generation

        self._state.set_notification(message)
        self._renderer.show_notification(text, 0.0)
        self._schedule(self.FADE_IN_SECONDS, lambda: self._on_visible(generation, text))

    def _on_visible(self, generation: int, text: str) -> None:
        if generation != self._generation:
            return
        self._renderer.show_notification(text, 1.0)
        self._schedule(
            self.HOLD_SECONDS + self.FADE_OUT_SECONDS,
            lambda: self._on_finished(generation)
        )

    def _on_finished(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self._renderer.show_notification(None, 0.0)
        self._state.set_notification(None)

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        timer = self._timer_factory(delay, callback)
        if hasattr(timer, 'daemon'):
            timer.daemon = True
        with self._lock:
            self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> None:
        """Stop any running timeline."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
