"""
Playback loop for the signage player.

Shows the item under the cursor for its duration, then advances the cursor
and wraps around at the end of the sequence. One timer is active at a time;
any change of the sequence or the cursor restarts it.
"""

import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from signage_player.common.logger import setup_logger
from .display import Renderer, View, select_view
from .models import PlayableItem
from .state import BACKGROUND, CURSOR, ERROR, ITEMS, LOADING, MEDIA, PROGRESS, DeviceState

logger = setup_logger(__name__)

DEFAULT_EFFECT = "fadeIn"

TRANSITION_EFFECTS: Dict[str, str] = {
    "Fade In": "fadeIn",
    "Fade In Right": "fadeInRight",
    "Fade In Left": "fadeInLeft",
    "Slide In Up": "slideInUp",
    "Slide In Down": "slideInDown",
    "Slide In Left": "slideInLeft",
    "Slide In Right": "slideInRight",
}


def transition_effect(name: Optional[str]) -> str:
    """Map a playlist transition name to its entrance effect."""
    return TRANSITION_EFFECTS.get(name or "", DEFAULT_EFFECT)


class PlaybackLoop:
    """
    Drives the renderer from the device state.

    Usage:
        loop = PlaybackLoop(state, renderer, state.get_media_path)
        loop.start()
        ...
        loop.stop()
    """

    DEFAULT_DURATION = 10

    def __init__(
        self,
        state: DeviceState,
        renderer: Renderer,
        media_path: Callable[[Any], Optional[Path]],
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        default_duration: float = DEFAULT_DURATION
    ):
        """
        Args:
            state: Shared device state holding the sequence and cursor
            renderer: Display surface
            media_path: Returns the local file for a media id, or None
            timer_factory: Creates a startable, cancellable one-shot timer
            default_duration: Seconds for items without a positive duration
        """
        self._state = state
        self._renderer = renderer
        self._media_path = media_path
        self._timer_factory = timer_factory
        self.default_duration = default_duration

        self._lock = threading.RLock()
        self._timer: Optional[Any] = None
        self._generation = 0
        self._running = False
        self._listening = False

        # What is on screen, so late media arrivals can be drawn
        self._shown_item: Optional[PlayableItem] = None
        self._shown_path: Optional[Path] = None
        self._items_shown = 0

    def start(self) -> None:
        """Start playback from the current cursor."""
        with self._lock:
            if self._running:
                return
            self._running = True
            if not self._listening:
                self._state.add_listener(self._on_state_changed)
                self._listening = True

        logger.info("Playback loop started")
        self.sync()

    def stop(self) -> None:
        """Stop playback and cancel the item timer."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._cancel_timer()
            self._shown_item = None
            self._shown_path = None
        logger.info("Playback loop stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _on_state_changed(self, field_name: str) -> None:
        if not self._running:
            return
        if field_name in (ITEMS, CURSOR):
            self.sync()
        elif field_name in (LOADING, ERROR, BACKGROUND):
            self.render()
        elif field_name == MEDIA:
            self._render_if_media_arrived()
        elif field_name == PROGRESS:
            self._renderer.show_download_progress(self._state.download_progress)

    def sync(self) -> None:
        """Redraw and restart the timer for the item under the cursor."""
        with self._lock:
            self._cancel_timer()
            if not self._running:
                return

            self.render()

            item = self._state.current_item
            if item is None:
                return

            duration = self.item_duration(item)
            generation = self._generation
            timer = self._timer_factory(duration, lambda: self._advance(generation))
            if hasattr(timer, 'daemon'):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def item_duration(self, item: PlayableItem) -> float:
        return item.duration if item.duration and item.duration > 0 else self.default_duration

    def _advance(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._generation:
                return
            self._timer = None
        self._state.advance()

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def render(self) -> View:
        """Draw the view that matches the current state."""
        view = select_view(self._state)

        with self._lock:
            if view == View.LOADING:
                self._renderer.show_loading()
            elif view == View.ERROR:
                self._renderer.show_error(self._state.error)
            elif view == View.NO_CONTENT:
                self._renderer.show_no_content(self._state.background_color)
            else:
                self._show_current_item()

            if view != View.PLAYBACK:
                self._shown_item = None
                self._shown_path = None

        return view

    def _show_current_item(self) -> None:
        item = self._state.current_item
        if item is None:
            return

        path = self._media_path(item.media_id)
        self._renderer.show_item(
            item,
            path,
            transition_effect(item.transition),
            self._state.background_color
        )
        if item != self._shown_item:
            self._items_shown += 1
        self._shown_item = item
        self._shown_path = path

    def _render_if_media_arrived(self) -> None:
        with self._lock:
            item = self._shown_item
            if item is None or self._shown_path is not None:
                return
            if self._state.get_media_path(item.media_id) is None:
                return
        self.render()

    def get_status(self) -> Dict[str, Any]:
        """Get playback status for reporting."""
        current = self._state.current_item
        return {
            'running': self._running,
            'cursor': self._state.cursor,
            'current_media_id': current.media_id if current else None,
            'current_duration': self.item_duration(current) if current else None,
            'items_shown': self._items_shown,
        }
