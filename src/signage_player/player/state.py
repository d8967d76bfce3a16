"""
Shared device state for the signage player.

One DeviceState object owns everything the resolver, the realtime channel,
the media cache and the playback loop share: the playable sequence and its
cursor, the error triple, connectivity, background color, the current
notification and download progress. Every update goes through a method
that holds the state lock; listeners run after the lock is released.
"""

import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from signage_player.common.logger import setup_logger
from .models import NO_ERROR, ErrorInfo, PlayableItem

logger = setup_logger(__name__)

# Field names passed to listeners
ITEMS = "items"
CURSOR = "cursor"
ERROR = "error"
LOADING = "loading"
CONNECTED = "connected"
BACKGROUND = "background_color"
NOTIFICATION = "notification"
MEDIA = "media_paths"
PROGRESS = "download_progress"


class DeviceState:
    """Single owner of the mutable state shared between player services."""

    def __init__(self, default_background: str = "black"):
        self._lock = threading.RLock()
        self._listeners: List[Callable[[str], None]] = []

        self._items: List[PlayableItem] = []
        self._cursor = 0
        self._error: ErrorInfo = NO_ERROR
        self._loading = True
        self._connected = False
        self._default_background = default_background
        self._background_color = default_background
        self._notification: Optional[str] = None
        self._media_paths: Dict[Any, Path] = {}
        self._download_progress: Dict[Any, float] = {}

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Register a callback receiving the name of each changed field."""
        with self._lock:
            self._listeners.append(callback)

    def _notify(self, field_name: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(field_name)
            except Exception as e:
                logger.error("Error in state listener for %s: %s", field_name, e)

    # -------------------------------------------------------------------------
    # Sequence and cursor
    # -------------------------------------------------------------------------

    @property
    def items(self) -> List[PlayableItem]:
        with self._lock:
            return list(self._items)

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def current_item(self) -> Optional[PlayableItem]:
        with self._lock:
            if not self._items:
                return None
            return self._items[self._cursor]

    def replace_items(self, items: Sequence[PlayableItem]) -> bool:
        """
        Replace the playable sequence if it differs from the current one.

        The cursor is clamped to the new length, never reset.

        Returns:
            True if the sequence was replaced
        """
        new_items = list(items)
        with self._lock:
            if new_items == self._items:
                return False
            self._items = new_items
            if self._cursor >= len(new_items):
                self._cursor = max(len(new_items) - 1, 0)
            logger.info("Playable sequence replaced (%d items)", len(new_items))

        self._notify(ITEMS)
        return True

    def advance(self) -> int:
        """Move the cursor to the next item, wrapping at the end."""
        with self._lock:
            if not self._items:
                return self._cursor
            self._cursor = (self._cursor + 1) % len(self._items)
            cursor = self._cursor

        self._notify(CURSOR)
        return cursor

    # -------------------------------------------------------------------------
    # Error triple and loading flag
    # -------------------------------------------------------------------------

    @property
    def error(self) -> ErrorInfo:
        with self._lock:
            return self._error

    def set_error(self, error: ErrorInfo) -> None:
        with self._lock:
            if error == self._error:
                return
            self._error = error
        self._notify(ERROR)

    def clear_error(self) -> None:
        self.set_error(NO_ERROR)

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading

    def set_loading(self, loading: bool) -> None:
        with self._lock:
            if loading == self._loading:
                return
            self._loading = loading
        self._notify(LOADING)

    # -------------------------------------------------------------------------
    # Connectivity, background color, notification
    # -------------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected

    def set_connected(self, connected: bool) -> None:
        with self._lock:
            if connected == self._connected:
                return
            self._connected = connected
        self._notify(CONNECTED)

    @property
    def background_color(self) -> str:
        with self._lock:
            return self._background_color

    def set_background_color(self, color: Optional[str]) -> None:
        with self._lock:
            color = color or self._default_background
            if color == self._background_color:
                return
            self._background_color = color
        self._notify(BACKGROUND)

    @property
    def notification(self) -> Optional[str]:
        with self._lock:
            return self._notification

    def set_notification(self, message: Optional[str]) -> None:
        with self._lock:
            self._notification = message or None
        self._notify(NOTIFICATION)

    # -------------------------------------------------------------------------
    # Media cache bookkeeping
    # -------------------------------------------------------------------------

    def get_media_path(self, media_id: Any) -> Optional[Path]:
        with self._lock:
            return self._media_paths.get(media_id)

    def set_media_path(self, media_id: Any, path: Path) -> None:
        with self._lock:
            if self._media_paths.get(media_id) == path:
                return
            self._media_paths[media_id] = path
        self._notify(MEDIA)

    @property
    def download_progress(self) -> Dict[Any, float]:
        with self._lock:
            return dict(self._download_progress)

    def set_download_progress(self, media_id: Any, fraction: float) -> None:
        with self._lock:
            self._download_progress[media_id] = min(max(fraction, 0.0), 1.0)
        self._notify(PROGRESS)

    def clear_download(self, media_id: Any) -> None:
        with self._lock:
            if media_id not in self._download_progress:
                return
            del self._download_progress[media_id]
        self._notify(PROGRESS)

    def snapshot(self) -> Dict[str, Any]:
        """Get a plain-dict view of the state for status reporting."""
        with self._lock:
            current = self._items[self._cursor] if self._items else None
            return {
                "items": len(self._items),
                "cursor": self._cursor,
                "current_media_id": current.media_id if current else None,
                "loading": self._loading,
                "connected": self._connected,
                "background_color": self._background_color,
                "notification": self._notification,
                "error": {
                    "general": self._error.general,
                    "technical": self._error.technical,
                    "code": self._error.code,
                },
                "cached_media": len(self._media_paths),
                "downloading": sorted(self._download_progress, key=str),
            }

    def __repr__(self) -> str:
        return f"DeviceState(items={len(self.items)}, cursor={self.cursor})"
