"""
Connection heartbeat for the realtime channel.

While the channel is up, a checkConnection event goes out every few
seconds so the server can tell a live screen from a dead socket.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

from signage_player.common.logger import setup_logger

logger = setup_logger(__name__)

HEARTBEAT_EVENT = "checkConnection"


class ConnectionHeartbeat:
    """Calls emit(HEARTBEAT_EVENT) every `interval` seconds on a daemon thread."""

    DEFAULT_INTERVAL = 5

    def __init__(self, emit: Callable[[str], bool], interval: float = DEFAULT_INTERVAL):
        """
        Args:
            emit: Sends an event by name and returns True if it went out
            interval: Seconds between heartbeats
        """
        self._emit = emit
        self.interval = interval

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._halt = threading.Event()

        self._sent_at: Optional[float] = None
        self._last_ok = False
        self._misses = 0

    def send_heartbeat(self) -> bool:
        """Emit one heartbeat; a raising emitter counts as a miss."""
        try:
            ok = bool(self._emit(HEARTBEAT_EVENT))
        except Exception as e:
            logger.warning("Heartbeat emit raised: %s", e)
            ok = False

        self._last_ok = ok
        if ok:
            self._sent_at = time.time()
            self._misses = 0
        else:
            self._misses += 1
            logger.debug("Heartbeat not delivered (%d in a row)", self._misses)
        return ok

    def _beat(self) -> None:
        while not self._halt.wait(timeout=self.interval):
            if not self._running:
                break
            self.send_heartbeat()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._halt.clear()
        self._thread = threading.Thread(target=self._beat, name="ConnectionHeartbeat", daemon=True)
        self._thread.start()
        logger.debug("Heartbeat every %ss", self.interval)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._halt.set()
        # a disconnect handler may stop us from the loop thread itself
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)
        self._thread = None

    def is_running(self) -> bool:
        return self._running

    def get_last_heartbeat_info(self) -> Dict[str, Any]:
        return {
            "last_time": self._sent_at,
            "last_success": self._last_ok,
            "consecutive_failures": self._misses,
        }
