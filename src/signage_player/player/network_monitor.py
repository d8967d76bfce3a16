"""
Connectivity watcher for the signage player.

Polls the backend base URL and keeps a debounced online flag. The pairing
view shows an offline notice from it and the app reconnects the realtime
channel when it flips back to online.
"""

import socket
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from signage_player.common.logger import setup_logger

logger = setup_logger(__name__)

# Poll intervals in seconds
CHECK_INTERVAL_ONLINE = 30
CHECK_INTERVAL_OFFLINE = 10

# Consecutive results needed to flip the flag
ONLINE_THRESHOLD = 1
OFFLINE_THRESHOLD = 3

HEALTH_CHECK_TIMEOUT = 5


def probe(session: requests.Session, url: str, timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
    """
    True if the backend answers below HTTP 500, or if its host accepts a
    TCP connection when the HTTP request does not get that far.
    """
    if not url:
        return False

    try:
        if session.get(url, timeout=timeout).status_code < 500:
            return True
    except requests.RequestException as e:
        logger.debug("HTTP probe of %s failed: %s", url, e)

    parsed = urlparse(url)
    if not parsed.hostname:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        with socket.create_connection((parsed.hostname, port), timeout=timeout):
            return True
    except OSError as e:
        logger.debug("TCP probe of %s:%s failed: %s", parsed.hostname, port, e)
        return False


class NetworkMonitor:
    """
    Debounced online/offline flag for one backend URL.

    Starts offline. One reachable probe marks it online; three unreachable
    probes in a row mark it offline again. on_state_changed(online) is
    called on every flip.
    """

    def __init__(
        self,
        target_url: str,
        check_interval: float = CHECK_INTERVAL_ONLINE,
        on_state_changed: Optional[Callable[[bool], None]] = None,
        session: Optional[requests.Session] = None
    ):
        self.target_url = target_url.rstrip('/')
        self.check_interval = check_interval
        self._on_state_changed = on_state_changed
        self._session = session or requests.Session()

        self._lock = threading.Lock()
        self._online = False
        # > 0: successes in a row, < 0: failures in a row
        self._streak = 0
        self._checked_at: Optional[float] = None
        self._last_result: Optional[bool] = None
        self._checks = 0
        self._failures = 0

        self._worker: Optional[threading.Thread] = None
        self._running = False
        self._wakeup = threading.Event()

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def check_now(self) -> bool:
        """Probe the target once and fold the result into the online flag."""
        reachable = probe(self._session, self.target_url)
        self._update_state(reachable)
        return reachable

    def _update_state(self, reachable: bool) -> None:
        with self._lock:
            self._checks += 1
            self._checked_at = time.time()
            self._last_result = reachable

            if reachable:
                self._streak = max(self._streak, 0) + 1
                flipped = not self._online and self._streak >= ONLINE_THRESHOLD
            else:
                self._failures += 1
                self._streak = min(self._streak, 0) - 1
                flipped = self._online and -self._streak >= OFFLINE_THRESHOLD

            if flipped:
                self._online = reachable

        if not flipped:
            return

        if reachable:
            logger.info("Backend %s reachable - online", self.target_url)
        else:
            logger.warning("Backend %s unreachable %d times - offline",
                           self.target_url, -self._streak)

        if self._on_state_changed:
            try:
                self._on_state_changed(reachable)
            except Exception as e:
                logger.error("Connectivity callback failed: %s", e)

    def _run(self) -> None:
        self.check_now()
        while self._running:
            delay = self.check_interval if self.is_online else CHECK_INTERVAL_OFFLINE
            if self._wakeup.wait(timeout=delay) or not self._running:
                break
            self.check_now()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._wakeup.clear()
        self._worker = threading.Thread(target=self._run, name="NetworkMonitor", daemon=True)
        self._worker.start()
        logger.info("Watching connectivity to %s", self.target_url)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        if self._worker and self._worker is not threading.current_thread():
            self._worker.join(timeout=HEALTH_CHECK_TIMEOUT * 2)
        self._worker = None

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "online": self._online,
                "target_url": self.target_url,
                "streak": self._streak,
                "last_check_time": self._checked_at,
                "last_check_result": self._last_result,
                "total_checks": self._checks,
                "total_failures": self._failures,
            }
