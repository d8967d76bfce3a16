"""
Realtime channel for the signage player.

One Socket.IO session per app run on the /screen-socket namespace. Console
events (link, unlink, notifications, status queries, background color) are
applied to the device state; connection changes are mirrored to the backend
as online analytics pings and offline status patches.
"""

import threading
from typing import Any, Callable, Dict, Optional

import socketio

from signage_player.common.api_client import ScreenApiClient
from signage_player.common.errors import ApiError, TransportError
from signage_player.common.logger import setup_logger
from .heartbeat import ConnectionHeartbeat
from .models import ErrorInfo, ScreenStatus, compute_screen_status
from .state import DeviceState

logger = setup_logger(__name__)

DEFAULT_NAMESPACE = "/screen-socket"

# Seconds between attempts while the first connect keeps failing
RECONNECT_INTERVAL = 5

# Outbound events
PLAY_STATUS_EVENT = "playStatus"
SCREEN_STATUS_RESPONSE_EVENT = "screenStatusResponse"

USER_LOOKUP_FAILED = "Failed to fetch userId"
ANALYTICS_POST_FAILED = "Failed to post screen analytics data"
STATUS_LOOKUP_FAILED = "Failed to fetch screen details"


def _field(data: Any, key: str) -> Any:
    """Read a key from an event payload that may not be a dict."""
    if isinstance(data, dict):
        return data.get(key)
    return None


class RealtimeChannel:
    """
    Socket.IO client session bound to one device identity.

    Drops are reconnected by the Socket.IO client; a refused first connect
    is retried here. Transport errors never leave this class; they only
    flip the connected flag.
    """

    def __init__(
        self,
        api: ScreenApiClient,
        state: DeviceState,
        identity: str,
        socket_url: str,
        namespace: str = DEFAULT_NAMESPACE,
        heartbeat_interval: float = ConnectionHeartbeat.DEFAULT_INTERVAL,
        on_linked: Optional[Callable[[str], None]] = None,
        on_unlinked: Optional[Callable[[str], None]] = None,
        on_notification: Optional[Callable[[str], None]] = None,
        client: Optional[socketio.Client] = None,
        reconnect_interval: float = RECONNECT_INTERVAL
    ):
        """
        Initialize the channel.

        Args:
            api: Backend API client
            state: Shared device state
            identity: Device identifier
            socket_url: Socket.IO server URL
            namespace: Socket.IO namespace
            heartbeat_interval: Seconds between checkConnection events
            on_linked: Called with the identifier of a console link event
            on_unlinked: Called with the identifier of a console unlink event
            on_notification: Called with a notification message for this device
            client: Socket.IO client (created if not given)
            reconnect_interval: Seconds between retries of a refused connect
        """
        self._api = api
        self._state = state
        self.identity = identity
        self.socket_url = socket_url
        self.namespace = namespace
        self.reconnect_interval = reconnect_interval

        self._on_linked = on_linked
        self._on_unlinked = on_unlinked
        self._on_notification = on_notification

        self._client = client or socketio.Client(reconnection=True, logger=False)
        self._heartbeat = ConnectionHeartbeat(self.emit, interval=heartbeat_interval)

        self._lock = threading.Lock()
        self._closed = False
        self._connect_lock = threading.Lock()
        self._halt = threading.Event()
        self._retry_thread: Optional[threading.Thread] = None

        self._register_handlers()

    def _register_handlers(self) -> None:
        handlers: Dict[str, Callable[..., None]] = {
            'connect': self._on_connect,
            'disconnect': self._on_disconnect,
            'connect_error': self._on_connect_error,
            'connectionStatus': self._on_connection_status,
            'consoleLinkedScreen': self._on_console_linked,
            'consoleUnlinkedScreen': self._on_console_unlinked,
            'sendNotification': self._on_send_notification,
            'checkScreenStatus': self._on_check_screen_status,
            'backgroundColorChanged': self._on_background_color_changed,
        }
        for event, handler in handlers.items():
            self._client.on(event, handler, namespace=self.namespace)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> bool:
        """
        Open the session.

        A refused first connect is retried every reconnect_interval seconds
        until it succeeds or the channel is closed; drops after that are
        handled by the Socket.IO client.

        Returns:
            True if connected now, False if a retry was scheduled
        """
        with self._lock:
            self._closed = False
        self._halt.clear()

        if self._attempt_connect():
            return True

        self._schedule_retry()
        return False

    def _attempt_connect(self) -> bool:
        with self._connect_lock:
            if self._client.connected:
                return True
            try:
                self._client.connect(
                    self.socket_url,
                    namespaces=[self.namespace],
                    transports=['websocket']
                )
            except socketio.exceptions.ConnectionError as e:
                logger.warning("Realtime connection to %s failed: %s", self.socket_url, e)
                self._state.set_connected(False)
                return False

        logger.info("Realtime channel connected to %s%s", self.socket_url, self.namespace)
        return True

    def _schedule_retry(self) -> None:
        with self._lock:
            if self._closed or (self._retry_thread and self._retry_thread.is_alive()):
                return
            self._retry_thread = threading.Thread(
                target=self._retry_loop,
                name="RealtimeReconnect",
                daemon=True
            )
            self._retry_thread.start()

    def _retry_loop(self) -> None:
        while not self._halt.wait(timeout=self.reconnect_interval):
            with self._lock:
                if self._closed:
                    return
            if self._attempt_connect():
                return

    def close(self) -> None:
        """Stop the heartbeat, announce play status, report offline and disconnect."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._halt.set()

        self._heartbeat.stop()
        self._announce_play_status()
        self._report_offline()

        try:
            self._client.disconnect()
        except socketio.exceptions.SocketIOError as e:
            logger.warning("Error closing realtime channel: %s", e)

        self._state.set_connected(False)
        logger.info("Realtime channel closed")

    @property
    def is_connected(self) -> bool:
        return self._state.connected

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    def _send(self, event: str, data: Any = None) -> None:
        """
        Emit an event on the namespace.

        Raises:
            TransportError: If the client is not connected or the send failed
        """
        if not self._client.connected:
            raise TransportError(f"Cannot emit {event}: not connected")
        try:
            self._client.emit(event, data, namespace=self.namespace)
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"Failed to emit {event}: {e}") from e

    def emit(self, event: str, data: Any = None) -> bool:
        """
        Emit an event, degrading to offline on transport failure.

        Returns:
            True if the event was sent
        """
        try:
            self._send(event, data)
        except TransportError as e:
            logger.debug("%s", e)
            return False
        return True

    def _announce_play_status(self) -> None:
        self.emit(PLAY_STATUS_EVENT, {'deviceId': self.identity})

    def report_online(self) -> bool:
        """
        Post an online analytics record for this screen.

        Returns:
            True if the record was posted
        """
        try:
            screen = self._api.get_screen(self.identity)
        except ApiError as e:
            logger.error("%s: %s", USER_LOOKUP_FAILED, e)
            self._state.set_error(ErrorInfo(USER_LOOKUP_FAILED, str(e), e.error_code))
            return False

        if not screen.user_id:
            logger.debug("Screen %s has no user - skipping analytics", self.identity)
            return False

        try:
            self._api.post_screen_analytics(
                self.identity, screen.user_id, ScreenStatus.ONLINE.value
            )
        except ApiError as e:
            logger.error("%s: %s", ANALYTICS_POST_FAILED, e)
            self._state.set_error(ErrorInfo(ANALYTICS_POST_FAILED, str(e), e.error_code))
            return False

        logger.debug("Posted online analytics for %s", self.identity)
        return True

    def _report_offline(self) -> None:
        if self._state.error.is_set:
            return
        try:
            self._api.update_screen(self.identity, status=ScreenStatus.OFFLINE.value)
        except ApiError as e:
            logger.warning("Failed to report offline status: %s", e)

    # -------------------------------------------------------------------------
    # Inbound handlers
    # -------------------------------------------------------------------------

    def _on_connect(self) -> None:
        logger.info("Realtime channel connected")
        self._state.set_connected(True)
        if not self._state.error.is_set:
            self.report_online()
        self._announce_play_status()
        self._heartbeat.start()

    def _on_disconnect(self, *args: Any) -> None:
        logger.info("Realtime channel disconnected")
        with self._lock:
            closed = self._closed
        if not closed:
            self._report_offline()
            self._announce_play_status()
        self._state.set_connected(False)
        self._heartbeat.stop()

    def _on_connect_error(self, data: Any = None) -> None:
        logger.warning("Realtime connection error: %s", data)
        self._state.set_connected(False)

    def _on_connection_status(self, data: Any) -> None:
        connected = bool(_field(data, 'connected'))
        self._state.set_connected(connected)
        if connected and not self._state.error.is_set:
            self.report_online()

    def _on_console_linked(self, data: Any) -> None:
        identifier = _field(data, 'identifier')
        logger.debug("consoleLinkedScreen: %s", identifier)
        if self._on_linked and identifier:
            self._on_linked(identifier)

    def _on_console_unlinked(self, data: Any) -> None:
        identifier = _field(data, 'identifier')
        logger.debug("consoleUnlinkedScreen: %s", identifier)
        if self._on_unlinked and identifier:
            self._on_unlinked(identifier)

    def _on_send_notification(self, data: Any) -> None:
        if _field(data, 'identifier') != self.identity:
            return
        message = _field(data, 'notification')
        if not message:
            return
        logger.info("Notification received: %s", message)
        if self._on_notification:
            self._on_notification(str(message))
        else:
            self._state.set_notification(str(message))

    def _on_check_screen_status(self, data: Any) -> None:
        if _field(data, 'identifier') != self.identity:
            return

        try:
            screen = self._api.get_screen(self.identity)
        except ApiError as e:
            logger.error("%s: %s", STATUS_LOOKUP_FAILED, e)
            self._state.set_error(ErrorInfo(STATUS_LOOKUP_FAILED, str(e), e.error_code))
            return

        error = self._state.error
        status = compute_screen_status(error, screen.content_version)
        self.emit(SCREEN_STATUS_RESPONSE_EVENT, {
            'identifier': self.identity,
            'status': status.value,
            'errorMessage': error.message,
            'contentVersion': screen.content_version,
        })

    def _on_background_color_changed(self, data: Any) -> None:
        if _field(data, 'identifier') != self.identity:
            return
        self._state.set_background_color(_field(data, 'backgroundColor'))

    def get_status(self) -> Dict[str, Any]:
        """Get channel status for reporting."""
        return {
            'socket_url': self.socket_url,
            'namespace': self.namespace,
            'connected': self._state.connected,
            'retrying': bool(self._retry_thread and self._retry_thread.is_alive()),
            'heartbeat': self._heartbeat.get_last_heartbeat_info(),
        }

    def __repr__(self) -> str:
        return f"RealtimeChannel(url={self.socket_url}, namespace={self.namespace})"
