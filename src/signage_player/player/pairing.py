"""
Device pairing for the signage player.

Looks the device up by its identity, registers it with a fresh pairing code
when it is unknown, and navigates between the pairing and playback views as
the console links or unlinks the screen.
"""

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Callable, Dict, Optional

from signage_player.common.api_client import ScreenApiClient
from signage_player.common.device_id import get_device_info
from signage_player.common.errors import ApiError, ScreenLookupError
from signage_player.common.logger import setup_logger
from .state_machine import PairingState, PairingStateMachine

logger = setup_logger(__name__)


class AppView(Enum):
    """Top-level views of the application."""
    SPLASH = "splash"
    PAIRING = "pairing"
    PLAYBACK = "playback"


def generate_pairing_code() -> str:
    """Random 6-digit pairing code shown on screen (not a secret)."""
    return str(random.randint(100000, 999999))


def build_registration_payload(
    identity: str,
    pairing_code: str,
    device_info: Dict[str, Any]
) -> Dict[str, Any]:
    """Build the add-screen request body from collected device info."""
    os_name = device_info.get("os_name")
    model = device_info.get("model")
    return {
        "name": f"{os_name} {model}" if os_name and model else "Unknown Device",
        "identifier": identity,
        "isVirtual": False,
        "ipAddress": device_info.get("ip_address") or "",
        "deviceType": device_info.get("device_type") or "UNKNOWN",
        "osName": os_name or "",
        "osVersion": device_info.get("os_version") or "",
        "modelName": model or "",
        "totalStorage": device_info.get("total_storage") or 0,
        "freeStorage": device_info.get("free_storage") or 0,
        "location": device_info.get("location"),
        "pairingCode": pairing_code,
    }


class PairingController:
    """
    Drives registration and linking for one device identity.

    Navigation is reported through on_navigate(AppView) once the
    readiness barrier in prepare() has passed.
    """

    # Minimum time the splash view stays up
    DEFAULT_SPLASH_SECONDS = 5

    def __init__(
        self,
        api: ScreenApiClient,
        identity: str,
        console_url: str,
        splash_min_seconds: float = DEFAULT_SPLASH_SECONDS,
        on_navigate: Optional[Callable[[AppView], None]] = None,
        device_info_provider: Callable[[], Dict[str, Any]] = get_device_info,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the pairing controller.

        Args:
            api: Backend API client
            identity: Persistent device identifier
            console_url: Management console base URL (for the QR payload)
            splash_min_seconds: Minimum splash duration during prepare()
            on_navigate: Callback receiving the view to show
            device_info_provider: Returns device metadata for registration
            sleep: Sleep function used for the splash delay
        """
        self._api = api
        self.identity = identity
        self.console_url = console_url.rstrip('/')
        self.splash_min_seconds = splash_min_seconds
        self._on_navigate = on_navigate
        self._device_info_provider = device_info_provider
        self._sleep = sleep

        self.state_machine = PairingStateMachine(on_state_changed=self._on_state_changed)

        self._lock = threading.Lock()
        self._pairing_code = ""
        self._registration_error: Optional[str] = None
        self._device_info: Dict[str, Any] = {}
        self._ready = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def pairing_code(self) -> str:
        with self._lock:
            return self._pairing_code

    @property
    def registration_error(self) -> Optional[str]:
        with self._lock:
            return self._registration_error

    @property
    def device_info(self) -> Dict[str, Any]:
        """Device metadata, collected on first use."""
        with self._lock:
            if not self._device_info:
                self._device_info = self._device_info_provider()
            return dict(self._device_info)

    @property
    def qr_payload(self) -> str:
        """URL encoded in the pairing QR code."""
        return f"{self.console_url}/screen/{self.identity}"

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def state(self) -> PairingState:
        return self.state_machine.state

    # -------------------------------------------------------------------------
    # Lookup and registration
    # -------------------------------------------------------------------------

    def check_device_status(self) -> PairingState:
        """
        Look this device up and update the pairing state.

        An unknown device (or a failed lookup) is registered anew.
        """
        try:
            screen = self._api.get_screen(self.identity)
        except ScreenLookupError:
            logger.info("Screen %s not registered - registering", self.identity)
            return self.register_device()
        except ApiError as e:
            logger.warning("Device status check failed (%s) - registering", e)
            return self.register_device()

        with self._lock:
            self._pairing_code = screen.pairing_code
            self._registration_error = None

        if screen.linked:
            self.state_machine.to_linked()
        else:
            self.state_machine.to_registered()

        return self.state_machine.state

    def register_device(self) -> PairingState:
        """Register this device with a freshly generated pairing code."""
        code = generate_pairing_code()
        with self._lock:
            self._pairing_code = code

        payload = build_registration_payload(self.identity, code, self.device_info)

        try:
            self._api.add_screen(payload)
        except ApiError as e:
            logger.error("Failed to register device: %s", e)
            with self._lock:
                self._registration_error = f"Failed to register device: {e}"
            return self.state_machine.state

        with self._lock:
            self._registration_error = None
        logger.info("Device %s registered with pairing code %s", self.identity, code)
        self.state_machine.to_registered()
        return self.state_machine.state

    # -------------------------------------------------------------------------
    # Readiness and navigation
    # -------------------------------------------------------------------------

    def prepare(self) -> PairingState:
        """
        Run the status check and the minimum splash delay concurrently.

        Returns once both have finished, then navigates to the view that
        matches the pairing state.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="Prepare") as executor:
            status = executor.submit(self.check_device_status)
            splash = executor.submit(self._sleep, self.splash_min_seconds)
            wait([status, splash])

        try:
            status.result()
        except Exception as e:
            logger.error("An error occurred during preparation: %s", e)

        self._ready = True
        state = self.state_machine.state
        logger.info("Pairing ready - state: %s", state.name)

        self._navigate(AppView.PLAYBACK if state == PairingState.LINKED else AppView.PAIRING)
        return state

    def handle_linked_event(self, identifier: str) -> None:
        """Console linked a screen; re-check if it is this one."""
        if identifier != self.identity:
            return
        logger.info("Console linked this screen")
        self.check_device_status()

    def handle_unlinked_event(self, identifier: str) -> None:
        """Console unlinked a screen; return to pairing if it is this one."""
        if identifier != self.identity:
            return
        logger.info("Console unlinked this screen")
        self._navigate(AppView.PAIRING)
        if self.check_device_status() == PairingState.LINKED and self._ready:
            # Backend still reports the screen as linked; no transition fires
            logger.info("Screen still linked after unlink event - resuming playback")
            self._navigate(AppView.PLAYBACK)

    def _on_state_changed(
        self,
        machine: PairingStateMachine,
        old_state: PairingState,
        new_state: PairingState
    ) -> None:
        if not self._ready:
            return
        if new_state == PairingState.LINKED:
            self._navigate(AppView.PLAYBACK)
        elif old_state == PairingState.LINKED:
            self._navigate(AppView.PAIRING)

    def _navigate(self, view: AppView) -> None:
        if self._on_navigate:
            self._on_navigate(view)

    def get_status(self) -> Dict[str, Any]:
        """Get pairing status for reporting."""
        return {
            'identity': self.identity,
            'state': self.state_machine.state.value,
            'pairing_code': self.pairing_code,
            'ready': self._ready,
            'registration_error': self.registration_error,
        }

    def __repr__(self) -> str:
        return f"PairingController(identity={self.identity}, state={self.state.name})"
