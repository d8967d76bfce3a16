"""
Device ID generation and management.
Ensures each display has a unique identifier that survives restarts,
and collects the device metadata sent when registering a screen.
"""

import json
import os
import platform
import shutil
import socket
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from signage_player.common.logger import setup_logger

logger = setup_logger(__name__)

DEVICE_ID_KEY = "deviceId"


class IdentityStore:
    """
    Small key-value store for the persistent device identifier.

    Values live in one JSON file readable only by the current user.
    """

    def __init__(self, store_path: str):
        self.store_path = Path(store_path).expanduser()

    def _read(self) -> Dict[str, str]:
        if not self.store_path.exists():
            return {}
        try:
            with open(self.store_path, 'r') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable identity store %s: %s", self.store_path, e)
            return {}

    def get_item(self, key: str) -> Optional[str]:
        """Get a stored value or None."""
        value = self._read().get(key)
        return str(value) if value else None

    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing the file atomically."""
        data = self._read()
        data[key] = value

        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.store_path.with_name(f".{self.store_path.name}.tmp")
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f)
        os.replace(temp_path, self.store_path)

    def get_or_create_device_id(self) -> str:
        """
        Get existing device ID or create a new one.

        Device ID is stored persistently so it survives reboots.
        """
        device_id = self.get_item(DEVICE_ID_KEY)
        if device_id:
            return device_id

        device_id = str(uuid.uuid4())
        self.set_item(DEVICE_ID_KEY, device_id)
        logger.info("Generated new device identifier: %s", device_id)
        return device_id


def _get_ip_address() -> str:
    """Best-effort local IP address of the default route."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packets are sent for a UDP connect
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return ""


def get_device_info(storage_path: str = "/") -> Dict[str, Any]:
    """
    Get device information used for screen registration and the pairing view.
    """
    try:
        usage = shutil.disk_usage(storage_path)
        total_storage, free_storage = usage.total, usage.free
    except OSError:
        total_storage, free_storage = 0, 0

    return {
        "hostname": socket.gethostname(),
        "ip_address": _get_ip_address(),
        "device_type": "DESKTOP",
        "os_name": platform.system(),
        "os_version": platform.release(),
        "model": platform.machine(),
        "total_storage": total_storage,
        "free_storage": free_storage,
        "location": None,
    }
