"""
Tests for the persistent device identity store and device info.
"""

import json
import os
import stat

from signage_player.common.device_id import (
    DEVICE_ID_KEY,
    IdentityStore,
    get_device_info,
)


class TestIdentityStore:
    """Tests for IdentityStore."""

    def test_creates_identifier_once(self, tmp_path):
        store = IdentityStore(str(tmp_path / "store.json"))

        first = store.get_or_create_device_id()
        second = store.get_or_create_device_id()

        assert first
        assert first == second

    def test_identifier_survives_new_instance(self, tmp_path):
        path = str(tmp_path / "store.json")
        device_id = IdentityStore(path).get_or_create_device_id()

        assert IdentityStore(path).get_or_create_device_id() == device_id

    def test_stored_under_device_id_key(self, tmp_path):
        path = tmp_path / "store.json"
        device_id = IdentityStore(str(path)).get_or_create_device_id()

        with open(path) as f:
            assert json.load(f)[DEVICE_ID_KEY] == device_id

    def test_file_is_private(self, tmp_path):
        path = tmp_path / "store.json"
        IdentityStore(str(path)).set_item("k", "v")

        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

    def test_unreadable_store_starts_fresh(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("not json")

        store = IdentityStore(str(path))

        assert store.get_item(DEVICE_ID_KEY) is None
        assert store.get_or_create_device_id()

    def test_set_item_keeps_other_keys(self, tmp_path):
        store = IdentityStore(str(tmp_path / "store.json"))
        store.set_item("a", "1")
        store.set_item("b", "2")

        assert store.get_item("a") == "1"
        assert store.get_item("b") == "2"


def test_device_info_fields(tmp_path):
    info = get_device_info(str(tmp_path))

    for key in ("hostname", "ip_address", "device_type", "os_name", "os_version",
                "model", "total_storage", "free_storage", "location"):
        assert key in info
    assert info["device_type"] == "DESKTOP"
    assert info["location"] is None
    assert info["total_storage"] >= info["free_storage"]
