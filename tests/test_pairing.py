"""
Pairing Controller Tests

Tests device lookup, registration, the readiness gate and the console
link/unlink events.
"""

from unittest.mock import MagicMock

import pytest

from signage_player.common.errors import ApiError, ScreenLookupError
from signage_player.player.pairing import (
    AppView,
    PairingController,
    build_registration_payload,
    generate_pairing_code,
)
from signage_player.player.state_machine import PairingState

from conftest import make_screen

DEVICE_INFO = {
    "hostname": "player-1",
    "ip_address": "10.0.0.5",
    "device_type": "DESKTOP",
    "os_name": "Linux",
    "os_version": "6.1",
    "model": "x86_64",
    "total_storage": 1000,
    "free_storage": 400,
    "location": None,
}


@pytest.fixture
def navigate():
    return MagicMock()


@pytest.fixture
def controller(api, navigate):
    return PairingController(
        api,
        "abc-123",
        "https://console.test/",
        splash_min_seconds=5,
        on_navigate=navigate,
        device_info_provider=lambda: dict(DEVICE_INFO),
        sleep=lambda seconds: None,
    )


class TestGeneratePairingCode:
    """Tests for the pairing code generation function."""

    def test_generates_six_digit_code(self):
        code = generate_pairing_code()
        assert len(code) == 6
        assert code.isdigit()

    def test_code_in_valid_range(self):
        for _ in range(100):
            assert 100000 <= int(generate_pairing_code()) <= 999999


class TestRegistrationPayload:
    """Tests for the add-screen request body."""

    def test_full_payload(self):
        payload = build_registration_payload("abc-123", "123456", DEVICE_INFO)

        assert payload == {
            "name": "Linux x86_64",
            "identifier": "abc-123",
            "isVirtual": False,
            "ipAddress": "10.0.0.5",
            "deviceType": "DESKTOP",
            "osName": "Linux",
            "osVersion": "6.1",
            "modelName": "x86_64",
            "totalStorage": 1000,
            "freeStorage": 400,
            "location": None,
            "pairingCode": "123456",
        }

    def test_unknown_device_name(self):
        payload = build_registration_payload("abc-123", "123456", {})

        assert payload["name"] == "Unknown Device"
        assert payload["deviceType"] == "UNKNOWN"
        assert payload["totalStorage"] == 0


class TestCheckDeviceStatus:
    """Tests for the device lookup."""

    def test_linked_screen(self, controller, api):
        api.get_screen.return_value = make_screen(linked=True, pairing_code="111111")

        assert controller.check_device_status() == PairingState.LINKED
        assert controller.pairing_code == "111111"
        api.add_screen.assert_not_called()

    def test_unlinked_screen(self, controller, api):
        api.get_screen.return_value = make_screen(linked=False, pairing_code="222222")

        assert controller.check_device_status() == PairingState.REGISTERED_UNLINKED
        assert controller.pairing_code == "222222"

    def test_unknown_screen_registers(self, controller, api):
        api.get_screen.side_effect = ScreenLookupError("not found", 404)

        assert controller.check_device_status() == PairingState.REGISTERED_UNLINKED

        payload = api.add_screen.call_args[0][0]
        assert payload["identifier"] == "abc-123"
        assert payload["pairingCode"] == controller.pairing_code
        assert len(controller.pairing_code) == 6

    def test_failed_lookup_registers(self, controller, api):
        api.get_screen.side_effect = ApiError("down")

        controller.check_device_status()

        api.add_screen.assert_called_once()

    def test_registration_failure_stays_unregistered(self, controller, api):
        api.get_screen.side_effect = ScreenLookupError("not found", 404)
        api.add_screen.side_effect = ApiError("rejected", 400)

        assert controller.check_device_status() == PairingState.UNREGISTERED
        assert "Failed to register device" in controller.registration_error
        # The generated code is still shown
        assert len(controller.pairing_code) == 6


class TestPrepare:
    """Tests for the readiness gate."""

    def test_waits_for_splash_and_status(self, api, navigate):
        api.get_screen.return_value = make_screen(linked=True)
        slept = []
        controller = PairingController(
            api, "abc-123", "https://console.test", splash_min_seconds=5,
            on_navigate=navigate, device_info_provider=dict, sleep=slept.append,
        )

        assert controller.prepare() == PairingState.LINKED

        assert slept == [5]
        assert controller.is_ready
        navigate.assert_called_once_with(AppView.PLAYBACK)

    def test_unlinked_goes_to_pairing(self, controller, api, navigate):
        api.get_screen.return_value = make_screen(linked=False)

        controller.prepare()

        navigate.assert_called_once_with(AppView.PAIRING)

    def test_no_navigation_before_ready(self, controller, api, navigate):
        api.get_screen.return_value = make_screen(linked=True)

        controller.check_device_status()

        navigate.assert_not_called()


class TestConsoleEvents:
    """Tests for link and unlink events."""

    def test_linked_event_navigates_to_playback(self, controller, api, navigate):
        api.get_screen.return_value = make_screen(linked=False)
        controller.prepare()
        navigate.reset_mock()
        api.get_screen.return_value = make_screen(linked=True)

        controller.handle_linked_event("abc-123")

        navigate.assert_called_once_with(AppView.PLAYBACK)

    def test_event_for_other_device_ignored(self, controller, api):
        controller.handle_linked_event("someone-else")
        controller.handle_unlinked_event("someone-else")

        api.get_screen.assert_not_called()

    def test_unlinked_event_navigates_to_pairing(self, controller, api, navigate):
        api.get_screen.return_value = make_screen(linked=True)
        controller.prepare()
        navigate.reset_mock()
        api.get_screen.return_value = make_screen(linked=False, pairing_code="333333")

        controller.handle_unlinked_event("abc-123")

        assert navigate.call_args_list[0][0][0] == AppView.PAIRING
        assert controller.state == PairingState.REGISTERED_UNLINKED
        assert controller.pairing_code == "333333"

    def test_unlinked_event_while_still_linked_resumes_playback(self, controller, api, navigate):
        api.get_screen.return_value = make_screen(linked=True)
        controller.prepare()
        navigate.reset_mock()

        controller.handle_unlinked_event("abc-123")

        assert controller.state == PairingState.LINKED
        assert [c[0][0] for c in navigate.call_args_list] == [AppView.PAIRING, AppView.PLAYBACK]


def test_qr_payload(controller):
    assert controller.qr_payload == "https://console.test/screen/abc-123"
