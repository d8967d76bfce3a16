"""
Pytest Fixtures for Signage Player Tests

Provides a mocked backend API client, a fresh device state, fake timers
and model builders used across the test files.
"""

from unittest.mock import MagicMock

import pytest

from signage_player.common.api_client import ScreenApiClient
from signage_player.player.models import (
    ContentEntry,
    MediaAsset,
    PlayableItem,
    Playlist,
    PlaylistMediaItem,
    Screen,
)
from signage_player.player.state import DeviceState


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function()


class TimerFactory:
    """Records every FakeTimer it creates."""

    def __init__(self):
        self.created = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.created.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.created if t.started and not (t.cancelled or t.fired)]

    @property
    def last(self):
        return self.created[-1] if self.created else None


@pytest.fixture
def timers():
    """Fake timer factory for the playback loop and notification banner."""
    return TimerFactory()


@pytest.fixture
def state():
    """Fresh device state."""
    return DeviceState(default_background="black")


@pytest.fixture
def api():
    """Backend API client with every call mocked."""
    return MagicMock(spec=ScreenApiClient)


def make_screen(identifier="abc-123", **overrides):
    values = dict(
        id=1,
        identifier=identifier,
        linked=True,
        pairing_code="123456",
        background_color="black",
        content_version=1,
        status="online",
        user_id=42,
    )
    values.update(overrides)
    return Screen(**values)


def make_entry(content_id, position=1, content_type="playlist"):
    return ContentEntry(id=content_id, content_id=content_id,
                        content_type=content_type, position=position)


def make_playlist(playlist_id, status="enabled", transition="Fade In"):
    return Playlist(id=playlist_id, name=f"Playlist {playlist_id}",
                    status=status, transition=transition)


def make_slot(slot_id, media_id, duration=5, position=1):
    return PlaylistMediaItem(id=slot_id, media_id=media_id,
                             duration=duration, position=position)


def make_media(media_id, media_type="image/png"):
    return MediaAsset(id=media_id, media_type=media_type, filename=f"media_{media_id}.png")


def make_item(item_id, media_id=None, duration=5, position=1, transition="Fade In",
              media_type="image/png", playlist_id="P1"):
    return PlayableItem(
        id=item_id,
        media_id=media_id if media_id is not None else item_id,
        duration=duration,
        position=position,
        transition=transition,
        media_type=media_type,
        playlist_id=playlist_id,
    )
