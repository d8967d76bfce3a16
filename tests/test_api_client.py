"""
API Client Tests

Tests for ScreenApiClient with a mocked requests session, covering the
REST paths, payload shapes and error mapping.
"""

from unittest.mock import MagicMock

import pytest
import requests

from signage_player.common.api_client import ScreenApiClient
from signage_player.common.errors import ApiError, ScreenLookupError


def make_response(status_code=200, json_data=None, content=None):
    response = MagicMock()
    response.status_code = status_code
    if content is None:
        content = b"{}" if json_data is not None else b""
    response.content = content
    response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return ScreenApiClient("https://api.test/", timeout=7, session=session)


# =============================================================================
# Request plumbing
# =============================================================================


class TestRequest:
    """Tests for request handling and error mapping."""

    def test_base_url_trailing_slash_stripped(self, client):
        assert client.base_url == "https://api.test"

    def test_timeout_applied(self, client, session):
        session.request.return_value = make_response(json_data={"id": 1, "identifier": "abc"})

        client.get_screen("abc")

        _, kwargs = session.request.call_args
        assert kwargs["timeout"] == 7

    def test_http_error_raises_api_error_with_code(self, client, session):
        session.request.return_value = make_response(status_code=500)

        with pytest.raises(ApiError) as exc_info:
            client.get_playlist(3)

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "500"

    def test_network_error_has_unknown_code(self, client, session):
        session.request.side_effect = requests.ConnectionError("down")

        with pytest.raises(ApiError) as exc_info:
            client.get_media(3)

        assert exc_info.value.error_code == "Unknown"

    def test_invalid_json_raises(self, client, session):
        response = make_response(content=b"<html>")
        response.json.side_effect = ValueError("bad json")
        session.request.return_value = response

        with pytest.raises(ApiError):
            client.get_playlist(3)


# =============================================================================
# Screens
# =============================================================================


class TestScreens:
    """Tests for screen endpoints."""

    def test_get_screen_parses_record(self, client, session):
        session.request.return_value = make_response(json_data={
            "id": 9, "identifier": "abc-123", "linked": True, "pairingCode": "654321",
            "backgroundColor": "#fff", "contentVersion": 2, "userId": 5,
        })

        screen = client.get_screen("abc-123")

        session.request.assert_called_once_with(
            'GET', "https://api.test/screen/get-by-identifier/abc-123", timeout=7
        )
        assert screen.id == 9
        assert screen.linked is True
        assert screen.pairing_code == "654321"
        assert screen.background_color == "#fff"
        assert screen.content_version == 2
        assert screen.user_id == 5

    def test_get_screen_404_is_lookup_error(self, client, session):
        session.request.return_value = make_response(status_code=404)

        with pytest.raises(ScreenLookupError):
            client.get_screen("nope")

    def test_get_screen_empty_body_is_lookup_error(self, client, session):
        session.request.return_value = make_response(content=b"")

        with pytest.raises(ScreenLookupError):
            client.get_screen("nope")

    def test_screen_content_sorted_by_position(self, client, session):
        session.request.return_value = make_response(json_data=[
            {"id": 2, "contentId": "P2", "contentType": "playlist", "position": 2},
            {"id": 1, "contentId": "P1", "contentType": "playlist", "position": 1},
        ])

        entries = client.get_screen_content(9)

        assert [e.content_id for e in entries] == ["P1", "P2"]
        assert all(e.is_playlist for e in entries)

    def test_update_screen_sends_only_given_fields(self, client, session):
        session.request.return_value = make_response()

        client.update_screen("abc-123", status="offline")

        session.request.assert_called_once_with(
            'PATCH', "https://api.test/screen/update-by-identifier",
            json={"identifier": "abc-123", "status": "offline"}, timeout=7
        )

    def test_update_screen_camel_case_keys(self, client, session):
        session.request.return_value = make_response()

        client.update_screen("abc-123", status="error", status_description="[500] x",
                             content_version=1)

        payload = session.request.call_args[1]["json"]
        assert payload == {
            "identifier": "abc-123",
            "status": "error",
            "statusDescription": "[500] x",
            "contentVersion": 1,
        }

    def test_post_screen_analytics_payload(self, client, session):
        session.request.return_value = make_response()

        client.post_screen_analytics("abc-123", 5, "online")

        method, url = session.request.call_args[0]
        payload = session.request.call_args[1]["json"]
        assert method == 'POST'
        assert url == "https://api.test/screen-analytics"
        assert payload["screenId"] == "abc-123"
        assert payload["userId"] == 5
        assert payload["status"] == "online"
        assert payload["date"].endswith("GMT")


# =============================================================================
# Playlists and media
# =============================================================================


class TestPlaylistsAndMedia:
    """Tests for playlist and media endpoints."""

    def test_schedule_check_returns_bool(self, client, session):
        session.request.return_value = make_response(json_data=True, content=b"true")
        assert client.is_playlist_in_schedule("P1") is True

        session.request.return_value = make_response(json_data=False, content=b"false")
        assert client.is_playlist_in_schedule("P1") is False

    def test_playlist_media_sorted(self, client, session):
        session.request.return_value = make_response(json_data=[
            {"id": "s2", "mediaId": 2, "duration": 10, "position": 2},
            {"id": "s1", "mediaId": 1, "duration": 5, "position": 1},
        ])

        slots = client.get_playlist_media("P1")

        assert [s.media_id for s in slots] == [1, 2]
        assert slots[0].duration == 5

    def test_s3_media_path(self, client, session):
        session.request.return_value = make_response(json_data={"s3Path": "https://s3.test/x"})
        assert client.get_s3_media_path(1) == "https://s3.test/x"

    def test_s3_media_path_missing(self, client, session):
        session.request.return_value = make_response(json_data={})
        assert client.get_s3_media_path(1) is None

    def test_local_media_returns_bytes(self, client, session):
        session.request.return_value = make_response(content=b"\x89PNG")
        assert client.get_local_media(1) == b"\x89PNG"

    def test_open_stream_non_200_closes_and_raises(self, client, session):
        response = make_response(status_code=403)
        session.get.return_value = response

        with pytest.raises(ApiError):
            client.open_stream("https://s3.test/x")

        response.close.assert_called_once()
        session.get.assert_called_once_with("https://s3.test/x", stream=True, timeout=7)
