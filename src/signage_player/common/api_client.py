"""
Backend API client - screen registration, playlist graph and media storage.
"""

from email.utils import formatdate
from typing import Any, Dict, List, Optional

import requests

from signage_player.common.errors import ApiError, ScreenLookupError
from signage_player.common.logger import setup_logger
from signage_player.player.models import (
    ContentEntry,
    MediaAsset,
    Playlist,
    PlaylistMediaItem,
    Screen,
)

logger = setup_logger(__name__)

DEFAULT_TIMEOUT = 10


class ScreenApiClient:
    """Client for the signage backend REST contract."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            base_url: Backend base URL, e.g. https://service.example.com
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Perform an HTTP request and raise ApiError on any failure.

        Args:
            method: HTTP method
            path: Path below base_url
            **kwargs: Passed through to requests

        Returns:
            Successful response
        """
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.session.request(method, self._url(path), **kwargs)
        except requests.RequestException as e:
            status = e.response.status_code if e.response is not None else None
            raise ApiError(f"{method} {path} failed: {e}", status) from e

        if not 200 <= response.status_code < 300:
            raise ApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                response.status_code
            )
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"{method} {path} returned invalid JSON: {e}",
                           response.status_code) from e

    # -------------------------------------------------------------------------
    # Screens
    # -------------------------------------------------------------------------

    def get_screen(self, identifier: str) -> Screen:
        """
        Get the screen registered for a device identity.

        Raises:
            ScreenLookupError: If the screen does not exist
            ApiError: On any other failure
        """
        path = f"/screen/get-by-identifier/{identifier}"
        try:
            data = self._json('GET', path)
        except ApiError as e:
            if e.status_code == 404:
                raise ScreenLookupError(f"Screen not found: {identifier}", 404) from e
            raise

        if not data:
            raise ScreenLookupError(f"Screen not found: {identifier}", 404)
        return Screen.from_dict(data)

    def get_screen_content(self, screen_id: Any) -> List[ContentEntry]:
        """Get content entries assigned to a screen, ordered by position."""
        data = self._json('GET', f"/screen/get-screen-content-by-screen/{screen_id}") or []
        entries = [ContentEntry.from_dict(row) for row in data]
        return sorted(entries, key=lambda e: e.position)

    def add_screen(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Register a new screen for this device."""
        return self._json('POST', "/screen/add-screen", json=payload) or {}

    def update_screen(
        self,
        identifier: str,
        status: Optional[str] = None,
        status_description: Optional[str] = None,
        content_version: Optional[int] = None
    ) -> None:
        """Patch status fields of this device's screen record."""
        payload: Dict[str, Any] = {"identifier": identifier}
        if status is not None:
            payload["status"] = status
        if status_description is not None:
            payload["statusDescription"] = status_description
        if content_version is not None:
            payload["contentVersion"] = content_version

        self._request('PATCH', "/screen/update-by-identifier", json=payload)

    def post_screen_analytics(
        self,
        screen_id: str,
        user_id: Any,
        status: str,
        date: Optional[str] = None
    ) -> None:
        """Post a connectivity analytics record for a screen."""
        self._request('POST', "/screen-analytics", json={
            "screenId": screen_id,
            "userId": user_id,
            "status": status,
            "date": date or formatdate(usegmt=True),
        })

    # -------------------------------------------------------------------------
    # Playlists and media
    # -------------------------------------------------------------------------

    def get_playlist(self, playlist_id: Any) -> Playlist:
        data = self._json('GET', f"/playlist/{playlist_id}")
        if not data:
            raise ApiError(f"Playlist not found: {playlist_id}", 404)
        return Playlist.from_dict(data)

    def is_playlist_in_schedule(self, playlist_id: Any) -> bool:
        data = self._json(
            'GET',
            f"/playlist/playlist-schedules/is-playlist-in-schedule/{playlist_id}"
        )
        return bool(data)

    def get_playlist_media(self, playlist_id: Any) -> List[PlaylistMediaItem]:
        """Get media slots of a playlist, ordered by position."""
        data = self._json('GET', f"/playlist-media/by-playlist/{playlist_id}") or []
        items = [PlaylistMediaItem.from_dict(row) for row in data]
        return sorted(items, key=lambda i: i.position)

    def get_media(self, media_id: Any) -> MediaAsset:
        data = self._json('GET', f"/media/{media_id}")
        if not data:
            raise ApiError(f"Media not found: {media_id}", 404)
        return MediaAsset.from_dict(data)

    def get_s3_media_path(self, media_id: Any) -> Optional[str]:
        """Get a direct object-storage URL for a media file, if any."""
        data = self._json('GET', f"/storage/media/{media_id}/get-s3-media") or {}
        return data.get('s3Path') or None

    def get_local_media(self, media_id: Any) -> bytes:
        """Download a media file through the origin server."""
        return self._request('GET', f"/storage/media/{media_id}/get-local-media").content

    def open_stream(self, url: str) -> requests.Response:
        """
        Open a streaming GET to an absolute URL (object storage).

        The caller must close the returned response.
        """
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"GET {url} failed: {e}") from e

        if response.status_code != 200:
            response.close()
            raise ApiError(f"GET {url} returned HTTP {response.status_code}",
                           response.status_code)
        return response

    def __repr__(self) -> str:
        return f"ScreenApiClient(base_url={self.base_url})"
