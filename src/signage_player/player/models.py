"""
Data model for the signage player.
Records are parsed from the backend's camelCase JSON.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Content version reported by the backend for a screen that never synced
OUT_OF_SYNC_VERSION = 0


class ScreenStatus(Enum):
    """Device health as reported to the backend."""
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"
    OUT_OF_SYNC = "out_of_sync"


@dataclass
class Screen:
    """Server-side record for one physical display."""

    id: Any
    identifier: str
    linked: bool = False
    pairing_code: str = ""
    background_color: Optional[str] = None
    content_version: int = OUT_OF_SYNC_VERSION
    status: Optional[str] = None
    user_id: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Screen':
        return cls(
            id=data.get('id'),
            identifier=data.get('identifier', ''),
            linked=bool(data.get('linked', False)),
            pairing_code=str(data.get('pairingCode') or ''),
            background_color=data.get('backgroundColor'),
            content_version=int(data.get('contentVersion') or OUT_OF_SYNC_VERSION),
            status=data.get('status'),
            user_id=data.get('userId'),
        )


@dataclass
class ContentEntry:
    """Assignment of a content object to a screen."""

    id: Any
    content_id: Any
    content_type: str
    position: int = 0

    @property
    def is_playlist(self) -> bool:
        return self.content_type == 'playlist'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentEntry':
        return cls(
            id=data.get('id'),
            content_id=data.get('contentId'),
            content_type=data.get('contentType', ''),
            position=int(data.get('position') or 0),
        )


@dataclass
class Playlist:
    """A playlist and the transition applied to all of its items."""

    id: Any
    name: str = ""
    status: str = ""
    transition: Optional[str] = None

    @property
    def is_enabled(self) -> bool:
        return (self.status or '').lower() == 'enabled'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        return cls(
            id=data.get('id'),
            name=data.get('name', ''),
            status=data.get('status') or '',
            transition=data.get('transition'),
        )


@dataclass
class PlaylistMediaItem:
    """One media slot within a playlist."""

    id: Any
    media_id: Any
    duration: float = 0
    position: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistMediaItem':
        return cls(
            id=data.get('id'),
            media_id=data.get('mediaId'),
            duration=float(data.get('duration') or 0),
            position=int(data.get('position') or 0),
        )


@dataclass
class MediaAsset:
    """Uploaded media file and its remote locations."""

    id: Any
    media_type: str = ""
    filename: str = ""
    local_media_path: Optional[str] = None
    s3_media_path: Optional[str] = None

    @property
    def is_video(self) -> bool:
        return (self.media_type or '').startswith('video')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MediaAsset':
        return cls(
            id=data.get('id'),
            media_type=data.get('mediaType') or '',
            filename=data.get('filename') or '',
            local_media_path=data.get('localMediaPath'),
            s3_media_path=data.get('s3MediaPath'),
        )


@dataclass(frozen=True)
class PlayableItem:
    """Flattened, renumbered unit consumed by the playback loop."""

    id: Any
    media_id: Any
    duration: float
    position: int
    transition: Optional[str]
    media_type: str
    playlist_id: Any = None
    filename: str = ""

    @property
    def is_video(self) -> bool:
        return (self.media_type or '').startswith('video')


@dataclass(frozen=True)
class ErrorInfo:
    """General / technical / code triple shown to viewers and operators."""

    general: Optional[str] = None
    technical: Optional[str] = None
    code: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.general or self.technical or self.code)

    @property
    def is_complete(self) -> bool:
        return bool(self.general and self.technical and self.code)

    @property
    def message(self) -> Optional[str]:
        """Short message for status replies."""
        return self.general or self.technical


NO_ERROR = ErrorInfo()


@dataclass(frozen=True)
class ItemDiagnostic:
    """Non-fatal failure recorded while resolving one item."""

    general: str
    technical: str
    code: str
    media_id: Any = None
    playlist_id: Any = None

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(general=self.general, technical=self.technical, code=self.code)

    @property
    def status_description(self) -> str:
        return f"[{self.code}] {self.general}"


def compute_screen_status(error: ErrorInfo, content_version: int) -> ScreenStatus:
    """
    Status reported to the backend.

    Priority is error > out_of_sync > online.
    """
    if error.is_set:
        return ScreenStatus.ERROR
    if content_version == OUT_OF_SYNC_VERSION:
        return ScreenStatus.OUT_OF_SYNC
    return ScreenStatus.ONLINE
