"""
Media Cache for the signage player.

Resolves a media id to a local file: a cached copy first, then the
object-storage location, then a transfer through the origin server.
Downloads report progress into the shared device state.
"""

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import requests

from signage_player.common.api_client import ScreenApiClient
from signage_player.common.errors import (
    ApiError,
    DownloadError,
    FallbackDownloadError,
    PrimaryDownloadError,
)
from signage_player.common.logger import setup_logger
from .models import ErrorInfo, PlayableItem
from .state import DeviceState

logger = setup_logger(__name__)

ProgressCallback = Callable[[float], None]


def _cleanup_temp_file(temp_path: Path) -> None:
    """Remove a temporary file if it exists."""
    try:
        if temp_path.exists():
            temp_path.unlink()
    except OSError as e:
        logger.debug("Could not remove temp file %s: %s", temp_path, e)


def _temp_path_for(target: Path) -> Path:
    return target.with_name(f".{target.name}.tmp")


class DownloadStrategy:
    """One way of bringing a media file into the cache."""

    name = "base"

    def fetch(self, media_id: Any, target: Path, progress: ProgressCallback) -> None:
        """
        Download media into target.

        Raises:
            DownloadError: If this strategy could not produce the file
        """
        raise NotImplementedError


class PrimaryStorageStrategy(DownloadStrategy):
    """Stream the file from its object-storage URL."""

    name = "object-storage"

    # Chunk size for streamed downloads
    CHUNK_SIZE = 8192

    def __init__(self, api: ScreenApiClient, chunk_size: int = CHUNK_SIZE):
        self._api = api
        self.chunk_size = chunk_size

    def fetch(self, media_id: Any, target: Path, progress: ProgressCallback) -> None:
        try:
            url = self._api.get_s3_media_path(media_id)
        except ApiError as e:
            raise PrimaryDownloadError(
                f"Object-storage lookup failed for media {media_id}: {e}", e.status_code
            ) from e

        if not url:
            raise PrimaryDownloadError(f"No object-storage location for media {media_id}")

        try:
            response = self._api.open_stream(url)
        except ApiError as e:
            raise PrimaryDownloadError(
                f"Object-storage download failed for media {media_id}: {e}", e.status_code
            ) from e

        temp_path = _temp_path_for(target)
        total = int(response.headers.get('Content-Length') or 0)
        written = 0

        try:
            with response, open(temp_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    written += len(chunk)
                    if total:
                        progress(written / total)

            os.replace(temp_path, target)
        except (requests.RequestException, OSError) as e:
            _cleanup_temp_file(temp_path)
            raise PrimaryDownloadError(
                f"Object-storage download failed for media {media_id}: {e}"
            ) from e

        progress(1.0)


class OriginFallbackStrategy(DownloadStrategy):
    """Fetch the whole file through the origin server and store it."""

    name = "origin-server"

    def __init__(self, api: ScreenApiClient):
        self._api = api

    def fetch(self, media_id: Any, target: Path, progress: ProgressCallback) -> None:
        try:
            payload = self._api.get_local_media(media_id)
        except ApiError as e:
            raise FallbackDownloadError(
                f"Origin download failed for media {media_id}: {e}", e.status_code
            ) from e

        temp_path = _temp_path_for(target)
        try:
            with open(temp_path, 'wb') as f:
                f.write(payload)
            os.replace(temp_path, target)
        except OSError as e:
            _cleanup_temp_file(temp_path)
            raise FallbackDownloadError(
                f"Could not store media {media_id}: {e}"
            ) from e

        progress(1.0)


class MediaCache:
    """
    Local cache of media files keyed by media id.

    Strategies are tried in order and the first success wins.
    """

    CACHE_KEY_PREFIX = "media_"

    # Concurrent downloads
    DEFAULT_WORKERS = 2

    def __init__(
        self,
        api: ScreenApiClient,
        state: DeviceState,
        cache_dir: str,
        strategies: Optional[List[DownloadStrategy]] = None,
        max_workers: int = DEFAULT_WORKERS
    ):
        """
        Initialize the media cache.

        Args:
            api: Backend API client
            state: Shared device state (paths, progress, errors)
            cache_dir: Directory holding cached media
            strategies: Download strategies in priority order
            max_workers: Concurrent background downloads
        """
        self._api = api
        self._state = state
        self.cache_dir = Path(cache_dir).expanduser()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self._strategies = strategies if strategies is not None else [
            PrimaryStorageStrategy(api),
            OriginFallbackStrategy(api),
        ]
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

        self._lock = threading.Lock()
        self._pending: Set[Any] = set()

        # Statistics
        self._cache_hits = 0
        self._downloads = 0
        self._failures = 0

        logger.info("MediaCache initialized - cache_dir: %s", self.cache_dir)

    @classmethod
    def cache_key(cls, media_id: Any) -> str:
        """Cache file name for a media id."""
        return f"{cls.CACHE_KEY_PREFIX}{media_id}"

    def path_for(self, media_id: Any) -> Path:
        return self.cache_dir / self.cache_key(media_id)

    def resolve(self, media_id: Any) -> Optional[Path]:
        """
        Resolve a media id to a local file, downloading it if needed.

        Args:
            media_id: Media id

        Returns:
            Path of the cached file, or None if unavailable
        """
        path = self.path_for(media_id)

        if path.exists():
            self._cache_hits += 1
            self._state.set_media_path(media_id, path)
            return path

        with self._lock:
            if media_id in self._pending:
                logger.debug("Media %s is already downloading", media_id)
                return self._state.get_media_path(media_id)
            self._pending.add(media_id)

        try:
            return self._download(media_id, path)
        finally:
            with self._lock:
                self._pending.discard(media_id)
            self._state.clear_download(media_id)

    def _download(self, media_id: Any, path: Path) -> Optional[Path]:
        """Try each strategy in order."""
        self._state.set_download_progress(media_id, 0.0)

        def on_progress(fraction: float) -> None:
            self._state.set_download_progress(media_id, fraction)

        last_error: Optional[DownloadError] = None
        for strategy in self._strategies:
            try:
                logger.info("Downloading media %s via %s", media_id, strategy.name)
                strategy.fetch(media_id, path, on_progress)
            except DownloadError as e:
                logger.warning("Download of media %s via %s failed: %s",
                               media_id, strategy.name, e)
                last_error = e
                continue

            self._downloads += 1
            self._state.set_media_path(media_id, path)
            logger.info("Cached media %s at %s", media_id, path)
            return path

        self._failures += 1
        existing = self._state.get_media_path(media_id)
        if existing is None:
            logger.error("All download strategies failed for media %s", media_id)
            self._state.set_error(ErrorInfo(
                general="Error fetching media asset.",
                technical=str(last_error),
                code=last_error.error_code if last_error else "Unknown",
            ))
        else:
            logger.warning("Keeping cached copy of media %s after failed refresh", media_id)
        return existing

    def resolve_async(self, media_id: Any) -> Future:
        """Resolve a media id in the background; the future yields the path."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="MediaCache"
                )
            executor = self._executor
        return executor.submit(self.resolve, media_id)

    def prefetch(self, items: Iterable[PlayableItem]) -> List[Future]:
        """Resolve every distinct media id of a sequence in the background."""
        seen: Set[Any] = set()
        futures = []
        for item in items:
            if item.media_id in seen:
                continue
            seen.add(item.media_id)
            futures.append(self.resolve_async(item.media_id))
        return futures

    def shutdown(self) -> None:
        """Stop background downloads (running ones finish on their own)."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def get_status(self) -> Dict[str, Any]:
        """Get cache statistics for reporting."""
        with self._lock:
            pending = len(self._pending)
        return {
            'cache_dir': str(self.cache_dir),
            'cache_hits': self._cache_hits,
            'downloads': self._downloads,
            'failures': self._failures,
            'pending': pending,
            'strategies': [s.name for s in self._strategies],
        }

    def __repr__(self) -> str:
        return f"MediaCache(cache_dir={self.cache_dir})"
