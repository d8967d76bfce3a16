"""
Playlist Resolver for the signage player.

Resolves the assignment graph of a screen (content entries -> playlists ->
schedules -> playlist media -> media) into one flat, renumbered sequence of
playable items, and re-resolves it on a fixed interval.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, NoReturn, Optional, Tuple, TypeVar

from signage_player.common.api_client import ScreenApiClient
from signage_player.common.errors import ApiError, PerItemFetchError, ResolutionError
from signage_player.common.logger import setup_logger
from .models import (
    NO_ERROR,
    ContentEntry,
    ErrorInfo,
    ItemDiagnostic,
    PlayableItem,
    Playlist,
    PlaylistMediaItem,
    ScreenStatus,
)
from .state import DeviceState

logger = setup_logger(__name__)

T = TypeVar('T')
R = TypeVar('R')

FETCH_FAILED_MESSAGE = "Failed to fetch content."
SCHEDULE_CHECK_FAILED_MESSAGE = "Error in checking and updating playlist items."


def renumber(items: Iterable[PlayableItem]) -> List[PlayableItem]:
    """Assign contiguous positions starting at 1."""
    return [replace(item, position=index) for index, item in enumerate(items, start=1)]


def collect(
    inputs: Iterable[T],
    stage: Callable[[T], R]
) -> Tuple[List[R], List[ItemDiagnostic]]:
    """
    Run a per-item stage over inputs.

    A PerItemFetchError skips that input and its diagnostic is collected;
    any other exception propagates.

    Returns:
        (successes, diagnostics)
    """
    results: List[R] = []
    diagnostics: List[ItemDiagnostic] = []
    for value in inputs:
        try:
            results.append(stage(value))
        except PerItemFetchError as e:
            diagnostics.append(e.diagnostic)
    return results, diagnostics


class PlaylistResolver:
    """
    Keeps the device's playable sequence in sync with its assigned content.
    Runs in a background thread at a fixed interval (default 5 seconds).
    """

    # Default refresh interval in seconds
    DEFAULT_REFRESH_INTERVAL = 5

    def __init__(
        self,
        api: ScreenApiClient,
        state: DeviceState,
        identity: str,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        content_version: int = 1,
        default_duration: float = 10
    ):
        """
        Initialize the resolver.

        Args:
            api: Backend API client
            state: Shared device state receiving the sequence
            identity: Device identifier
            refresh_interval: Seconds between resolution passes
            content_version: Version reported after a successful pass
            default_duration: Duration for items without a positive one
        """
        self._api = api
        self._state = state
        self.identity = identity
        self.refresh_interval = refresh_interval
        self.content_version = content_version
        self.default_duration = default_duration

        # At most one pass in flight
        self._pass_guard = threading.Lock()

        # Background thread state
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()

        # Error last reported by this resolver, so a clean pass can retract it
        self._reported_error: ErrorInfo = NO_ERROR
        self._last_diagnostics: List[ItemDiagnostic] = []

        # Pass statistics
        self._last_pass_time: Optional[datetime] = None
        self._last_pass_success = False
        self._consecutive_failures = 0
        self._total_passes = 0
        self._skipped_passes = 0

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, identity: Optional[str] = None) -> List[PlayableItem]:
        """
        Resolve the assignment graph into an ordered sequence.

        Per-item failures are reported and skipped. A failure to find the
        screen, fetch its content or re-check schedules aborts the pass.

        Args:
            identity: Device identifier (defaults to this resolver's)

        Returns:
            Playable items with positions 1..n

        Raises:
            ResolutionError: If the pass failed as a whole
        """
        identity = identity or self.identity
        self._last_diagnostics = []

        try:
            screen = self._api.get_screen(identity)
            self._state.set_background_color(screen.background_color)
            entries = self._api.get_screen_content(screen.id)
        except ApiError as e:
            raise ResolutionError(FETCH_FAILED_MESSAGE, cause=e) from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # Malformed screen or content payload
            raise ResolutionError(FETCH_FAILED_MESSAGE, cause=e) from e

        if not entries:
            logger.debug("No content assigned to screen %s", screen.id)
            return []

        playlist_entries = [e for e in sorted(entries, key=lambda e: e.position) if e.is_playlist]
        batches, diagnostics = collect(playlist_entries, self._resolve_playlist_entry)
        self._last_diagnostics.extend(diagnostics)

        collected: List[PlayableItem] = []
        for batch in batches:
            collected.extend(batch)

        return self._filter_unscheduled(renumber(collected))

    def _resolve_playlist_entry(self, entry: ContentEntry) -> List[PlayableItem]:
        """Resolve one playlist content entry into its items (unnumbered)."""
        try:
            playlist = self._api.get_playlist(entry.content_id)
            if not playlist.is_enabled:
                logger.debug("Skipping playlist %s (status: %s)", playlist.id, playlist.status)
                return []

            if not self._api.is_playlist_in_schedule(playlist.id):
                logger.debug("Skipping playlist %s (not in schedule)", playlist.id)
                return []

            slots = self._api.get_playlist_media(playlist.id)
        except ApiError as e:
            self._fail(ItemDiagnostic(
                general=f"Error fetching playlist with ID {entry.content_id}",
                technical=str(e),
                code=e.error_code,
                playlist_id=entry.content_id,
            ))

        if not slots:
            return []

        items, diagnostics = collect(
            sorted(slots, key=lambda s: s.position),
            lambda slot: self._resolve_media_slot(playlist, slot)
        )
        self._last_diagnostics.extend(diagnostics)
        return items

    def _resolve_media_slot(self, playlist: Playlist, slot: PlaylistMediaItem) -> PlayableItem:
        """Fetch the media asset behind one playlist slot."""
        try:
            media = self._api.get_media(slot.media_id)
        except ApiError as e:
            self._fail(ItemDiagnostic(
                general=f"Error fetching media with ID {slot.media_id}",
                technical=str(e),
                code=e.error_code,
                media_id=slot.media_id,
                playlist_id=playlist.id,
            ))

        duration = slot.duration if slot.duration > 0 else self.default_duration
        return PlayableItem(
            id=slot.id,
            media_id=media.id if media.id is not None else slot.media_id,
            duration=duration,
            position=0,
            transition=playlist.transition,
            media_type=media.media_type,
            playlist_id=playlist.id,
            filename=media.filename,
        )

    def _fail(self, diagnostic: ItemDiagnostic) -> NoReturn:
        """Report a non-fatal diagnostic and abort the current item."""
        logger.error("%s: %s", diagnostic.general, diagnostic.technical)
        self._report_error(diagnostic.to_error_info(), diagnostic.status_description)
        raise PerItemFetchError(diagnostic.general, diagnostic)

    def _filter_unscheduled(self, items: List[PlayableItem]) -> List[PlayableItem]:
        """
        Drop items whose playlist fell out of schedule during the pass.

        Eligibility is checked once per contributing playlist.

        Raises:
            ResolutionError: If any schedule check fails
        """
        eligibility: Dict[Any, bool] = {}
        kept: List[PlayableItem] = []

        for item in items:
            if item.playlist_id not in eligibility:
                try:
                    eligibility[item.playlist_id] = self._api.is_playlist_in_schedule(
                        item.playlist_id
                    )
                except ApiError as e:
                    raise ResolutionError(SCHEDULE_CHECK_FAILED_MESSAGE, cause=e) from e

            if eligibility[item.playlist_id]:
                kept.append(item)

        if len(kept) != len(items):
            logger.info("Dropped %d unscheduled items", len(items) - len(kept))

        return renumber(kept)

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def refresh(self) -> bool:
        """
        Run one resolution pass and apply its result to the device state.

        Returns:
            True if the pass succeeded, False if it failed or was skipped
        """
        if not self._pass_guard.acquire(blocking=False):
            self._skipped_passes += 1
            logger.debug("Resolution pass already in flight - skipping")
            return False

        try:
            self._total_passes += 1
            try:
                items = self.resolve()
            except ResolutionError as e:
                self._record_failure(e)
                return False
            except Exception as e:
                logger.exception("Unexpected error during resolution pass")
                self._record_failure(ResolutionError(FETCH_FAILED_MESSAGE, cause=e))
                return False

            self._state.replace_items(items)

            if not items:
                self._state.clear_error()
                self._reported_error = NO_ERROR
            elif not self._last_diagnostics:
                self._retract_reported_error()

            self._report_content_version()
            self._record_success()
            return True
        finally:
            self._state.set_loading(False)
            self._pass_guard.release()

    def _report_error(self, error: ErrorInfo, description: str) -> None:
        """Set the device error and mirror it to the backend."""
        self._state.set_error(error)
        self._reported_error = error
        try:
            self._api.update_screen(
                self.identity,
                status=ScreenStatus.ERROR.value,
                status_description=description
            )
        except ApiError as e:
            logger.warning("Failed to report error status: %s", e)

    def _retract_reported_error(self) -> None:
        """Clear the device error if it is still the one this resolver set."""
        if self._reported_error.is_set and self._state.error == self._reported_error:
            logger.info("Content resolved cleanly - clearing previous error")
            self._state.clear_error()
        self._reported_error = NO_ERROR

    def _report_content_version(self) -> None:
        try:
            self._api.update_screen(self.identity, content_version=self.content_version)
        except ApiError as e:
            logger.warning("Failed to report content version: %s", e)

    def _record_success(self) -> None:
        self._last_pass_time = datetime.now()
        self._last_pass_success = True
        self._consecutive_failures = 0

    def _record_failure(self, error: ResolutionError) -> None:
        logger.error("Resolution pass failed: %s (%s)", error, error.cause)
        self._last_pass_time = datetime.now()
        self._last_pass_success = False
        self._consecutive_failures += 1

        general = str(error)
        self._report_error(
            ErrorInfo(general=general, technical=str(error.cause or error), code=error.error_code),
            f"[{error.error_code}] {general}"
        )

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the background resolution thread."""
        if self._running:
            logger.warning("Playlist resolver already running")
            return

        self._running = True
        self._stop_event.clear()

        self._thread = threading.Thread(
            target=self._refresh_loop,
            name="PlaylistResolver",
            daemon=True
        )
        self._thread.start()

        logger.info("Playlist resolver started - interval: %ss", self.refresh_interval)

    def stop(self) -> None:
        """Stop the background resolution thread."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None

        logger.info("Playlist resolver stopped")

    def _refresh_loop(self) -> None:
        """Background thread loop."""
        self.refresh()

        while self._running:
            if self._stop_event.wait(timeout=self.refresh_interval):
                break

            if self._running:
                self.refresh()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_diagnostics(self) -> List[ItemDiagnostic]:
        """Diagnostics recorded during the most recent pass."""
        return list(self._last_diagnostics)

    def get_status(self) -> Dict[str, Any]:
        """
        Get resolver status for reporting.

        Returns:
            Dictionary with pass statistics
        """
        return {
            'running': self._running,
            'last_pass_time': self._last_pass_time.isoformat() if self._last_pass_time else None,
            'last_pass_success': self._last_pass_success,
            'consecutive_failures': self._consecutive_failures,
            'total_passes': self._total_passes,
            'skipped_passes': self._skipped_passes,
            'refresh_interval': self.refresh_interval,
            'diagnostics': len(self._last_diagnostics),
        }

    def __repr__(self) -> str:
        return (
            f"PlaylistResolver(identity={self.identity}, "
            f"interval={self.refresh_interval}s)"
        )
