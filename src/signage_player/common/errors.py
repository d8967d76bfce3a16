"""
Error types for the signage player.

Lookup failures drive registration, resolution failures abort a single
playlist pass, per-item and download failures are recovered locally, and
transport failures degrade the realtime channel to offline.
"""

from typing import Any, Optional


class SignagePlayerError(Exception):
    """Base class for all signage player errors."""
    pass


class ApiError(SignagePlayerError):
    """Raised when a backend REST call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def error_code(self) -> str:
        """HTTP status as a string, or 'Unknown' when there was no response."""
        return str(self.status_code) if self.status_code is not None else "Unknown"


class ScreenLookupError(ApiError):
    """Raised when no screen is registered for a device identity."""
    pass


class ResolutionError(SignagePlayerError):
    """Raised when a playlist resolution pass fails as a whole."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def error_code(self) -> str:
        """Error code of the underlying cause, if it carries one."""
        return getattr(self.cause, "error_code", "Unknown")


class PerItemFetchError(SignagePlayerError):
    """Raised when one playlist entry or media item cannot be fetched."""

    def __init__(self, message: str, diagnostic: Any = None):
        super().__init__(message)
        self.diagnostic = diagnostic


class DownloadError(SignagePlayerError):
    """Raised when a media download strategy fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def error_code(self) -> str:
        """HTTP status as a string, or 'Unknown' when there was no response."""
        return str(self.status_code) if self.status_code is not None else "Unknown"


class PrimaryDownloadError(DownloadError):
    """Raised when the object-storage download path fails."""
    pass


class FallbackDownloadError(DownloadError):
    """Raised when the origin-server download path fails."""
    pass


class TransportError(SignagePlayerError):
    """Raised when the realtime channel cannot reach the server."""
    pass
