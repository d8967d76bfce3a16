"""
Logging setup for the signage player.
Every module gets its logger through setup_logger(__name__).
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Rotated file logs (5 files of 5 MB)
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5

_ROOT_LOGGER_NAME = "signage_player"
_configured = False


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    """Turn a level name or number into a logging level."""
    if level is None:
        level = os.environ.get("SIGNAGE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: Optional[Union[str, int]] = None,
    log_file: Optional[str] = None
) -> None:
    """
    Configure the package root logger.

    Args:
        level: Level name or number (default: SIGNAGE_LOG_LEVEL or INFO)
        log_file: Optional path for a rotating log file
    """
    global _configured

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(_resolve_level(level))

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.propagate = False
        _configured = True

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        already_attached = any(
            isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == path.resolve()
            for h in root.handlers
        )
        if not already_attached:
            file_handler = RotatingFileHandler(
                path,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)


def setup_logger(name: str) -> logging.Logger:
    """
    Get a module logger attached to the package root logger.

    Args:
        name: Module name (usually __name__)

    Returns:
        Logger instance
    """
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
