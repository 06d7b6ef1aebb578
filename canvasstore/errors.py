"""
Error types and error logging for canvasstore.

Logs full stack traces for debugging while the CLI shows clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class CanvasStoreError(Exception):
    """Base class for errors raised by the storage layer itself.

    Transport failures from a blob backend are not wrapped; they propagate
    as the backend raised them.
    """


class CorruptDocumentError(CanvasStoreError, ValueError):
    """A stored object exists but is not valid JSON."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        msg = f"Corrupt document at {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _error_log_path() -> Path:
    """Resolve error log path, respecting CANVASSTORE_PATH."""
    store = os.environ.get("CANVASSTORE_PATH")
    if store:
        return Path(store) / "canvasstore-errors.log"
    return Path.home() / ".canvasstore" / "canvasstore-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
