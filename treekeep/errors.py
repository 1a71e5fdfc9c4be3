"""
Exception types and error logging for treekeep.

Filesystem failures are plain OSError and propagate unchanged. The types
here cover the failures that are specific to saving, opening and importing
documents. log_exception keeps full tracebacks on disk while the CLI shows
clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class TreekeepError(Exception):
    """Base class for treekeep errors."""


class IntegrityError(TreekeepError):
    """
    A digest comparison failed during save.

    Attributes:
        stage: "dump" when the two independent dumps disagree (the target
            file was not touched), "commit" when the committed file does not
            match the verified dump (the target was already overwritten).
        expected: Digest of the first dump
        actual: Digest it was compared against
    """

    def __init__(self, stage: str, expected: str, actual: str, path: Optional[Path] = None):
        self.stage = stage
        self.expected = expected
        self.actual = actual
        self.path = path
        label = "dump mismatch" if stage == "dump" else "post-save mismatch"
        super().__init__(f"Integrity check failed ({label}): {expected} != {actual}")


class DocumentImportError(TreekeepError):
    """Neither the native dump format nor the plain tree format could be read."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot import {path}: {reason}")


class ArchiveError(OSError):
    """Container extraction failed."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting TREEKEEP_DATA_DIR."""
    data_dir = os.environ.get("TREEKEEP_DATA_DIR")
    if data_dir:
        return Path(data_dir) / "treekeep-errors.log"
    return Path.home() / ".treekeep" / "treekeep-errors.log"


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
            f.write(f"[{timestamp}] {type(exc).__name__}")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
