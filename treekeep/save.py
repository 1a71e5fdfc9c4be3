"""
Atomic save with dual-write verification.

A save dumps the store twice, into two independent temp files next to the
target, and compares their digests. Only when both agree is the first copy
promoted onto the target, after which the target itself is digested again.

- Dump mismatch: the target is untouched and both temp files are left in
  place for inspection.
- Post-save mismatch: the target has already been overwritten; the error
  reports it, it cannot prevent it.

Concurrent saves to the same target are not safe. Callers must serialize
them; no locking happens here.
"""

import itertools
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Union

from .errors import IntegrityError
from .hashing import content_digest

logger = logging.getLogger(__name__)

# Disambiguates saves started within the same clock tick
_save_counter = itertools.count(1)


class Dumpable(Protocol):
    """Anything that can serialize itself as a native dump."""

    def dump(self, stream) -> int: ...


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a committed save."""
    path: Path
    hash: str


def temp_paths(filepath: Union[str, Path]) -> tuple[Path, Path]:
    """
    Derive the pair of temp paths for one save of ``filepath``.

    Unique per call within this process: UTC time with microseconds plus a
    process-wide sequence number.
    """
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S.%fZ")
    stamp = f"{stamp}-{next(_save_counter)}"
    target = str(filepath)
    return Path(f"{target}{stamp}.swp1"), Path(f"{target}{stamp}.swp2")


def dump_to_file(store: Dumpable, filepath: Union[str, Path]) -> Path:
    """Dump ``store`` to a new file at ``filepath`` and return the path."""
    path = Path(filepath)
    with open(path, "w", encoding="utf-8", newline="") as f:
        store.dump(f)
    return path


def save(store: Dumpable, filepath: Union[str, Path]) -> SaveResult:
    """
    Save ``store`` to ``filepath`` with integrity verification.

    Raises:
        IntegrityError: If the two dumps differ (target untouched) or the
            committed file does not match the verified dump
        OSError: On filesystem failure
    """
    target = Path(filepath)
    temp1, temp2 = temp_paths(target)
    logger.debug("Saving %s via %s and %s", target, temp1.name, temp2.name)

    dump_to_file(store, temp1)
    dump_to_file(store, temp2)

    hash1 = content_digest(temp1)
    hash2 = content_digest(temp2)

    if hash1 != hash2:
        # Leave both dumps on disk for inspection
        raise IntegrityError("dump", hash1, hash2, path=target)

    shutil.copyfile(temp1, target)
    temp1.unlink()
    temp2.unlink()

    final_hash = content_digest(target)
    if final_hash != hash1:
        raise IntegrityError("commit", hash1, final_hash, path=target)

    logger.info("Saved %s (%s)", target, final_hash)
    return SaveResult(path=target, hash=final_hash)
