"""
Container extraction.

Containers are archives of a store directory. Zip containers are extracted
in-process; any other tool name is treated as a 7-Zip executable and run as
a child process (``x -bd -o<dest> <archive>``), which also reads 7z and
tar containers.

Extraction merges into an existing destination, overwriting files of the
same name.
"""

import logging
import os
import subprocess
import zipfile
from pathlib import Path
from typing import Optional, Union

from .errors import ArchiveError

logger = logging.getLogger(__name__)


def _safe_extractall(z: zipfile.ZipFile, path: Path) -> None:
    """Extract ``z`` into ``path`` ensuring no member escapes ``path``."""
    base = os.path.abspath(path)
    for member in z.namelist():
        dest = os.path.abspath(os.path.join(base, member))
        if not dest.startswith(base + os.sep) and dest != base:
            raise ArchiveError(f"Unsafe path in archive: {member}")
    z.extractall(path)


def _extract_zip(archive: Path, dest: Path) -> None:
    try:
        with zipfile.ZipFile(archive, "r") as z:
            _safe_extractall(z, dest)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Not a zip archive: {archive}: {e}") from e


def _extract_7zip(tool: str, archive: Path, dest: Path, timeout: Optional[float]) -> None:
    cmd = [tool, "x", "-bd", "-y", f"-o{dest}", str(archive)]
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ArchiveError(f"Archive tool not found: {tool}") from e
    except subprocess.TimeoutExpired as e:
        raise ArchiveError(f"Extraction of {archive} timed out after {timeout}s") from e

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise ArchiveError(
            f"{tool} exited with status {result.returncode} extracting {archive}: {detail}"
        )


def extract_archive(
    archive: Union[str, Path],
    dest: Union[str, Path],
    *,
    tool: str = "zip",
    timeout: Optional[float] = None,
) -> Path:
    """
    Extract ``archive`` into ``dest``, creating it if needed.

    Args:
        archive: Container file
        dest: Destination directory (merged into if it exists)
        tool: "zip" for in-process extraction, else a 7-Zip executable
        timeout: Seconds to wait for the external tool (None waits forever)

    Raises:
        FileNotFoundError: If the archive does not exist
        ArchiveError: If extraction fails
    """
    archive = Path(archive)
    dest = Path(dest)
    if not archive.is_file():
        raise FileNotFoundError(f"Container not found: {archive}")

    dest.mkdir(parents=True, exist_ok=True)
    if tool == "zip":
        _extract_zip(archive, dest)
    else:
        _extract_7zip(tool, archive, dest, timeout)
    return dest
