"""
Swap workspaces for open containers.

Opening a container extracts it into a workspace directory under the data
directory, where the host mounts a DocumentStore for editing. The workspace
name is the container's full path with separators escaped, so two files
with the same base name in different folders get different workspaces.

Before extracting, the container is backed up once per modification time.
The backup name carries the container's mtime, not the current time, so
reopening an unchanged file finds its backup already present and skips it.

Known limitation: two paths that escape to the same name (e.g. one already
containing the sentinel character) share a workspace.
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from .archive import extract_archive
from .config import SettingsStore

logger = logging.getLogger(__name__)

CONTAINER_SUFFIX = ".gko"
SEPARATOR_SENTINEL = "%"
SWAP_SETTINGS_NAME = "swap"
BACKUP_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def workspace_name(container_path: Union[str, Path]) -> str:
    """Escape a container path into a flat directory name."""
    name = str(container_path)
    for sep in (os.sep, os.altsep):
        if sep:
            name = name.replace(sep, SEPARATOR_SENTINEL)
    return name.removesuffix(CONTAINER_SUFFIX)


def backup_name(container_path: Union[str, Path], mtime: float) -> str:
    """Backup file name for a container at a given modification time."""
    stamp = datetime.fromtimestamp(mtime).strftime(BACKUP_TIME_FORMAT)
    return f"{workspace_name(container_path)}_{stamp}{Path(container_path).suffix}"


def _copy_exclusive(src: Path, dest: Path) -> bool:
    """
    Copy ``src`` to ``dest`` only if ``dest`` does not exist.

    Creation is a single exclusive open, so the existence check and the
    create cannot race. A partially written copy is removed on failure.

    Returns:
        True if copied, False if ``dest`` already existed
    """
    try:
        out = open(dest, "xb")
    except FileExistsError:
        return False

    try:
        with out, open(src, "rb") as inp:
            shutil.copyfileobj(inp, out)
    except BaseException:
        dest.unlink(missing_ok=True)
        raise
    return True


class SwapWorkspaceManager:
    """Create backups and swap workspaces for containers."""

    def __init__(
        self,
        data_dir: Path,
        *,
        archive_tool: str = "zip",
        archive_timeout: Optional[float] = None,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._archive_tool = archive_tool
        self._archive_timeout = archive_timeout

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def workspace_path_for(self, container_path: Union[str, Path]) -> Path:
        return self._data_dir / workspace_name(container_path)

    def backup_path_for(self, container_path: Union[str, Path]) -> Path:
        """Backup path for the container's current modification time."""
        mtime = os.stat(container_path).st_mtime
        return self._data_dir / backup_name(container_path, mtime)

    def open(self, container_path: Union[str, Path]) -> Path:
        """
        Back up and extract a container, returning its workspace path.

        Raises:
            OSError: If the container cannot be read, the backup cannot be
                written, or extraction fails (ArchiveError)
        """
        container = Path(container_path)
        workspace = self.workspace_path_for(container_path)
        self._data_dir.mkdir(parents=True, exist_ok=True)

        backup = self.backup_path_for(container_path)
        if _copy_exclusive(container, backup):
            logger.info("Backed up %s to %s", container, backup.name)
        else:
            logger.debug("Backup %s already exists, skipping", backup.name)

        extract_archive(
            container,
            workspace,
            tool=self._archive_tool,
            timeout=self._archive_timeout,
        )

        SettingsStore(
            name=SWAP_SETTINGS_NAME,
            directory=workspace,
            defaults={"originalPath": str(container_path)},
        )

        logger.info("Opened %s in workspace %s", container, workspace.name)
        return workspace

    def original_path(self, workspace: Union[str, Path]) -> Optional[str]:
        """The container path recorded in a workspace, if any."""
        settings_file = Path(workspace) / f"{SWAP_SETTINGS_NAME}.toml"
        if not settings_file.exists():
            return None
        return SettingsStore(name=SWAP_SETTINGS_NAME, directory=Path(workspace)).get("originalPath")
