"""
Configuration management for treekeep.

Library configuration is stored as a TOML file in the data directory. It
records where documents live and how containers are extracted.

SettingsStore is the small per-directory key/value record used for swap
metadata inside a workspace.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "treekeep.toml"
CONFIG_VERSION = 1

ARCHIVE_TOOLS = ("zip", "7za", "7z")


def get_data_dir() -> Path:
    """
    Resolve the application data directory.

    TREEKEEP_DATA_DIR wins; otherwise ~/.treekeep.
    """
    env_dir = os.environ.get("TREEKEEP_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".treekeep"


@dataclass
class LibraryConfig:
    """Complete library configuration."""
    data_dir: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # "zip" extracts in-process; "7za"/"7z" (or a path to one) runs 7-Zip
    archive_tool: str = "zip"
    archive_timeout: Optional[float] = None

    # Rotating operations log in the data directory
    ops_log: bool = True

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.data_dir / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def load_config(data_dir: Path) -> LibraryConfig:
    """
    Load configuration from a data directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = data_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    library = data.get("library", {})
    version = library.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    archive = data.get("archive", {})
    timeout = archive.get("timeout")
    if timeout is not None and timeout <= 0:
        raise ValueError(f"Invalid archive timeout: {timeout}")

    return LibraryConfig(
        data_dir=data_dir,
        version=version,
        created=library.get("created", ""),
        archive_tool=archive.get("tool", "zip"),
        archive_timeout=timeout,
        ops_log=library.get("ops_log", True),
    )


def save_config(config: LibraryConfig) -> None:
    """
    Save configuration to the data directory.

    Creates the directory if it doesn't exist.
    """
    config.data_dir.mkdir(parents=True, exist_ok=True)

    archive: dict[str, Any] = {"tool": config.archive_tool}
    if config.archive_timeout is not None:
        archive["timeout"] = config.archive_timeout

    data = {
        "library": {
            "version": config.version,
            "created": config.created,
            "ops_log": config.ops_log,
        },
        "archive": archive,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(data_dir: Path) -> LibraryConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = data_dir / CONFIG_FILENAME

    if config_path.exists():
        return load_config(data_dir)
    else:
        config = LibraryConfig(data_dir=data_dir)
        save_config(config)
        return config


class SettingsStore:
    """
    Key/value record persisted as ``<directory>/<name>.toml``.

    Defaults are merged in on construction: a key is written only if the
    file does not already hold it, so existing values survive reopening.
    """

    def __init__(self, name: str, directory: Path, defaults: Optional[dict[str, Any]] = None):
        self.path = Path(directory) / f"{name}.toml"
        self._data: dict[str, Any] = {}
        if self.path.exists():
            with open(self.path, "rb") as f:
                self._data = tomllib.load(f)

        missing = {k: v for k, v in (defaults or {}).items() if k not in self._data}
        if missing or not self.path.exists():
            self._data.update(missing)
            self._write()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._write()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def as_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "wb") as f:
            tomli_w.dump(self._data, f)
