"""Configuration loading from environment variables and diagramkeep.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from diagramkeep.storage.substrate import DEFAULT_QUOTA_BYTES

_HOME_DIR = Path.home() / ".diagramkeep"
_DEFAULT_STORAGE_DIR = _HOME_DIR / "storage"
_CONFIG_FILENAME = "diagramkeep.toml"


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class StorageConfig:
    """Key-value substrate configuration."""

    backend: str = "file"  # "file" or "memory"
    path: Path = _DEFAULT_STORAGE_DIR
    quota_bytes: int = DEFAULT_QUOTA_BYTES


@dataclass
class AutoSaveConfig:
    """Debounced auto-save configuration."""

    enabled: bool = True
    delay: float = 5.0


@dataclass
class EditorConfig:
    """HTTP bridge the editor talks to. ``port = 0`` disables it."""

    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class IconConfig:
    """Shape collections assembled into the icon catalog at startup."""

    collections: list[Path] = field(default_factory=list)


@dataclass
class DiagramKeepConfig:
    """Top-level diagramkeep configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    autosave: AutoSaveConfig = field(default_factory=AutoSaveConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)
    icons: IconConfig = field(default_factory=IconConfig)
    pid_file: Path = _HOME_DIR / "diagramkeep.pid"
    assume_yes: bool = False
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> DiagramKeepConfig:
    """Load configuration from environment variables and optional diagramkeep.toml.

    Priority: environment variables > diagramkeep.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.diagramkeep/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _HOME_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    storage_data = file_data.get("storage", {})
    autosave_data = file_data.get("autosave", {})
    editor_data = file_data.get("editor", {})
    icons_data = file_data.get("icons", {})

    config = DiagramKeepConfig(
        storage=StorageConfig(
            backend=os.getenv("DIAGRAMKEEP_STORAGE", storage_data.get("backend", "file")),
            path=Path(
                os.getenv("DIAGRAMKEEP_STORAGE_DIR", storage_data.get("path", str(_DEFAULT_STORAGE_DIR)))
            ).expanduser(),
            quota_bytes=int(
                os.getenv("DIAGRAMKEEP_QUOTA_BYTES", storage_data.get("quota_bytes", DEFAULT_QUOTA_BYTES))
            ),
        ),
        autosave=AutoSaveConfig(
            enabled=_as_bool(os.getenv("DIAGRAMKEEP_AUTOSAVE", autosave_data.get("enabled", True))),
            delay=float(os.getenv("DIAGRAMKEEP_AUTOSAVE_DELAY", autosave_data.get("delay", 5.0))),
        ),
        editor=EditorConfig(
            host=os.getenv("DIAGRAMKEEP_EDITOR_HOST", editor_data.get("host", "127.0.0.1")),
            port=int(os.getenv("DIAGRAMKEEP_EDITOR_PORT", editor_data.get("port", 8765))),
        ),
        icons=IconConfig(
            collections=[Path(p).expanduser() for p in icons_data.get("collections", [])],
        ),
        assume_yes=_as_bool(os.getenv("DIAGRAMKEEP_ASSUME_YES", file_data.get("assume_yes", False))),
        log_level=os.getenv("DIAGRAMKEEP_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
