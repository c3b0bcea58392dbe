"""Settings file management with validation and change notifications."""

from __future__ import annotations

import json
import os
import sys
from copy import deepcopy
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

from jsonschema import ValidationError

from ..config import DISK_CACHE_DIR_NAME
from ..errors import SettingsLoadError, SettingsValidationError
from ..utils.jsonio import read_json, write_json
from .schema import DEFAULT_SETTINGS, merge_with_defaults

SettingsListener = Callable[[str, Any], None]


def default_settings_path() -> Path:
    """Return the default settings.json location for the current platform."""

    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "mmdb_images" / "settings.json"
        return Path.home() / "AppData" / "Roaming" / "mmdb_images" / "settings.json"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "mmdb_images" / "settings.json"
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "mmdb_images" / "settings.json"
    return Path.home() / ".config" / "mmdb_images" / "settings.json"


def default_cache_dir() -> Path:
    """Return the default disk cache directory for the current platform."""

    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Local"
        return root / "mmdb_images" / DISK_CACHE_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "mmdb_images" / DISK_CACHE_DIR_NAME
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "mmdb_images" / DISK_CACHE_DIR_NAME


@dataclass(frozen=True)
class ImageCacheConfig:
    """Resolved, typed view of the settings consumed by the cache."""

    max_total_cost: int
    max_entry_count: int
    disk_directory: Path
    disk_retention: timedelta
    timeout_sec: float
    workers: int

    @classmethod
    def from_settings(cls, data: dict[str, Any]) -> ImageCacheConfig:
        directory = data["disk"].get("directory")
        return cls(
            max_total_cost=int(data["memory"]["max_total_cost"]),
            max_entry_count=int(data["memory"]["max_entry_count"]),
            disk_directory=Path(directory).expanduser() if directory else default_cache_dir(),
            disk_retention=timedelta(days=float(data["disk"]["retention_days"])),
            timeout_sec=float(data["transport"]["timeout_sec"]),
            workers=int(data["transport"]["workers"]),
        )

    @classmethod
    def defaults(cls) -> ImageCacheConfig:
        return cls.from_settings(DEFAULT_SETTINGS)


class SettingsManager:
    """Load, validate and persist the image cache settings."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._data: dict[str, Any] = deepcopy(DEFAULT_SETTINGS)
        self._listeners: list[SettingsListener] = []

    @property
    def path(self) -> Path:
        return self._path or default_settings_path()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Load the settings JSON from disk, creating defaults if missing."""

        path = self.path
        self._path = path
        if path.exists():
            try:
                payload = read_json(path)
            except (OSError, json.JSONDecodeError) as exc:
                raise SettingsLoadError(str(exc)) from exc
            if not isinstance(payload, dict):
                raise SettingsLoadError(f"{path} does not contain a JSON object")
        else:
            payload = None
        try:
            self._data = merge_with_defaults(payload)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value for *key*, supporting dotted access for nested keys."""

        target: Any = self._data
        for part in key.split("."):
            if not isinstance(target, dict) or part not in target:
                return default
            target = target[part]
        return target

    def set(self, key: str, value: Any) -> None:
        """Update *key* with *value*, validate, and persist the change."""

        if isinstance(value, Path):
            value = str(value)

        updated = deepcopy(self._data)
        parts = key.split(".")
        target: dict[str, Any] = updated
        for part in parts[:-1]:
            branch = target.get(part)
            if not isinstance(branch, dict):
                branch = {}
                target[part] = branch
            target = branch
        target[parts[-1]] = value
        try:
            self._data = merge_with_defaults(updated)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()
        for listener in list(self._listeners):
            listener(key, value)

    def add_listener(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def to_config(self) -> ImageCacheConfig:
        return ImageCacheConfig.from_settings(self._data)

    def as_dict(self) -> dict[str, Any]:
        return deepcopy(self._data)

    # ------------------------------------------------------------------
    # Internal utilities
    # ------------------------------------------------------------------
    def _write(self) -> None:
        try:
            write_json(self.path, self._data)
        except OSError as exc:
            raise SettingsLoadError(f"Cannot write {self.path}: {exc}") from exc


__all__ = ["ImageCacheConfig", "SettingsManager", "default_cache_dir", "default_settings_path"]
