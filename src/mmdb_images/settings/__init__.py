from .manager import ImageCacheConfig, SettingsManager, default_settings_path
from .schema import DEFAULT_SETTINGS, SETTINGS_SCHEMA

__all__ = [
    "DEFAULT_SETTINGS",
    "ImageCacheConfig",
    "SETTINGS_SCHEMA",
    "SettingsManager",
    "default_settings_path",
]
