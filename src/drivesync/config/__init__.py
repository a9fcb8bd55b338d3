"""Configuration package for drivesync."""

from .settings import (
    GoogleDriveSettings,
    LoggingSettings,
    SyncSettings,
    AppSettings,
    get_settings
)

from .schema import (
    CompareMode,
    ConfigurationError,
    ExportFormats,
    SyncConfig
)

from .loader import ConfigLoader

__all__ = [
    "GoogleDriveSettings",
    "LoggingSettings",
    "SyncSettings",
    "AppSettings",
    "get_settings",

    "CompareMode",
    "ConfigurationError",
    "ExportFormats",
    "SyncConfig",

    "ConfigLoader"
]
