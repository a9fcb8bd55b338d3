"""Configuration loader for sync profiles in JSON/YAML files."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .schema import ConfigurationError, SyncConfig
from .settings import SyncSettings
from ..utils.logging import get_logger


class ConfigLoader:
    """Builds SyncConfig objects from settings, profile files and overrides."""

    def __init__(self, settings: Optional[SyncSettings] = None):
        self.settings = settings
        self.logger = get_logger(self.__class__.__name__)

    def defaults(self) -> Dict[str, Any]:
        """Sync defaults taken from ``SYNC_*`` settings, if any were given."""
        if self.settings is None:
            return {}

        return {
            "concurrency": self.settings.concurrency,
            "mode": self.settings.mode,
            "export_formats": {
                "docs": self.settings.docs_type,
                "sheets": self.settings.sheets_type,
                "slides": self.settings.slides_type,
                "maps": self.settings.maps_type,
                "fallback": self.settings.fallback_type,
            },
            "abort_on_error": self.settings.abort_on_error,
            "create_folders": self.settings.create_folders,
        }

    def read_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """Read a profile file into a dictionary.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        self.logger.info("Loading sync profile", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                elif file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Sync profile must be a mapping: {file_path}")

        return data

    def load_from_dict(self, data: Dict[str, Any], **overrides) -> SyncConfig:
        """Merge defaults, profile data and explicit overrides into a SyncConfig.

        Overrides whose value is None are ignored, so unset command-line
        options never mask profile values.
        """
        merged = self.defaults()

        for source in (data, {k: v for k, v in overrides.items() if v is not None}):
            for key, value in source.items():
                if key == "export_formats" and isinstance(value, dict):
                    formats = dict(merged.get("export_formats", {}))
                    formats.update({k: v for k, v in value.items() if v is not None})
                    merged["export_formats"] = formats
                else:
                    merged[key] = value

        config = SyncConfig.create(**merged)

        self.logger.debug(
            "Sync configuration built",
            concurrency=config.concurrency,
            mode=config.mode.value,
            abort_on_error=config.abort_on_error
        )

        return config

    def load_from_file(self, file_path: Union[str, Path], **overrides) -> SyncConfig:
        """Load a sync profile from a JSON or YAML file."""
        return self.load_from_dict(self.read_file(file_path), **overrides)
