"""Simple YAML configuration loader for earshot."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import ValidationError

from .settings import EngineSettings, TranscriptionSettings, QUALITY_PRESETS

logger = logging.getLogger(__name__)

# Keys holding filesystem paths, resolved relative to the config file
PATH_KEYS = (
    "logging.file_path",
    "storage.clips_directory",
    "transcription.google_credentials_path",
)


class EarshotConfig:
    """earshot configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults are used.
        """
        if config_path is None:
            self.config_file = None
            self.config: Dict[str, Any] = {}
            logger.info("No configuration file given, using defaults")
            return

        self.config_file = Path(config_path)
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        for key_path in PATH_KEYS:
            section, key = key_path.split('.')
            value = config.get(section, {}).get(key) if isinstance(config.get(section), dict) else None
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'recognition.silence_threshold').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_engine_settings(self) -> EngineSettings:
        """Validated recognition settings: the quality preset, then explicit keys.

        Raises:
            ValueError: on an unknown quality mode or invalid values
        """
        mode = self.get('recognition.quality_mode', 'balanced')
        overrides = {k: v for k, v in (self.get('recognition') or {}).items() if k != 'quality_mode'}
        if mode not in QUALITY_PRESETS:
            raise ValueError(f"Unknown recognition.quality_mode '{mode}'")
        try:
            return EngineSettings.for_quality_mode(mode, **overrides)
        except ValidationError as e:
            raise ValueError(f"Invalid recognition settings: {e}") from e

    def get_transcription_settings(self) -> TranscriptionSettings:
        try:
            return TranscriptionSettings(**(self.get('transcription') or {}))
        except ValidationError as e:
            raise ValueError(f"Invalid transcription settings: {e}") from e

    def get_clips_directory(self) -> Optional[str]:
        """Directory for saved clips, or None when clip saving is off."""
        clips_dir = self.get('storage.clips_directory')
        return str(Path(clips_dir).absolute()) if clips_dir else None


__all__ = [
    'EarshotConfig',
    'EngineSettings',
    'TranscriptionSettings',
    'QUALITY_PRESETS',
]
