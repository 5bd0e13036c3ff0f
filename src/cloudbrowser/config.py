"""
Configuration management for cloudbrowser.

This module provides configuration file support with YAML format,
API credentials, UI preferences, and the persisted default project.

Features:
- YAML configuration file at ~/.config/cloudbrowser/config.yaml
- Default values with user overrides
- OVH_* environment variables override the API credentials
- Generic section/key access used to persist the default cloud project

Architecture:
- ConfigManager: Main configuration interface
- Merges user config with defaults
- Provides typed access to settings
- Handles missing/invalid config gracefully
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SECTION = "default"

ENV_OVERRIDES = {
    "OVH_ENDPOINT": "endpoint",
    "OVH_APPLICATION_KEY": "application_key",
    "OVH_APPLICATION_SECRET": "application_secret",
    "OVH_CONSUMER_KEY": "consumer_key",
}


@dataclass
class APIConfig:
    """API endpoint and credentials."""
    endpoint: str = "ovh-eu"
    application_key: str = ""
    application_secret: str = ""
    consumer_key: str = ""
    timeout: int = 30  # seconds


@dataclass
class UIConfig:
    """UI-related configuration."""
    refresh_interval: int = 10  # seconds between instance list refreshes
    notification_seconds: int = 5
    debug_visible_entries: int = 15


@dataclass
class DebugConfig:
    capacity: int = 100


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file_path: Optional[str] = None  # None for default


@dataclass
class DefaultConfig:
    default_cloud_project: str = ""


@dataclass
class AppConfig:
    """Main application configuration."""
    api: APIConfig = field(default_factory=APIConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)
    logging: LogConfig = field(default_factory=LogConfig)
    default: DefaultConfig = field(default_factory=DefaultConfig)


def _section_name(section: str) -> str:
    return section or DEFAULT_SECTION


def get_config_value(data: Dict[str, Any], section: str, key: str) -> str:
    """Read ``key`` from ``section`` of a loaded config mapping ("" if unset)."""
    values = data.get(_section_name(section)) or {}
    if not isinstance(values, dict):
        return ""
    value = values.get(key)
    return "" if value is None else str(value)


def set_config_value(data: Dict[str, Any], path: Path, section: str, key: str, value: str) -> None:
    """Set ``key`` in ``section`` of ``data`` and write the mapping to ``path``."""
    name = _section_name(section)
    values = data.get(name)
    if not isinstance(values, dict):
        values = {}
        data[name] = values
    values[key] = value
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
    logger.debug(f"Saved {name}.{key} to {path}")


class ConfigManager:
    """Configuration manager with YAML file support."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else Path.home() / ".config" / "cloudbrowser"
        self.config_file = self.config_dir / "config.yaml"
        self._config: AppConfig = AppConfig()
        self._raw: Dict[str, Any] = {}

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create config directory {self.config_dir}: {e}")

        self.load_config()

    def load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r') as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise ValueError("top level must be a mapping")
                self._raw = user_config
                self._config = self._merge_configs(AppConfig(), user_config)
                logger.debug(f"Loaded configuration from {self.config_file}")
            else:
                self._config = AppConfig()
                self._raw = asdict(self._config)
                self.save_config()
                logger.info(f"Created default configuration at {self.config_file}")
        except Exception as e:
            logger.error(f"Failed to load config: {e}, using defaults")
            self._config = AppConfig()
            self._raw = asdict(self._config)

    def save_config(self) -> None:
        """Save current configuration to YAML file."""
        try:
            with open(self.config_file, 'w') as f:
                yaml.safe_dump(asdict(self._config), f, default_flow_style=False, indent=2, sort_keys=False)
            logger.debug(f"Saved configuration to {self.config_file}")
        except Exception as e:
            logger.error(f"Failed to save config: {e}")

    def get_config(self) -> AppConfig:
        """Get current configuration."""
        return self._config

    def _merge_configs(self, default: AppConfig, user: Dict[str, Any]) -> AppConfig:
        """Merge user config with defaults."""
        for section in fields(default):
            updates = user.get(section.name)
            if isinstance(updates, dict):
                self._merge_dataclass(getattr(default, section.name), updates)
        return default

    def _merge_dataclass(self, obj: Any, updates: Dict[str, Any]) -> None:
        """Merge updates into dataclass object."""
        for key, value in updates.items():
            if hasattr(obj, key) and not is_dataclass(getattr(obj, key)):
                setattr(obj, key, value)

    def get_value(self, section: str, key: str) -> str:
        return get_config_value(self._raw, section, key)

    def set_value(self, section: str, key: str, value: str) -> None:
        set_config_value(self._raw, self.config_file, section, key, value)
        target = getattr(self._config, _section_name(section), None)
        if target is not None and hasattr(target, key):
            setattr(target, key, value)

    def get_default_project(self) -> str:
        return self.get_value("", "default_cloud_project")

    def set_default_project(self, project_id: str) -> None:
        self.set_value("", "default_cloud_project", project_id)

    def get_api_config(self) -> APIConfig:
        """API settings with OVH_* environment overrides applied."""
        api = APIConfig(**asdict(self._config.api))
        for env_name, attr in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(api, attr, value)
        return api

    def get_log_level(self) -> str:
        """Get configured log level."""
        return str(self._config.logging.level).upper()

    def get_custom_log_path(self) -> Optional[str]:
        """Get custom log file path if configured."""
        return self._config.logging.file_path

    def get_refresh_interval(self) -> int:
        """Get instance list refresh interval in seconds."""
        return self._config.ui.refresh_interval


# Global config instance
config_manager = ConfigManager()
