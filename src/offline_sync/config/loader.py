"""Configuration loader for JSON/YAML files and environment variables."""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml

from .schema import SyncConfig
from .settings import AppSettings, get_settings
from ..utils.logging import get_logger


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


class ConfigLoader:
    """Loads and validates sync configuration from various sources."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncConfig:
        """Load configuration from JSON or YAML file.

        Args:
            file_path: Path to configuration file

        Returns:
            Validated SyncConfig object

        Raises:
            ConfigurationError: If file cannot be loaded or validated
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        self.logger.info("Loading configuration from file", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                elif file_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> SyncConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration data as dictionary

        Returns:
            Validated SyncConfig object
        """
        try:
            data = self._apply_env_overrides(data)
            config = SyncConfig(**data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid sync configuration: {e}")

        self.logger.info(
            "Sync configuration loaded",
            max_retries=config.max_retries,
            entity_routes=len(config.entity_routes)
        )

        return config

    def load_from_settings(self, settings: Optional[AppSettings] = None) -> SyncConfig:
        """Build configuration from application settings.

        A ``SYNC_CONFIG_FILE`` takes precedence; otherwise the sync, remote and
        connectivity sections of the settings are used.
        """
        settings = settings or get_settings()

        if settings.sync.config_file:
            return self.load_from_file(settings.sync.config_file)

        return self.load_from_dict({
            "enabled": settings.sync.enabled,
            "max_retries": settings.sync.max_retries,
            "retry_delays_seconds": settings.sync.retry_delays_seconds,
            "fail_fast_on_permanent": settings.sync.fail_fast_on_permanent,
            "auto_sync_interval_seconds": settings.sync.auto_sync_interval_seconds,
            "online_debounce_seconds": settings.connectivity.debounce_seconds,
            "detect_conflicts": settings.remote.detect_conflicts,
            "conflict_strategy": settings.sync.conflict_strategy,
        })

    def save_to_file(self, config: SyncConfig, file_path: Union[str, Path], format: str = 'yaml'):
        """Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Output file path
            format: Output format ('yaml' or 'json')
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        data = config.model_dump()

        with open(file_path, 'w', encoding='utf-8') as f:
            if format.lower() == 'yaml':
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, allow_unicode=True)
            elif format.lower() == 'json':
                json.dump(data, f, indent=2)
            else:
                raise ConfigurationError(f"Unsupported format: {format}")

        self.logger.info("Configuration saved successfully", file_path=str(file_path))

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration data.

        Environment variables use the format: OFFLINE_SYNC_<KEY>
        For example: OFFLINE_SYNC_MAX_RETRIES, OFFLINE_SYNC_ENABLED
        """
        env_overrides = {}

        if os.getenv('OFFLINE_SYNC_ENABLED'):
            env_overrides['enabled'] = os.getenv('OFFLINE_SYNC_ENABLED').lower() in ['true', '1', 'yes']

        if os.getenv('OFFLINE_SYNC_MAX_RETRIES'):
            try:
                env_overrides['max_retries'] = int(os.getenv('OFFLINE_SYNC_MAX_RETRIES'))
            except ValueError:
                self.logger.warning("Invalid OFFLINE_SYNC_MAX_RETRIES value, ignoring")

        if os.getenv('OFFLINE_SYNC_AUTO_SYNC_INTERVAL'):
            try:
                env_overrides['auto_sync_interval_seconds'] = float(os.getenv('OFFLINE_SYNC_AUTO_SYNC_INTERVAL'))
            except ValueError:
                self.logger.warning("Invalid OFFLINE_SYNC_AUTO_SYNC_INTERVAL value, ignoring")

        if env_overrides:
            self.logger.info("Applied environment variable overrides", overrides=list(env_overrides.keys()))
            data = {**data, **env_overrides}

        return data


def load_config_from_env() -> SyncConfig:
    """Load sync configuration from environment variables and default files.

    Looks for configuration files in this order:
    1. OFFLINE_SYNC_CONFIG_FILE environment variable
    2. ./config/offline_sync.yaml
    3. ./config/offline_sync.json

    If no file is found, the application settings are used.
    """
    loader = ConfigLoader()
    logger = get_logger("load_config_from_env")

    config_file = os.getenv('OFFLINE_SYNC_CONFIG_FILE')
    if config_file:
        if os.path.exists(config_file):
            return loader.load_from_file(config_file)
        logger.warning("Specified config file not found", file=config_file)

    for file_path in ['./config/offline_sync.yaml', './config/offline_sync.yml', './config/offline_sync.json']:
        if os.path.exists(file_path):
            logger.info("Found configuration file", file=file_path)
            return loader.load_from_file(file_path)

    return loader.load_from_settings()
