"""Configuration management for the home server backup tool."""

import json
import logging
import os
from typing import Any, Dict, Optional

from homeserver.utils.errors import (
    ConfigFieldMissingError,
    ConfigMissingError,
    ConfigurationError,
    create_error_suggestions,
    format_validation_errors,
)

from .settings import DEFAULT_CONFIG_DIR, CONFIG_FILENAME, RetentionPolicy, Settings
from .validator import ConfigValidator

logger = logging.getLogger(__name__)

STORAGE_ROOT_FIELD = "external_drive"
FALLBACK_STORAGE_ROOT_FIELDS = ("storage_path",)

CONFIG_DIR_ENV = "HOMESERVER_CONFIG_DIR"


class ConfigManager:
    """Loads the JSON configuration written at deployment time."""

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory holding config.json (defaults to
                $HOMESERVER_CONFIG_DIR or /opt/home-server)
        """
        self.config_dir = config_dir or os.environ.get(CONFIG_DIR_ENV) or DEFAULT_CONFIG_DIR
        self.validator = ConfigValidator()

    @property
    def config_path(self) -> str:
        return os.path.join(self.config_dir, CONFIG_FILENAME)

    def load_config(self, validate: bool = True) -> Dict[str, Any]:
        """
        Load the configuration document.

        Args:
            validate: Whether to validate the configuration against the schema

        Returns:
            Dict[str, Any]: Loaded configuration

        Raises:
            ConfigMissingError: If the config file doesn't exist
            ConfigurationError: If the file is not valid JSON or fails validation
        """
        if not os.path.isfile(self.config_path):
            raise ConfigMissingError(
                f"Configuration file not found: {self.config_path}",
                suggestions=create_error_suggestions("config_missing", config_file=self.config_path),
            )

        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {self.config_path}: {e}") from e

        if validate:
            errors = self.validator.validate_config(config)
            if errors:
                raise ConfigurationError(
                    f"Invalid configuration in {self.config_path}",
                    details=format_validation_errors(errors),
                )

        return config

    def get_storage_root(self, config: Dict[str, Any]) -> str:
        """
        Extract the external storage root from a loaded configuration.

        Args:
            config: Loaded configuration

        Returns:
            str: Storage root path

        Raises:
            ConfigFieldMissingError: If the field is absent, empty or null
        """
        for field_name in (STORAGE_ROOT_FIELD,) + FALLBACK_STORAGE_ROOT_FIELDS:
            value = config.get(field_name)
            if isinstance(value, str) and value.strip() and value != "null":
                if field_name != STORAGE_ROOT_FIELD:
                    logger.debug("Using '%s' as storage root field", field_name)
                return value

        raise ConfigFieldMissingError(
            "External drive path not found in configuration",
            suggestions=create_error_suggestions("config_field_missing", config_file=self.config_path),
        )

    def load_settings(self, **overrides) -> Settings:
        """
        Build the settings for one invocation.

        Args:
            **overrides: Settings fields to override (None values are ignored)

        Returns:
            Settings: Resolved settings
        """
        config = self.load_config()
        storage_root = self.get_storage_root(config)

        backup_section = config.get("backup", {})
        retention = RetentionPolicy(**backup_section.get("retention", {}))

        options = {
            key: value
            for key, value in backup_section.items()
            if key != "retention"
        }

        settings = Settings(
            storage_root=storage_root,
            config_dir=self.config_dir,
            retention=retention,
            **options,
        )

        return settings.with_overrides(**overrides)
