"""Configuration management for the home server backup tool."""

from .manager import ConfigManager
from .schemas import CONFIG_SCHEMA
from .settings import RetentionPolicy, Settings

__all__ = ["ConfigManager", "CONFIG_SCHEMA", "RetentionPolicy", "Settings"]
