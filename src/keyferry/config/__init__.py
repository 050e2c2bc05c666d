"""
Configuration management for keyferry.

This module handles loading, validating, and saving configuration settings.
"""

from keyferry.config.settings import (
    DEFAULT_ACCOUNTS_DIR,
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    ConfigurationError,
    ExportConfig,
    SecurityConfig,
    Settings,
    get_config_path,
    load_config,
    save_config,
)

__all__ = [
    "Settings",
    "ExportConfig",
    "SecurityConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "ConfigurationError",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_ACCOUNTS_DIR",
]
