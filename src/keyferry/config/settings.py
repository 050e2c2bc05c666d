"""
Configuration settings management for keyferry.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.keyferry/config.yaml by default, with the
path overridable via the KEYFERRY_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from keyferry.crypto.cipher import (
    MAX_PASSWORD_LENGTH,
    MIN_PASSWORD_LENGTH,
    PBKDF2_ITERATIONS,
)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".keyferry"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_ACCOUNTS_DIR = DEFAULT_CONFIG_DIR / "accounts"

# Lowest iteration count accepted from configuration
MIN_KDF_ITERATIONS = 100_000


@dataclass
class ExportConfig:
    """Backup export settings."""

    # Empty means the current working directory
    output_dir: str = ""
    filename_prefix: str = "keyferry_backup"


@dataclass
class SecurityConfig:
    """Backup encryption and password policy settings."""

    kdf_iterations: int = PBKDF2_ITERATIONS
    min_password_length: int = MIN_PASSWORD_LENGTH
    max_password_length: int = MAX_PASSWORD_LENGTH


@dataclass
class Settings:
    """
    Complete keyferry configuration settings.

    Attributes:
        accounts_dir: Directory holding one JSON credential bundle per account.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        export: Backup export settings.
        security: Encryption and password policy settings.
    """

    accounts_dir: str = str(DEFAULT_ACCOUNTS_DIR)
    log_level: str = "INFO"

    export: ExportConfig = field(default_factory=ExportConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from KEYFERRY_CONFIG environment variable if set,
    otherwise returns the default path (~/.keyferry/config.yaml).
    """
    env_path = os.environ.get("KEYFERRY_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.
    A missing file yields the defaults.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses KEYFERRY_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        settings: Settings instance to save.
        config_path: Optional path to configuration file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_data = _settings_to_dict(settings)

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    keyferry_data = data.get("keyferry") or {}

    if "accounts_dir" in keyferry_data:
        settings.accounts_dir = str(keyferry_data["accounts_dir"])
    if "log_level" in keyferry_data:
        settings.log_level = str(keyferry_data["log_level"]).upper()

    export = data.get("export") or {}
    if "output_dir" in export:
        settings.export.output_dir = str(export["output_dir"] or "")
    if "filename_prefix" in export:
        settings.export.filename_prefix = str(export["filename_prefix"])

    security = data.get("security") or {}
    try:
        if "kdf_iterations" in security:
            settings.security.kdf_iterations = int(security["kdf_iterations"])
        if "min_password_length" in security:
            settings.security.min_password_length = int(security["min_password_length"])
        if "max_password_length" in security:
            settings.security.max_password_length = int(security["max_password_length"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid security setting: {e}") from e

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "KEYFERRY_ACCOUNTS_DIR": ("accounts_dir", str),
        "KEYFERRY_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "KEYFERRY_EXPORT_DIR": ("export.output_dir", str),
        "KEYFERRY_KDF_ITERATIONS": ("security.kdf_iterations", int),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                _set_nested_attr(settings, attr_path, converter(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value}") from e

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if not settings.accounts_dir.strip():
        raise ConfigurationError("accounts_dir cannot be empty")

    if not settings.export.filename_prefix.strip():
        raise ConfigurationError("filename_prefix cannot be empty")

    security = settings.security
    if security.kdf_iterations < MIN_KDF_ITERATIONS:
        raise ConfigurationError(
            f"kdf_iterations must be at least {MIN_KDF_ITERATIONS:,}"
        )
    if security.min_password_length < 1:
        raise ConfigurationError("min_password_length must be at least 1")
    if security.max_password_length < security.min_password_length:
        raise ConfigurationError(
            "max_password_length must not be less than min_password_length"
        )


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "keyferry": {
            "accounts_dir": settings.accounts_dir,
            "log_level": settings.log_level,
        },
        "export": {
            "output_dir": settings.export.output_dir,
            "filename_prefix": settings.export.filename_prefix,
        },
        "security": {
            "kdf_iterations": settings.security.kdf_iterations,
            "min_password_length": settings.security.min_password_length,
            "max_password_length": settings.security.max_password_length,
        },
    }
