"""
Configuration management for the OTA update engine.

This module implements the AppConfig Pydantic model and configuration loading.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/ota-updater/config.yml or --config path)
3. Environment variables (OTA_UPDATER_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from ota_updater.errors import InvalidArgumentError
from ota_updater.updates.version import validate_version

DEFAULT_CONFIG_PATH = Path("/etc/ota-updater/config.yml")

# =============================================================================
# Updater Configuration
# =============================================================================


class UpdaterConfig(BaseModel):
    """Update engine configuration.

    Attributes:
        enabled: Whether the engine runs at all on this platform.
        endpoint_url: Remote version-control endpoint.
        request_timeout_seconds: Timeout for the version check request.
        request_headers: Extra headers sent with the version check.
        check_interval_seconds: Interval between periodic checks.
        baseline_version: Build-time version used to bootstrap the store.
        state_file: Path of the persisted version store.
        cache_dir: Directory for downloaded package artifacts.
        package_filename: File name of the downloaded package artifact.
        package_mime_type: MIME type handed to the platform installer.
        download_timeout_seconds: Timeout for artifact downloads.
        max_install_attempts: Installer launches allowed per update cycle.
    """

    enabled: bool = Field(
        default=True,
        description="Run the update engine on this platform",
    )
    endpoint_url: str = Field(
        default="",
        description="Remote version-control endpoint returning the update descriptor",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for the version check request",
    )
    request_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra HTTP headers sent with the version check",
    )
    check_interval_seconds: int = Field(
        default=1800,
        ge=1,
        description="Seconds between periodic update checks (default 30 minutes)",
    )
    baseline_version: str = Field(
        default="1.0.0",
        description="Build-time version used when no version is recorded",
    )
    state_file: str = Field(
        default="/var/lib/ota-updater/versions.json",
        description="Path of the persisted per-track version store",
    )
    cache_dir: str = Field(
        default="/var/cache/ota-updater",
        description="Directory for downloaded package artifacts",
    )
    package_filename: str = Field(
        default="update.apk",
        description="File name of the downloaded package artifact",
    )
    package_mime_type: str = Field(
        default="application/vnd.android.package-archive",
        description="MIME type handed to the platform installer",
    )
    download_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Timeout in seconds for artifact downloads",
    )
    max_install_attempts: int = Field(
        default=3,
        ge=1,
        description="Installer launches allowed per cycle (first launch plus retries)",
    )

    @field_validator("baseline_version")
    @classmethod
    def validate_baseline_version(cls, v: str) -> str:
        """Validate the baseline is a dotted version triplet."""
        try:
            return validate_version(v)
        except InvalidArgumentError as e:
            raise ValueError(e.message) from e

    @field_validator("package_filename")
    @classmethod
    def validate_package_filename(cls, v: str) -> str:
        """Reject file names that would escape the cache directory."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"Invalid package file name: {v!r}")
        return v


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Whether to emit JSON log lines.
        debug_mode: Enable extra diagnostic logging.
    """

    level: str = Field(
        default="info",
        description="Log level: debug, info, warning, error, critical",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON-formatted log lines",
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable extra diagnostic logging",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        # Normalize 'warn' to 'warning'
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Built from multiple layers following the precedence rules:
    1. Built-in defaults (defined in this model)
    2. YAML config file
    3. Environment variables (OTA_UPDATER_* prefix)
    4. Command-line arguments

    Attributes:
        updater: Update engine settings.
        logging: Logging configuration.
    """

    updater: UpdaterConfig = Field(
        default_factory=UpdaterConfig,
        description="Update engine settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    # Dotted versions such as "1.0" must stay strings
    if value.count(".") <= 1:
        try:
            return float(value)
        except ValueError:
            pass

    if "," in value:
        items = [item.strip() for item in value.split(",")]
        return [_parse_env_value(item) for item in items]

    return value


def _load_env_config(prefix: str = "OTA_UPDATER_") -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Environment variables are parsed with the following rules:
    - Prefix: OTA_UPDATER_ (configurable)
    - Nested keys: Double underscore (__) separator
    - Example: OTA_UPDATER_UPDATER__ENDPOINT_URL=https://example.com/app-version

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="OTA update engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )

    parsed = parser.parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.log_level:
        result["logging"] = {"level": parsed.log_level}

    if parsed.debug:
        result.setdefault("logging", {})
        result["logging"]["debug_mode"] = True
        result["logging"]["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = "OTA_UPDATER_",
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Later sources override earlier ones: defaults, YAML file, environment
    variables, command-line arguments.

    Args:
        config_path: Path to YAML configuration file. If None, uses the CLI
            --config argument or the default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=[])
        >>> config.updater.check_interval_seconds
        1800
    """
    config_dict: dict[str, Any] = {}

    # Parse CLI args first to get config path
    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
