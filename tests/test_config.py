"""
Tests for the configuration system.

This test module validates:
- Default configuration values
- YAML file loading
- Environment variable overrides
- CLI argument overrides
- Validation errors
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from ota_updater.config import (
    AppConfig,
    LoggingConfig,
    UpdaterConfig,
    _deep_merge,
    _load_env_config,
    _parse_env_value,
    load_config,
)

# =============================================================================
# Tests for Default Configuration
# =============================================================================


class TestDefaultConfig:
    """Tests for default configuration values."""

    def test_updater_defaults(self) -> None:
        """Test UpdaterConfig defaults."""
        config = UpdaterConfig()

        assert config.enabled is True
        assert config.endpoint_url == ""
        assert config.check_interval_seconds == 1800
        assert config.baseline_version == "1.0.0"
        assert config.package_filename == "update.apk"
        assert config.package_mime_type == "application/vnd.android.package-archive"
        assert config.max_install_attempts == 3

    def test_logging_defaults(self) -> None:
        """Test LoggingConfig defaults."""
        config = LoggingConfig()

        assert config.level == "info"
        assert config.log_to_stdout is True
        assert config.json_format is True
        assert config.debug_mode is False

    def test_app_config_sections(self) -> None:
        """Test AppConfig builds every section by default."""
        config = AppConfig()

        assert isinstance(config.updater, UpdaterConfig)
        assert isinstance(config.logging, LoggingConfig)


# =============================================================================
# Tests for Validation
# =============================================================================


class TestValidation:
    """Tests for configuration validation."""

    def test_log_level_normalized(self) -> None:
        """Test that log level is lower-cased and 'warn' is mapped."""
        assert LoggingConfig(level="DEBUG").level == "debug"
        assert LoggingConfig(level="warn").level == "warning"

    def test_invalid_log_level(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    def test_baseline_version_stripped(self) -> None:
        """Test that the baseline version is validated and stripped."""
        assert UpdaterConfig(baseline_version=" 2.1 ").baseline_version == "2.1"

    def test_invalid_baseline_version(self) -> None:
        """Test that a malformed baseline version is rejected."""
        with pytest.raises(ValidationError):
            UpdaterConfig(baseline_version="1.x.0")

    @pytest.mark.parametrize("name", ["", "../update.apk", "a/b.apk", "..", "a\\b"])
    def test_invalid_package_filename(self, name: str) -> None:
        """Test that file names escaping the cache directory are rejected."""
        with pytest.raises(ValidationError):
            UpdaterConfig(package_filename=name)

    def test_interval_must_be_positive(self) -> None:
        """Test that a zero check interval is rejected."""
        with pytest.raises(ValidationError):
            UpdaterConfig(check_interval_seconds=0)

    def test_max_install_attempts_at_least_one(self) -> None:
        """Test that at least one installer launch is required."""
        with pytest.raises(ValidationError):
            UpdaterConfig(max_install_attempts=0)


# =============================================================================
# Tests for Helpers
# =============================================================================


class TestHelpers:
    """Tests for merge and environment parsing helpers."""

    def test_deep_merge_nested(self) -> None:
        """Test that nested dictionaries are merged, not replaced."""
        base = {"updater": {"enabled": True, "endpoint_url": "a"}}
        override = {"updater": {"endpoint_url": "b"}}

        merged = _deep_merge(base, override)

        assert merged == {"updater": {"enabled": True, "endpoint_url": "b"}}
        assert base["updater"]["endpoint_url"] == "a"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("Off", False),
            ("42", 42),
            ("2.5", 2.5),
            ("1.0.4", "1.0.4"),
            ("a, b", ["a", "b"]),
            ("https://example.com", "https://example.com"),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: object) -> None:
        """Test environment value coercion."""
        assert _parse_env_value(raw) == expected

    def test_load_env_config_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that double underscores create nested keys."""
        monkeypatch.setenv("OTA_UPDATER_UPDATER__CHECK_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("OTA_UPDATER_LOGGING__LEVEL", "debug")

        env = _load_env_config()

        assert env["updater"]["check_interval_seconds"] == 60
        assert env["logging"]["level"] == "debug"


# =============================================================================
# Tests for load_config
# =============================================================================


class TestLoadConfig:
    """Tests for layered configuration loading."""

    @pytest.fixture
    def config_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "config.yml"
        path.write_text(
            "updater:\n"
            "  endpoint_url: https://updates.example.com/app-version\n"
            "  check_interval_seconds: 600\n"
            "  baseline_version: 1.0.4\n"
            "logging:\n"
            "  level: warning\n"
        )
        return path

    def test_load_from_yaml(self, config_file: Path) -> None:
        """Test loading values from a YAML file."""
        config = load_config(config_file, cli_args=[])

        assert config.updater.endpoint_url == "https://updates.example.com/app-version"
        assert config.updater.check_interval_seconds == 600
        assert config.updater.baseline_version == "1.0.4"
        assert config.logging.level == "warning"

    def test_empty_yaml(self, tmp_path: Path) -> None:
        """Test that an empty YAML file yields defaults."""
        path = tmp_path / "empty.yml"
        path.write_text("")

        config = load_config(path, cli_args=[])

        assert config.updater.check_interval_seconds == 1800

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Test that an explicit missing path raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yml", cli_args=[])

    def test_env_overrides_yaml(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that environment variables override YAML values."""
        monkeypatch.setenv("OTA_UPDATER_UPDATER__CHECK_INTERVAL_SECONDS", "120")

        config = load_config(config_file, cli_args=[])

        assert config.updater.check_interval_seconds == 120

    def test_cli_overrides_env(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that CLI arguments override environment variables."""
        monkeypatch.setenv("OTA_UPDATER_LOGGING__LEVEL", "error")

        config = load_config(config_file, cli_args=["--log-level", "info"])

        assert config.logging.level == "info"

    def test_cli_config_path(self, config_file: Path) -> None:
        """Test that --config selects the YAML file."""
        config = load_config(cli_args=["--config", str(config_file)])

        assert config.updater.check_interval_seconds == 600

    def test_debug_flag(self, config_file: Path) -> None:
        """Test that --debug enables debug mode and level."""
        config = load_config(config_file, cli_args=["--debug"])

        assert config.logging.debug_mode is True
        assert config.logging.level == "debug"

    def test_explicit_path_wins_over_cli_config(
        self, config_file: Path, tmp_path: Path
    ) -> None:
        """Test that an explicit path ignores the --config argument."""
        config = load_config(
            config_file, cli_args=["--config", str(tmp_path / "other.yml")]
        )

        assert config.updater.check_interval_seconds == 600
