"""
Tests for the errors module.

This test module validates:
- UpdateError base class functionality
- Generic and update-taxonomy subclasses
- Error serialization (to_dict)
"""

from __future__ import annotations

import pytest

from ota_updater.errors import (
    ActivationFailure,
    CheckFailure,
    DownloadFailure,
    InstallLaunchFailure,
    InternalError,
    InvalidArgumentError,
    RollbackFailure,
    UpdateError,
)

# =============================================================================
# Tests for UpdateError Base Class
# =============================================================================


class TestUpdateError:
    """Tests for UpdateError base class."""

    def test_init_with_all_args(self) -> None:
        """Test UpdateError initialization with all arguments."""
        error = UpdateError(
            error_code="test_error",
            message="Test error message",
            details={"version": "1.0.5"},
        )

        assert error.error_code == "test_error"
        assert error.message == "Test error message"
        assert error.details == {"version": "1.0.5"}

    def test_init_with_minimal_args(self) -> None:
        """Test UpdateError initialization with minimal arguments."""
        error = UpdateError(error_code="test_error", message="Test message")

        assert error.details == {}
        assert str(error) == "Test message"

    def test_repr_representation(self) -> None:
        """Test UpdateError repr representation."""
        error = UpdateError(
            error_code="test_error",
            message="Test message",
            details={"track": "bundle"},
        )
        repr_str = repr(error)

        assert "UpdateError" in repr_str
        assert "test_error" in repr_str
        assert "track" in repr_str

    def test_to_dict(self) -> None:
        """Test UpdateError to_dict serialization."""
        error = UpdateError(
            error_code="test_error",
            message="Test message",
            details={"key": "value"},
        )

        assert error.to_dict() == {
            "error_code": "test_error",
            "message": "Test message",
            "details": {"key": "value"},
        }

    def test_is_exception(self) -> None:
        """Test that UpdateError is a proper exception."""
        with pytest.raises(UpdateError) as exc_info:
            raise UpdateError(error_code="test_error", message="Test message")

        assert exc_info.value.error_code == "test_error"


# =============================================================================
# Tests for Subclasses
# =============================================================================


class TestErrorSubclasses:
    """Tests for error code mapping of every subclass."""

    @pytest.mark.parametrize(
        ("error_class", "error_code"),
        [
            (InvalidArgumentError, "invalid_argument"),
            (InternalError, "internal"),
            (CheckFailure, "check_failed"),
            (DownloadFailure, "download_failed"),
            (ActivationFailure, "activation_failed"),
            (InstallLaunchFailure, "install_launch_failed"),
            (RollbackFailure, "rollback_failed"),
        ],
    )
    def test_error_code(self, error_class: type[UpdateError], error_code: str) -> None:
        """Test each subclass carries its error code and details."""
        error = error_class("Something went wrong", details={"url": "https://x"})

        assert isinstance(error, UpdateError)
        assert error.error_code == error_code
        assert error.message == "Something went wrong"
        assert error.details == {"url": "https://x"}

    def test_subclass_caught_as_base(self) -> None:
        """Test that subclasses can be caught as UpdateError."""
        with pytest.raises(UpdateError):
            raise RollbackFailure("revert failed")
