"""
Error types for the OTA update engine.

This module defines the UpdateError base class and its subclasses. Internal
components raise these errors; the appliers and the coordinator translate them
into terminal outcomes so that no exception crosses the engine's public API.

Error codes:
- invalid_argument, internal: generic codes
- check_failed: remote version check failed (treated as "no update")
- download_failed: package artifact or bundle could not be retrieved
- activation_failed: a downloaded bundle could not be activated
- install_launch_failed: the platform installer could not be launched
- rollback_failed: reverting a bundle failed (fatal, no self-healing)
"""

from __future__ import annotations

from typing import Any


class UpdateError(Exception):
    """
    Base exception class for update engine errors.

    Attributes:
        error_code: Internal error code string (e.g., "invalid_argument",
            "check_failed", "rollback_failed").
        message: Human-readable error message.
        details: Optional structured details (e.g., version, track, url).

    Example:
        >>> raise UpdateError(
        ...     error_code="invalid_argument",
        ...     message="Version must be a dotted triplet",
        ...     details={"version": "1.a.0"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize an UpdateError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(UpdateError):
    """Error raised for invalid input such as a malformed version string."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class InternalError(UpdateError):
    """
    Error raised for unexpected internal errors.

    Also used when the version store cannot be written durably.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(error_code="internal", message=message, details=details)


class CheckFailure(UpdateError):
    """
    Error raised when the remote version check fails.

    Network and parse errors end up here. The checker recovers locally and
    reports "no update found"; the next timer tick retries.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a CheckFailure."""
        super().__init__(error_code="check_failed", message=message, details=details)


class DownloadFailure(UpdateError):
    """Error raised when a package artifact or bundle cannot be downloaded."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a DownloadFailure."""
        super().__init__(
            error_code="download_failed", message=message, details=details
        )


class ActivationFailure(UpdateError):
    """Error raised when a downloaded bundle cannot be activated."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an ActivationFailure."""
        super().__init__(
            error_code="activation_failed", message=message, details=details
        )


class InstallLaunchFailure(UpdateError):
    """Error raised when the platform installer cannot be launched."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InstallLaunchFailure."""
        super().__init__(
            error_code="install_launch_failed", message=message, details=details
        )


class RollbackFailure(UpdateError):
    """
    Error raised when reverting a bundle fails.

    This is the only condition the engine cannot recover from on its own;
    the user has to intervene (for example by reinstalling the application).
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a RollbackFailure."""
        super().__init__(
            error_code="rollback_failed", message=message, details=details
        )
