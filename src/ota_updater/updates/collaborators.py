"""
Collaborator interfaces for the OTA update engine.

The engine never talks to the platform directly. Everything outside its
boundary is reached through the abstract base classes below, which are
injected at construction time:

- VersionSource: remote version-control endpoint
- BundleDelivery: download/activate/revert primitives for content bundles
- PlatformInstaller: hands a package artifact to the OS installer
- UserPrompt: consent dialogs and user-visible notices
- RestartCapability: reloads the running application

Every primitive fails by raising; the engine converts failures into terminal
outcomes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from ota_updater.updates.descriptor import (
    BundleHandle,
    ConsentDecision,
    Notice,
    UpdateDescriptor,
)


class VersionSource(ABC):
    """Remote collaborator that reports the currently published update."""

    @abstractmethod
    async def fetch_descriptor(self) -> UpdateDescriptor | None:
        """
        Fetch exactly one update descriptor.

        Returns:
            The published descriptor, or None if the endpoint returned nothing.

        Raises:
            CheckFailure: If the endpoint is unreachable or the response
                cannot be parsed.
        """


class BundleDelivery(ABC):
    """
    Platform primitives for content bundles.

    Implementations wrap the platform's live-update plugin.
    """

    @abstractmethod
    async def download(
        self,
        version: str,
        url: str,
        session_key: str | None = None,
    ) -> BundleHandle:
        """Download a bundle and return a handle for activation."""

    @abstractmethod
    async def activate(self, handle: BundleHandle) -> None:
        """Make a downloaded bundle the one served at runtime."""

    @abstractmethod
    async def revert(self) -> None:
        """Revert to the previously active bundle."""

    @abstractmethod
    async def notify_ready(self) -> None:
        """Confirm that the currently running bundle is healthy."""


class PlatformInstaller(ABC):
    """Hands a package artifact off to the operating system installer."""

    @abstractmethod
    async def open(self, path: Path, mime_type: str) -> None:
        """
        Launch the installer for the artifact at `path`.

        Success means the artifact was handed off to the OS, not that the
        installation completed.
        """


class UserPrompt(ABC):
    """User-facing dialogs. The engine suspends until each call resolves."""

    @abstractmethod
    async def request_consent(self, descriptor: UpdateDescriptor) -> ConsentDecision:
        """Ask whether the update described by `descriptor` should be applied."""

    @abstractmethod
    async def offer_retry(self, descriptor: UpdateDescriptor) -> bool:
        """Offer to relaunch the installer with the already-downloaded artifact."""

    @abstractmethod
    async def confirm_install_launched(self, descriptor: UpdateDescriptor) -> bool:
        """
        Tell the user the installer was launched and wait for acknowledgement.

        Returns:
            False if the user reports that the installation did not go through.
        """

    @abstractmethod
    async def notify(
        self,
        notice: Notice,
        descriptor: UpdateDescriptor | None = None,
    ) -> None:
        """Show a user-visible notice."""


class RestartCapability(ABC):
    """Reloads the running application so a new bundle takes effect."""

    @abstractmethod
    async def restart(self) -> None:
        """Restart the running application."""
