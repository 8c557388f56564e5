"""
Pytest configuration and shared fakes for the OTA update engine tests.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from ota_updater.updates.collaborators import (
    BundleDelivery,
    PlatformInstaller,
    RestartCapability,
    UserPrompt,
    VersionSource,
)
from ota_updater.updates.descriptor import (
    BundleHandle,
    ConsentDecision,
    Track,
    UpdateDescriptor,
)
from ota_updater.updates.store import VersionStore


def make_descriptor(
    version: str = "1.0.5",
    track: Track = Track.BUNDLE,
    **kwargs: str | None,
) -> UpdateDescriptor:
    """Build a descriptor with URLs for both tracks."""
    fields: dict[str, str | None] = {
        "package_url": "https://updates.example.com/app.apk",
        "bundle_url": "https://updates.example.com/bundle.zip",
        "session_key": "session-123",
    }
    fields.update(kwargs)
    return UpdateDescriptor(version=version, track=track, **fields)


@pytest.fixture
def store(tmp_path: Path) -> VersionStore:
    """Version store in a temporary directory, baseline 1.0.0."""
    return VersionStore(baseline_version="1.0.0", state_file=tmp_path / "versions.json")


@pytest.fixture
def source() -> AsyncMock:
    """Remote version source returning no descriptor."""
    fake = AsyncMock(spec=VersionSource)
    fake.fetch_descriptor.return_value = None
    return fake


@pytest.fixture
def bundle_delivery() -> AsyncMock:
    """Bundle-delivery collaborator whose primitives all succeed."""
    fake = AsyncMock(spec=BundleDelivery)
    fake.download.side_effect = lambda version, url, session_key=None: BundleHandle(
        id=f"bundle-{version}", version=version
    )
    return fake


@pytest.fixture
def installer() -> AsyncMock:
    """Platform installer that launches successfully."""
    return AsyncMock(spec=PlatformInstaller)


@pytest.fixture
def prompt() -> AsyncMock:
    """User prompt that accepts updates and confirms installer launches."""
    fake = AsyncMock(spec=UserPrompt)
    fake.request_consent.return_value = ConsentDecision.ACCEPTED
    fake.confirm_install_launched.return_value = True
    fake.offer_retry.return_value = False
    return fake


@pytest.fixture
def restarter() -> AsyncMock:
    """Restart capability."""
    return AsyncMock(spec=RestartCapability)


@pytest.fixture
def descriptor_factory():
    """Factory building update descriptors."""
    return make_descriptor
