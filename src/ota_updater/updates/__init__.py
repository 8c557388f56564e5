"""
Update orchestration engine.

This package implements the over-the-air update life cycle for two
independent tracks:
- Version comparison and the durable per-track version store
- Remote update checking
- Package track: artifact download and installer launch
- Bundle track: bundle download, activation and rollback
- Coordinator state machine with periodic, coalesced checks
"""

from ota_updater.updates.asset_applier import AssetTrackApplier
from ota_updater.updates.checker import HttpVersionSource, UpdateChecker
from ota_updater.updates.collaborators import (
    BundleDelivery,
    PlatformInstaller,
    RestartCapability,
    UserPrompt,
    VersionSource,
)
from ota_updater.updates.coordinator import (
    CycleOutcome,
    CycleResult,
    UpdateCoordinator,
    UpdateState,
)
from ota_updater.updates.descriptor import (
    ApplyOutcome,
    ApplyResult,
    BundleHandle,
    ConsentDecision,
    Notice,
    Track,
    UpdateDescriptor,
)
from ota_updater.updates.package_applier import PackageTrackApplier
from ota_updater.updates.rollback import RollbackManager
from ota_updater.updates.store import VersionStore
from ota_updater.updates.version import compare_versions, is_newer, parse_version

__all__ = [
    # Data model
    "Track",
    "UpdateDescriptor",
    "BundleHandle",
    "ConsentDecision",
    "Notice",
    "ApplyOutcome",
    "ApplyResult",
    # Versions
    "parse_version",
    "compare_versions",
    "is_newer",
    "VersionStore",
    # Collaborators
    "VersionSource",
    "BundleDelivery",
    "PlatformInstaller",
    "UserPrompt",
    "RestartCapability",
    # Engine
    "HttpVersionSource",
    "UpdateChecker",
    "PackageTrackApplier",
    "AssetTrackApplier",
    "RollbackManager",
    "UpdateCoordinator",
    "UpdateState",
    "CycleOutcome",
    "CycleResult",
]
