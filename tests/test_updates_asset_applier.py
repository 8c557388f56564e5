"""
Tests for the bundle-track AssetTrackApplier.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ota_updater.errors import RollbackFailure
from ota_updater.updates.asset_applier import AssetTrackApplier
from ota_updater.updates.descriptor import BundleHandle, Notice, Track
from ota_updater.updates.rollback import RollbackManager
from ota_updater.updates.store import VersionStore


@pytest.fixture
def rollback_manager() -> AsyncMock:
    return AsyncMock(spec=RollbackManager)


@pytest.fixture
def applier(
    bundle_delivery: AsyncMock,
    store: VersionStore,
    rollback_manager: AsyncMock,
    prompt: AsyncMock,
) -> AssetTrackApplier:
    return AssetTrackApplier(bundle_delivery, store, rollback_manager, prompt)


class TestAssetTrackApplier:
    """Tests for AssetTrackApplier.apply."""

    @pytest.mark.asyncio
    async def test_download_and_activate(
        self,
        applier: AssetTrackApplier,
        bundle_delivery: AsyncMock,
        rollback_manager: AsyncMock,
        store: VersionStore,
        descriptor_factory,
    ) -> None:
        descriptor = descriptor_factory("1.0.5", Track.BUNDLE)

        result = await applier.apply(descriptor)

        assert result.applied is True
        assert result.restart_required is True
        bundle_delivery.download.assert_awaited_once_with(
            "1.0.5", "https://updates.example.com/bundle.zip", "session-123"
        )
        bundle_delivery.activate.assert_awaited_once_with(
            BundleHandle(id="bundle-1.0.5", version="1.0.5")
        )
        rollback_manager.rollback.assert_not_awaited()
        # Persisting the new version is left to the caller
        assert store.get_version(Track.BUNDLE) == "1.0.0"

    @pytest.mark.asyncio
    async def test_download_failure(
        self,
        applier: AssetTrackApplier,
        bundle_delivery: AsyncMock,
        rollback_manager: AsyncMock,
        prompt: AsyncMock,
        descriptor_factory,
    ) -> None:
        """Test that a failed download never activates or rolls back."""
        bundle_delivery.download.side_effect = ConnectionError("network down")
        descriptor = descriptor_factory("1.0.5", Track.BUNDLE)

        result = await applier.apply(descriptor)

        assert result.applied is False
        assert result.rolled_back is False
        bundle_delivery.activate.assert_not_awaited()
        rollback_manager.rollback.assert_not_awaited()
        prompt.notify.assert_awaited_once_with(Notice.DOWNLOAD_FAILED, descriptor)

    @pytest.mark.asyncio
    async def test_missing_bundle_url(
        self,
        applier: AssetTrackApplier,
        bundle_delivery: AsyncMock,
        descriptor_factory,
    ) -> None:
        descriptor = descriptor_factory("1.0.5", Track.BUNDLE, bundle_url=None)

        result = await applier.apply(descriptor)

        assert result.applied is False
        bundle_delivery.download.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_activation_failure_rolls_back(
        self,
        applier: AssetTrackApplier,
        bundle_delivery: AsyncMock,
        rollback_manager: AsyncMock,
        store: VersionStore,
        descriptor_factory,
    ) -> None:
        """Test that rollback targets the version recorded before the update."""
        store.set_version(Track.BUNDLE, "1.0.4")
        bundle_delivery.activate.side_effect = RuntimeError("corrupt bundle")

        result = await applier.apply(descriptor_factory("1.0.5", Track.BUNDLE))

        assert result.applied is False
        assert result.rolled_back is True
        assert result.fatal is False
        rollback_manager.rollback.assert_awaited_once_with("1.0.4")

    @pytest.mark.asyncio
    async def test_rollback_failure_is_fatal(
        self,
        applier: AssetTrackApplier,
        bundle_delivery: AsyncMock,
        rollback_manager: AsyncMock,
        descriptor_factory,
    ) -> None:
        bundle_delivery.activate.side_effect = RuntimeError("corrupt bundle")
        rollback_manager.rollback.side_effect = RollbackFailure("revert failed")

        result = await applier.apply(descriptor_factory("1.0.5", Track.BUNDLE))

        assert result.applied is False
        assert result.fatal is True
        assert result.rolled_back is False
