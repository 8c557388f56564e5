"""
Bundle track applier.

Downloads a content bundle through the bundle-delivery collaborator and
activates it. A failed download leaves nothing to undo; a failed activation
is handed to the RollbackManager.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ota_updater.errors import ActivationFailure, DownloadFailure, RollbackFailure
from ota_updater.logging import get_logger
from ota_updater.updates.descriptor import ApplyResult, Notice, Track

if TYPE_CHECKING:
    from ota_updater.updates.collaborators import BundleDelivery, UserPrompt
    from ota_updater.updates.descriptor import BundleHandle, UpdateDescriptor
    from ota_updater.updates.rollback import RollbackManager
    from ota_updater.updates.store import VersionStore

logger = get_logger(__name__)


class AssetTrackApplier:
    """
    Applies bundle-track updates.

    On success the result asks the caller to persist the new version and
    restart the application so the bundle takes effect.
    """

    def __init__(
        self,
        bundle_delivery: BundleDelivery,
        store: VersionStore,
        rollback_manager: RollbackManager,
        prompt: UserPrompt,
    ) -> None:
        self._bundle_delivery = bundle_delivery
        self._store = store
        self._rollback_manager = rollback_manager
        self._prompt = prompt

    async def apply(self, descriptor: UpdateDescriptor) -> ApplyResult:
        """
        Download and activate the bundle described by `descriptor`.

        Args:
            descriptor: Bundle-track update descriptor.

        Returns:
            ApplyResult; applied results carry restart_required=True.
        """
        previous = self._store.get_version(Track.BUNDLE)

        try:
            handle = await self._download(descriptor)
        except DownloadFailure as e:
            logger.error(
                f"Bundle download failed: {e.message}",
                extra={"version": descriptor.version},
            )
            await self._notify(Notice.DOWNLOAD_FAILED, descriptor)
            return ApplyResult.failure(e.message)

        try:
            await self._activate(handle)
        except ActivationFailure as e:
            logger.error(
                f"Bundle activation failed: {e.message}",
                extra={"version": descriptor.version, "previous_version": previous},
            )
            try:
                await self._rollback_manager.rollback(previous)
            except RollbackFailure as rollback_error:
                return ApplyResult.failure(rollback_error.message, fatal=True)
            return ApplyResult.failure(
                f"{e.message} (rolled back to {previous})",
                rolled_back=True,
            )

        logger.info(
            f"Bundle {descriptor.version} activated",
            extra={"version": descriptor.version, "bundle_id": handle.id},
        )
        return ApplyResult.success(
            f"Bundle {descriptor.version} activated",
            restart_required=True,
        )

    async def _download(self, descriptor: UpdateDescriptor) -> BundleHandle:
        url = descriptor.bundle_url
        if not url:
            raise DownloadFailure(
                "Descriptor has no bundle URL",
                details={"version": descriptor.version},
            )

        logger.info(
            f"Downloading bundle from {url}",
            extra={"version": descriptor.version},
        )
        try:
            return await self._bundle_delivery.download(
                descriptor.version,
                url,
                descriptor.session_key,
            )
        except Exception as e:
            raise DownloadFailure(
                f"Failed to download bundle: {e}",
                details={"version": descriptor.version, "url": url},
            ) from e

    async def _activate(self, handle: BundleHandle) -> None:
        try:
            await self._bundle_delivery.activate(handle)
        except Exception as e:
            raise ActivationFailure(
                f"Failed to activate bundle: {e}",
                details={"bundle_id": handle.id, "version": handle.version},
            ) from e

    async def _notify(self, notice: Notice, descriptor: UpdateDescriptor) -> None:
        try:
            await self._prompt.notify(notice, descriptor)
        except Exception as e:
            logger.warning(f"Failed to show {notice.value} notice: {e}")
