"""
Rollback logic for the bundle track.

When a downloaded bundle fails to activate, RollbackManager reverts the
bundle-delivery collaborator to the previous bundle, rewrites the recorded
bundle version to the last known-good value and restarts the application.

If the revert primitive itself fails the condition is fatal: the user is told
to intervene and no further automatic recovery is attempted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ota_updater.errors import RollbackFailure
from ota_updater.logging import get_logger
from ota_updater.updates.descriptor import Notice, Track

if TYPE_CHECKING:
    from ota_updater.updates.collaborators import (
        BundleDelivery,
        RestartCapability,
        UserPrompt,
    )
    from ota_updater.updates.store import VersionStore

logger = get_logger(__name__)


class RollbackManager:
    """Restores the previous bundle/version pair after a failed activation."""

    def __init__(
        self,
        bundle_delivery: BundleDelivery,
        store: VersionStore,
        prompt: UserPrompt,
        restarter: RestartCapability,
    ) -> None:
        """
        Initialize the RollbackManager.

        Args:
            bundle_delivery: Collaborator providing the revert primitive.
            store: Version store holding the bundle track record.
            prompt: User prompt for notices.
            restarter: Capability that restarts the running application.
        """
        self._bundle_delivery = bundle_delivery
        self._store = store
        self._prompt = prompt
        self._restarter = restarter

    async def rollback(self, previous_version: str) -> None:
        """
        Roll the bundle track back to `previous_version`.

        Steps: revert the active bundle, restore the recorded version, tell the
        user, restart.

        Args:
            previous_version: Bundle version recorded before the update began.

        Raises:
            RollbackFailure: If the revert primitive fails.
        """
        logger.info(
            f"Starting rollback to bundle version {previous_version}",
            extra={"track": Track.BUNDLE.value, "version": previous_version},
        )

        try:
            await self._bundle_delivery.revert()
        except Exception as e:
            logger.critical(
                f"Rollback failed: {e}",
                extra={"track": Track.BUNDLE.value, "version": previous_version},
                exc_info=True,
            )
            await self._notify(Notice.ROLLBACK_FAILED)
            raise RollbackFailure(
                f"Rollback to {previous_version} failed: {e}",
                details={"previous_version": previous_version},
            ) from e

        try:
            self._store.set_version(Track.BUNDLE, previous_version)
        except Exception as e:
            # The reverted bundle is active; the record was never advanced.
            logger.error(f"Failed to restore bundle version record: {e}")

        logger.info(f"Rollback to {previous_version} completed")
        await self._notify(Notice.ROLLED_BACK)
        await self._restarter.restart()

    async def _notify(self, notice: Notice) -> None:
        try:
            await self._prompt.notify(notice)
        except Exception as e:
            logger.warning(f"Failed to show {notice.value} notice: {e}")
