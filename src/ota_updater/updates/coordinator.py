"""
Update coordinator for the OTA update engine.

This module implements the UpdateCoordinator, the state machine that drives
one update cycle at a time:

- idle: no cycle in progress
- checking: asking the remote endpoint for a newer version
- awaiting_consent: waiting for the user to accept or decline
- applying: the track's applier is downloading and activating/installing

Every cycle ends back in idle with one of the outcomes no_update, declined,
applied or failed. Triggers arriving while a cycle is in flight are coalesced
(outcome skipped), never queued.

The recorded version of a track is advanced only after its applier reports a
successful terminal step.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, Field

from ota_updater.errors import InvalidArgumentError, UpdateError
from ota_updater.logging import get_logger
from ota_updater.updates.descriptor import (
    ConsentDecision,
    Notice,
    Track,
    UpdateDescriptor,
)

if TYPE_CHECKING:
    from ota_updater.config import UpdaterConfig
    from ota_updater.updates.asset_applier import AssetTrackApplier
    from ota_updater.updates.checker import UpdateChecker
    from ota_updater.updates.collaborators import (
        BundleDelivery,
        PlatformInstaller,
        RestartCapability,
        UserPrompt,
        VersionSource,
    )
    from ota_updater.updates.descriptor import ApplyResult
    from ota_updater.updates.package_applier import PackageTrackApplier
    from ota_updater.updates.store import VersionStore

logger = get_logger(__name__)


class UpdateState(str, Enum):
    """
    States of the update coordinator.

    State transitions:
    - idle → checking (timer tick or manual trigger)
    - checking → idle (no update)
    - checking → awaiting_consent (update found)
    - awaiting_consent → idle (declined)
    - awaiting_consent → applying (accepted)
    - applying → idle (applied or failed)
    """

    IDLE = "idle"
    CHECKING = "checking"
    AWAITING_CONSENT = "awaiting_consent"
    APPLYING = "applying"


class CycleOutcome(str, Enum):
    """How an update cycle ended."""

    NO_UPDATE = "no_update"
    DECLINED = "declined"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISABLED = "disabled"


class CycleResult(BaseModel):
    """
    Result of one update cycle.

    Attributes:
        outcome: How the cycle ended.
        track: Track of the evaluated descriptor, if any.
        version: Version offered by the evaluated descriptor, if any.
        message: Human-readable summary.
        finished_at: ISO 8601 timestamp when the cycle ended.
    """

    outcome: CycleOutcome
    track: Track | None = None
    version: str | None = None
    message: str | None = None
    finished_at: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
    )


# Valid state transitions
_VALID_TRANSITIONS: dict[UpdateState, set[UpdateState]] = {
    UpdateState.IDLE: {UpdateState.CHECKING},
    UpdateState.CHECKING: {UpdateState.IDLE, UpdateState.AWAITING_CONSENT},
    UpdateState.AWAITING_CONSENT: {UpdateState.IDLE, UpdateState.APPLYING},
    UpdateState.APPLYING: {UpdateState.IDLE},
}


class UpdateCoordinator:
    """
    Runs update cycles and keeps the version store consistent.

    The coordinator runs on a single event loop. All collaborator calls are
    awaited, and the idle-gated state machine guarantees that at most one
    check/apply sequence is in flight.

    Attributes:
        state: Current coordinator state.
        is_running: Whether the periodic check task is active.
        halted: Set after a rollback failed; no further cycles run.
    """

    DEFAULT_CHECK_INTERVAL_SECONDS = 30 * 60
    STOP_TIMEOUT_SECONDS = 10.0

    def __init__(
        self,
        checker: UpdateChecker,
        store: VersionStore,
        prompt: UserPrompt,
        package_applier: PackageTrackApplier,
        asset_applier: AssetTrackApplier,
        bundle_delivery: BundleDelivery,
        restarter: RestartCapability,
        *,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        enabled: bool = True,
    ) -> None:
        """
        Initialize the UpdateCoordinator.

        Args:
            checker: Decides whether an update is available.
            store: Per-track version store.
            prompt: Consent and notification collaborator.
            package_applier: Applier for the package track.
            asset_applier: Applier for the bundle track.
            bundle_delivery: Bundle collaborator, told at startup that the
                running bundle is healthy.
            restarter: Restarts the application after a bundle activation.
            check_interval_seconds: Interval of the periodic check.
            enabled: When False every trigger is a no-op.
        """
        self._checker = checker
        self._store = store
        self._prompt = prompt
        self._appliers: dict[Track, PackageTrackApplier | AssetTrackApplier] = {
            Track.PACKAGE: package_applier,
            Track.BUNDLE: asset_applier,
        }
        self._bundle_delivery = bundle_delivery
        self._restarter = restarter
        self._check_interval = float(check_interval_seconds)
        self._enabled = enabled

        self._state = UpdateState.IDLE
        self._halted = False
        self._last_result: CycleResult | None = None
        self._last_transition_at: str | None = None
        self._last_error: str | None = None
        self._state_callbacks: list[Callable[[UpdateState], None]] = []

        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @classmethod
    def from_config(
        cls,
        config: UpdaterConfig,
        *,
        bundle_delivery: BundleDelivery,
        installer: PlatformInstaller,
        prompt: UserPrompt,
        restarter: RestartCapability,
        source: VersionSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> UpdateCoordinator:
        """
        Wire a coordinator and all its components from configuration.

        Args:
            config: Update engine configuration.
            bundle_delivery: Bundle-delivery collaborator.
            installer: Platform installer collaborator.
            prompt: Consent and notification collaborator.
            restarter: Restart capability.
            source: Remote version source. Defaults to HttpVersionSource.
            transport: Optional httpx transport for the default HTTP clients.

        Returns:
            Configured UpdateCoordinator.
        """
        from ota_updater.updates.asset_applier import AssetTrackApplier
        from ota_updater.updates.checker import HttpVersionSource, UpdateChecker
        from ota_updater.updates.package_applier import PackageTrackApplier
        from ota_updater.updates.rollback import RollbackManager
        from ota_updater.updates.store import VersionStore

        store = VersionStore.from_config(config)
        if source is None:
            source = HttpVersionSource.from_config(config, transport=transport)

        rollback_manager = RollbackManager(bundle_delivery, store, prompt, restarter)

        return cls(
            checker=UpdateChecker(source, store),
            store=store,
            prompt=prompt,
            package_applier=PackageTrackApplier.from_config(
                config, installer, prompt, transport=transport
            ),
            asset_applier=AssetTrackApplier(
                bundle_delivery, store, rollback_manager, prompt
            ),
            bundle_delivery=bundle_delivery,
            restarter=restarter,
            check_interval_seconds=config.check_interval_seconds,
            enabled=config.enabled,
        )

    @property
    def state(self) -> UpdateState:
        """Get the current state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the periodic check task is running."""
        return self._task is not None and not self._task.done()

    @property
    def halted(self) -> bool:
        """True after a fatal rollback failure."""
        return self._halted

    @property
    def last_result(self) -> CycleResult | None:
        """Result of the most recent completed cycle."""
        return self._last_result

    def add_state_callback(self, callback: Callable[[UpdateState], None]) -> None:
        """Add a callback to be notified of state changes."""
        self._state_callbacks.append(callback)

    def _notify_state(self) -> None:
        for callback in self._state_callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.warning(f"State callback failed: {e}")

    def _transition_to(self, new_state: UpdateState) -> None:
        """
        Transition to a new state.

        Raises:
            InvalidArgumentError: If the transition is not valid.
        """
        current = self._state

        if new_state not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidArgumentError(
                f"Invalid state transition from {current.value} to {new_state.value}",
                details={
                    "current_state": current.value,
                    "target_state": new_state.value,
                    "valid_transitions": [
                        s.value for s in _VALID_TRANSITIONS.get(current, set())
                    ],
                },
            )

        logger.info(
            f"State transition: {current.value} -> {new_state.value}",
            extra={"old_state": current.value, "new_state": new_state.value},
        )

        self._state = new_state
        self._last_transition_at = datetime.now(UTC).isoformat()
        self._notify_state()

    # -------------------------------------------------------------------------
    # Update cycle
    # -------------------------------------------------------------------------

    async def initialize(self, *, start_timer: bool = True) -> CycleResult:
        """
        Start the engine.

        Bootstraps both version records, confirms the running bundle is
        healthy, runs one check cycle and starts the periodic timer.

        Args:
            start_timer: Whether to start the periodic check task.

        Returns:
            Result of the initial cycle.
        """
        if not self._enabled:
            logger.info("Updater is disabled on this platform")
            return self._finish(
                CycleResult(
                    outcome=CycleOutcome.DISABLED,
                    message="Updater is disabled",
                )
            )

        versions = self._store.initialize_tracks()
        logger.info("Initializing updater", extra={"versions": versions})

        try:
            await self._bundle_delivery.notify_ready()
        except Exception as e:
            logger.warning(f"Failed to confirm running bundle: {e}")

        result = await self.run_cycle()

        if start_timer:
            await self.start()

        return result

    async def run_cycle(self) -> CycleResult:
        """
        Run one check → consent → apply cycle.

        Never raises. A trigger that arrives while another cycle is in
        flight is a no-op with outcome skipped.

        Returns:
            CycleResult describing how the cycle ended.
        """
        if not self._enabled:
            return CycleResult(
                outcome=CycleOutcome.DISABLED,
                message="Updater is disabled",
            )

        if self._halted:
            logger.warning("Update cycle refused: engine halted after rollback failure")
            return CycleResult(
                outcome=CycleOutcome.FAILED,
                message="Engine halted after a failed rollback",
            )

        if self._state != UpdateState.IDLE:
            logger.debug(
                "Update cycle already in progress, trigger coalesced",
                extra={"state": self._state.value},
            )
            return CycleResult(
                outcome=CycleOutcome.SKIPPED,
                message=f"Cycle already in progress ({self._state.value})",
            )

        # Claimed before the first await so concurrent triggers see a busy state
        self._transition_to(UpdateState.CHECKING)

        try:
            result = await self._run_cycle_steps()
        except Exception as e:
            logger.error(f"Update cycle failed: {e}", exc_info=True)
            await self._notify(Notice.UPDATE_FAILED)
            result = CycleResult(outcome=CycleOutcome.FAILED, message=str(e))
        finally:
            if self._state != UpdateState.IDLE:
                self._transition_to(UpdateState.IDLE)

        return self._finish(result)

    async def _run_cycle_steps(self) -> CycleResult:
        descriptor = await self._checker.check()
        if descriptor is None:
            self._transition_to(UpdateState.IDLE)
            return CycleResult(
                outcome=CycleOutcome.NO_UPDATE,
                message="No new version available",
            )

        self._transition_to(UpdateState.AWAITING_CONSENT)
        logger.info(
            "Prompting for update",
            extra={"track": descriptor.track.value, "version": descriptor.version},
        )
        decision = await self._prompt.request_consent(descriptor)

        if decision != ConsentDecision.ACCEPTED:
            logger.info("User declined update", extra={"version": descriptor.version})
            self._transition_to(UpdateState.IDLE)
            return self._result(CycleOutcome.DECLINED, descriptor, "Update declined")

        logger.info("User accepted update", extra={"version": descriptor.version})
        self._transition_to(UpdateState.APPLYING)

        applier = self._appliers[descriptor.track]
        apply_result = await applier.apply(descriptor)

        if apply_result.applied:
            await self._complete(descriptor, apply_result)
            self._transition_to(UpdateState.IDLE)
            return self._result(CycleOutcome.APPLIED, descriptor, apply_result.message)

        if apply_result.fatal:
            self._halted = True
            logger.critical(
                "Rollback failed, automatic updates halted",
                extra={"track": descriptor.track.value, "version": descriptor.version},
            )

        self._transition_to(UpdateState.IDLE)
        return self._result(CycleOutcome.FAILED, descriptor, apply_result.message)

    async def _complete(
        self,
        descriptor: UpdateDescriptor,
        apply_result: ApplyResult,
    ) -> None:
        """Record the new version, then restart if the applier asked for it."""
        try:
            self._store.set_version(descriptor.track, descriptor.version)
        except UpdateError as e:
            # The record may lag behind the active version, never run ahead.
            logger.error(
                f"Failed to record {descriptor.track.value} version: {e.message}",
                extra={"track": descriptor.track.value, "version": descriptor.version},
            )

        logger.info(
            "Update completed successfully",
            extra={"track": descriptor.track.value, "version": descriptor.version},
        )

        if apply_result.restart_required:
            await self._notify(Notice.BUNDLE_APPLIED, descriptor)
            try:
                await self._restarter.restart()
            except Exception as e:
                # Already active and recorded; takes effect on the next launch.
                logger.error(
                    f"Restart after {descriptor.track.value} update failed: {e}",
                    extra={
                        "track": descriptor.track.value,
                        "version": descriptor.version,
                    },
                    exc_info=True,
                )

    def _result(
        self,
        outcome: CycleOutcome,
        descriptor: UpdateDescriptor,
        message: str | None,
    ) -> CycleResult:
        return CycleResult(
            outcome=outcome,
            track=descriptor.track,
            version=descriptor.version,
            message=message,
        )

    def _finish(self, result: CycleResult) -> CycleResult:
        self._last_result = result
        if result.outcome == CycleOutcome.FAILED:
            self._last_error = result.message
        logger.info(
            f"Update cycle finished: {result.outcome.value}",
            extra={
                "outcome": result.outcome.value,
                "track": result.track.value if result.track else None,
                "version": result.version,
            },
        )
        return result

    async def _notify(
        self,
        notice: Notice,
        descriptor: UpdateDescriptor | None = None,
    ) -> None:
        try:
            await self._prompt.notify(notice, descriptor)
        except Exception as e:
            logger.warning(f"Failed to show {notice.value} notice: {e}")

    # -------------------------------------------------------------------------
    # Periodic checks
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic check task. Starting twice is a no-op."""
        if self.is_running:
            logger.debug("Periodic update check already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._check_loop())
        logger.info(
            "Periodic update check started",
            extra={"interval_seconds": self._check_interval},
        )

    async def stop(self) -> None:
        """
        Stop the periodic check task, waiting for an in-flight cycle.

        A cycle still running after STOP_TIMEOUT_SECONDS is cancelled. A
        cancelled download or activation leaves the store as process
        termination would: the record of its track is not advanced.
        """
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.STOP_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Update check task did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Periodic update check stopped")

    async def _check_loop(self) -> None:
        """
        Wait one interval, run a cycle, repeat.

        The next interval starts only after the cycle is back in idle.
        """
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._check_interval,
                )
                break
            except TimeoutError:
                pass

            await self.run_cycle()

    def get_status(self) -> dict[str, Any]:
        """
        Get the current status of the coordinator.

        Returns:
            Dictionary with current status.
        """
        return {
            "state": self._state.value,
            "enabled": self._enabled,
            "running": self.is_running,
            "halted": self._halted,
            "check_interval_seconds": self._check_interval,
            "last_transition_at": self._last_transition_at,
            "last_outcome": (
                self._last_result.outcome.value if self._last_result else None
            ),
            "last_error": self._last_error,
            "versions": self._store.snapshot(),
        }
