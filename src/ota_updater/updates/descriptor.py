"""
Data model for the OTA update engine.

This module defines the records that flow between the engine's components:
the remote-supplied UpdateDescriptor, the handle returned by the
bundle-delivery collaborator, and the result types reported by the appliers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ota_updater.errors import InvalidArgumentError


class Track(str, Enum):
    """
    Independent update channels.

    - package: full binary reinstall through the platform installer
    - bundle: content-only swap through the bundle-delivery collaborator
    """

    PACKAGE = "package"
    BUNDLE = "bundle"


# Wire values of `updateType` accepted for each track
_TRACK_ALIASES: dict[str, Track] = {
    "package": Track.PACKAGE,
    "apk": Track.PACKAGE,
    "bundle": Track.BUNDLE,
    "assets": Track.BUNDLE,
    "web_assets": Track.BUNDLE,
    "web": Track.BUNDLE,
}


def parse_track(value: str | Track) -> Track:
    """
    Map a wire `updateType` value to a Track.

    Raises:
        InvalidArgumentError: If the value names no known track.
    """
    if isinstance(value, Track):
        return value
    track = _TRACK_ALIASES.get(str(value).strip().lower())
    if track is None:
        raise InvalidArgumentError(
            f"Unknown update type: {value}",
            details={"update_type": value, "valid": sorted(_TRACK_ALIASES)},
        )
    return track


class UpdateDescriptor(BaseModel):
    """
    Remote-supplied description of an available update for one track.

    Immutable once received; one descriptor is evaluated per check cycle.

    Attributes:
        version: Dotted version triplet offered by the remote endpoint.
        track: Track the update targets.
        package_url: Location of the full package artifact.
        bundle_url: Location of the content bundle.
        notes: Optional release notes.
        session_key: Opaque token passed through to bundle delivery.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., description="Dotted version triplet")
    track: Track = Field(..., description="Track the update targets")
    package_url: str | None = Field(
        default=None,
        description="Location of the full package artifact",
    )
    bundle_url: str | None = Field(
        default=None,
        description="Location of the content bundle",
    )
    notes: str | None = Field(default=None, description="Release notes")
    session_key: str | None = Field(
        default=None,
        description="Opaque token passed through to bundle delivery",
    )

    @field_validator("version", mode="before")
    @classmethod
    def normalize_version(cls, v: Any) -> Any:
        """Strip surrounding whitespace; format is checked by the comparator."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("track", mode="before")
    @classmethod
    def normalize_track(cls, v: Any) -> Any:
        """Accept wire aliases such as 'apk' or 'assets'."""
        if isinstance(v, str):
            try:
                return parse_track(v)
            except InvalidArgumentError as e:
                raise ValueError(e.message) from e
        return v

    @property
    def artifact_url(self) -> str | None:
        """URL of the artifact for this descriptor's own track."""
        if self.track == Track.PACKAGE:
            return self.package_url
        return self.bundle_url

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> UpdateDescriptor:
        """
        Build a descriptor from the remote endpoint's JSON object.

        Wire fields: version, updateType, url, web_assets_url, notes,
        sessionKey. `url` is the artifact location for either track; the bundle location
        falls back to `web_assets_url` when `url` is absent.

        Raises:
            ValidationError: If required fields are missing or invalid.
        """
        url = data.get("url") or None
        return cls(
            version=data.get("version"),
            track=data.get("updateType", data.get("track")),
            package_url=url,
            bundle_url=url or data.get("web_assets_url") or None,
            notes=data.get("notes"),
            session_key=data.get("sessionKey"),
        )


class BundleHandle(BaseModel):
    """
    Handle to a downloaded content bundle.

    Returned by the bundle-delivery download primitive and passed back to its
    activation primitive.
    """

    id: str = Field(..., description="Collaborator-assigned bundle identifier")
    version: str = Field(..., description="Version of the downloaded bundle")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConsentDecision(str, Enum):
    """User answer to an update consent request."""

    ACCEPTED = "accepted"
    DECLINED = "declined"


class Notice(str, Enum):
    """User-visible notifications surfaced through the prompt collaborator."""

    UPDATE_FAILED = "update_failed"
    DOWNLOAD_FAILED = "download_failed"
    BUNDLE_APPLIED = "bundle_applied"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


class ApplyOutcome(str, Enum):
    """Terminal outcome of an applier."""

    APPLIED = "applied"
    FAILED = "failed"


class ApplyResult(BaseModel):
    """
    Result reported by an applier.

    Attributes:
        outcome: Applied or failed.
        restart_required: The application must restart for the update to
            take effect (set by the bundle track after activation).
        rolled_back: A failed bundle activation was reverted.
        fatal: Reverting failed; no automatic recovery is possible.
        message: Human-readable summary.
    """

    outcome: ApplyOutcome
    restart_required: bool = False
    rolled_back: bool = False
    fatal: bool = False
    message: str | None = None

    @property
    def applied(self) -> bool:
        """True if the applier reached its successful terminal step."""
        return self.outcome == ApplyOutcome.APPLIED

    @classmethod
    def success(cls, message: str, *, restart_required: bool = False) -> ApplyResult:
        """Build an applied result."""
        return cls(
            outcome=ApplyOutcome.APPLIED,
            restart_required=restart_required,
            message=message,
        )

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        rolled_back: bool = False,
        fatal: bool = False,
    ) -> ApplyResult:
        """Build a failed result."""
        return cls(
            outcome=ApplyOutcome.FAILED,
            rolled_back=rolled_back,
            fatal=fatal,
            message=message,
        )
