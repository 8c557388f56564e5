"""
Durable per-track version store for the OTA update engine.

The store maps each track to the last confirmed-active version string. It is
kept in a small JSON document:

    {
      "package_version": "1.0.5",
      "bundle_version": "1.0.4",
      "last_modified": "2026-01-01T00:00:00+00:00",
      "checksum": "sha256:..."
    }

Writes are atomic (temp file, fsync, rename) and mirrored to a backup file.
An absent key is a valid state: the track is uninitialized and bootstraps to
the build-time baseline version on first read.
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ota_updater.errors import InternalError, InvalidArgumentError
from ota_updater.logging import get_logger
from ota_updater.updates.descriptor import Track
from ota_updater.updates.version import validate_version

if TYPE_CHECKING:
    from ota_updater.config import UpdaterConfig

logger = get_logger(__name__)


def version_key(track: Track) -> str:
    """Return the persisted key holding the version of a track."""
    return f"{track.value}_version"


class VersionStore:
    """
    Persists the last confirmed-active version of each track.

    Reads are served from memory after the initial load; every write goes to
    disk before it becomes visible, so a value returned by get_version() is
    always the one a restarted process would read back.

    Attributes:
        state_file: Path to the version store document.
        backup_file: Path to its backup copy.
        baseline_version: Version used to bootstrap an uninitialized track.
    """

    DEFAULT_STATE_FILE = Path("/var/lib/ota-updater/versions.json")

    def __init__(
        self,
        baseline_version: str,
        state_file: Path | str | None = None,
        backup_file: Path | str | None = None,
    ) -> None:
        """
        Initialize the VersionStore and load any persisted state.

        Args:
            baseline_version: Build-time version for uninitialized tracks.
            state_file: Path to the store document.
            backup_file: Path to the backup. Defaults to "<state_file>.backup".
        """
        self.baseline_version = validate_version(baseline_version)
        self.state_file = Path(state_file) if state_file else self.DEFAULT_STATE_FILE
        self.backup_file = (
            Path(backup_file)
            if backup_file
            else self.state_file.with_name(self.state_file.name + ".backup")
        )
        self._data: dict[str, Any] = {}
        self._load()

    @classmethod
    def from_config(cls, config: UpdaterConfig) -> VersionStore:
        """Create a VersionStore from an UpdaterConfig."""
        return cls(
            baseline_version=config.baseline_version,
            state_file=config.state_file,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get_version(self, track: Track) -> str:
        """
        Return the recorded version of a track.

        An uninitialized track is bootstrapped to the baseline version, which
        is persisted and returned. Never raises.

        Args:
            track: Track to read.

        Returns:
            Recorded version string.
        """
        key = version_key(track)
        stored = self._data.get(key)
        if stored:
            return stored

        logger.info(
            f"No stored {track.value} version, using baseline {self.baseline_version}",
            extra={"track": track.value, "version": self.baseline_version},
        )
        try:
            self._write(key, self.baseline_version)
        except InternalError as e:
            logger.error(
                f"Failed to persist baseline {track.value} version: {e.message}",
                extra={"track": track.value},
            )
        return self.baseline_version

    def set_version(self, track: Track, version: str) -> None:
        """
        Durably overwrite the recorded version of a track.

        Args:
            track: Track to write.
            version: New version string.

        Raises:
            InvalidArgumentError: If the version is malformed.
            InternalError: If the value cannot be written to disk.
        """
        version = validate_version(version)
        self._write(version_key(track), version)
        logger.info(
            f"Recorded {track.value} version {version}",
            extra={"track": track.value, "version": version},
        )

    def initialize_tracks(self) -> dict[str, str]:
        """
        Bootstrap every uninitialized track to the baseline version.

        Returns:
            Mapping of track name to recorded version.
        """
        return {track.value: self.get_version(track) for track in Track}

    def snapshot(self) -> dict[str, str | None]:
        """Return the recorded versions without bootstrapping anything."""
        return {track.value: self._data.get(version_key(track)) for track in Track}

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _write(self, key: str, value: str) -> None:
        """Write one key to disk, then expose it in memory."""
        data = copy.deepcopy(self._data)
        data[key] = value
        data["last_modified"] = datetime.now(UTC).isoformat()

        try:
            self._save_to_file(self.state_file, data)
        except OSError as e:
            raise InternalError(
                f"Failed to write version store: {e}",
                details={"path": str(self.state_file), "key": key},
            ) from e

        try:
            self._save_to_file(self.backup_file, data)
        except OSError as e:
            logger.warning(
                f"Failed to write version store backup: {e}",
                extra={"path": str(self.backup_file)},
            )

        self._data = data

    def _load(self) -> None:
        """
        Load persisted state, falling back to the backup.

        A store that cannot be read from either file starts empty, which
        bootstraps every track on first read.
        """
        try:
            self._data = self._load_from_file(self.state_file)
            return
        except FileNotFoundError:
            logger.debug(
                "Version store not found",
                extra={"path": str(self.state_file)},
            )
        except (json.JSONDecodeError, ValueError, OSError, InvalidArgumentError) as e:
            logger.error(
                "Version store corrupted",
                extra={"error": str(e), "path": str(self.state_file)},
            )

        try:
            self._data = self._load_from_file(self.backup_file)
        except FileNotFoundError:
            self._data = {}
            return
        except (json.JSONDecodeError, ValueError, OSError, InvalidArgumentError) as e:
            logger.error(
                "Version store backup unusable",
                extra={"error": str(e), "path": str(self.backup_file)},
            )
            self._data = {}
            return

        logger.info(
            "Version store recovered from backup",
            extra={"path": str(self.backup_file)},
        )
        try:
            self._save_to_file(self.state_file, self._data)
        except OSError as e:
            logger.warning(f"Failed to restore version store from backup: {e}")

    def _load_from_file(self, path: Path) -> dict[str, Any]:
        """
        Load and verify a store document.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            json.JSONDecodeError: If the JSON is invalid.
            ValueError: If the document or its checksum is invalid.
        """
        with open(path) as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Version store must be a JSON object: {path}")
        if not self._verify_checksum(data):
            raise ValueError(f"Checksum verification failed for {path}")

        data.pop("checksum", None)
        for track in Track:
            value = data.get(version_key(track))
            if value is not None:
                validate_version(value)

        logger.debug("Loaded version store", extra={"path": str(path), **data})
        return data

    def _save_to_file(self, path: Path, data: dict[str, Any]) -> None:
        """Atomically write a store document with its checksum."""
        path.parent.mkdir(parents=True, exist_ok=True)

        document = dict(data)
        document["checksum"] = self._calculate_checksum(document)

        temp_path = path.with_suffix(path.suffix + ".tmp")
        with open(temp_path, "w") as f:
            json.dump(document, f, indent=2)
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(path)

    @staticmethod
    def _calculate_checksum(data: dict[str, Any]) -> str:
        """SHA256 over the document without its checksum field."""
        payload = {k: v for k, v in data.items() if k != "checksum"}
        data_json = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(data_json.encode()).hexdigest()}"

    def _verify_checksum(self, data: dict[str, Any]) -> bool:
        """True if the checksum matches or is absent."""
        stored = data.get("checksum")
        if not stored:
            return True
        return stored == self._calculate_checksum(data)
