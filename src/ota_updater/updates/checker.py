"""
Update checking for the OTA update engine.

This module contains the HTTP implementation of the remote version source
and the UpdateChecker, which decides whether the published descriptor is
newer than what the VersionStore records for its track.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from ota_updater.errors import CheckFailure
from ota_updater.logging import get_logger
from ota_updater.updates.collaborators import VersionSource
from ota_updater.updates.descriptor import UpdateDescriptor
from ota_updater.updates.version import is_newer

if TYPE_CHECKING:
    from ota_updater.config import UpdaterConfig
    from ota_updater.updates.store import VersionStore

logger = get_logger(__name__)


class HttpVersionSource(VersionSource):
    """
    Fetches the published update descriptor over HTTP.

    The endpoint answers a GET with either a single descriptor object or an
    array whose first element is the descriptor. Narrowing the array happens
    here so the rest of the engine only ever sees one descriptor.

    Example:
        >>> source = HttpVersionSource("https://api.example.com/app-version")
        >>> descriptor = await source.fetch_descriptor()
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout_seconds: float = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the source.

        Args:
            endpoint_url: URL of the version-control endpoint.
            timeout_seconds: Request timeout.
            headers: Extra request headers (e.g. authorization).
            transport: Optional httpx transport, used to substitute the network.
        """
        self._endpoint_url = endpoint_url
        self._timeout = timeout_seconds
        self._headers = dict(headers or {})
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: UpdaterConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpVersionSource:
        """Create an HttpVersionSource from an UpdaterConfig."""
        return cls(
            config.endpoint_url,
            timeout_seconds=config.request_timeout_seconds,
            headers=config.request_headers,
            transport=transport,
        )

    @property
    def endpoint_url(self) -> str:
        """Return the endpoint URL."""
        return self._endpoint_url

    async def fetch_descriptor(self) -> UpdateDescriptor | None:
        """
        Fetch and parse the published descriptor.

        Returns:
            The descriptor, or None if the body is empty or an empty array.

        Raises:
            CheckFailure: On transport errors, non-2xx status or invalid JSON.
        """
        if not self._endpoint_url:
            raise CheckFailure("Version endpoint not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(self._endpoint_url)
                response.raise_for_status()
                payload = response.json() if response.content else None
        except httpx.HTTPError as e:
            raise CheckFailure(
                f"Failed to fetch update info: {e}",
                details={"url": self._endpoint_url},
            ) from e
        except ValueError as e:
            raise CheckFailure(
                f"Invalid update info response: {e}",
                details={"url": self._endpoint_url},
            ) from e

        return self._parse_payload(payload)

    def _parse_payload(self, payload: Any) -> UpdateDescriptor | None:
        """Narrow the response to a single descriptor."""
        if isinstance(payload, list):
            if not payload:
                logger.info("Update info response is an empty list")
                return None
            payload = payload[0]

        if payload is None:
            logger.info("No update data received")
            return None

        if not isinstance(payload, dict):
            raise CheckFailure(
                "Update info must be a JSON object",
                details={"type": type(payload).__name__},
            )

        try:
            return UpdateDescriptor.from_wire(payload)
        except ValidationError as e:
            raise CheckFailure(
                f"Invalid update descriptor: {e.error_count()} validation error(s)",
                details={"errors": e.errors(include_url=False)},
            ) from e


class UpdateChecker:
    """
    Decides whether the published update is newer than the recorded version.

    Attributes:
        source: Remote version source.
        store: Per-track version store.
        comparator: Function deciding whether remote is newer than local.
    """

    def __init__(
        self,
        source: VersionSource,
        store: VersionStore,
        comparator: Callable[[str, str], bool] = is_newer,
    ) -> None:
        """
        Initialize the UpdateChecker.

        Args:
            source: Remote version source.
            store: Per-track version store.
            comparator: Version comparison function, is_newer by default.
        """
        self._source = source
        self._store = store
        self._comparator = comparator

    async def check(self) -> UpdateDescriptor | None:
        """
        Check for an update.

        Fetches one descriptor, resolves the local version for its track and
        returns the descriptor unchanged if it is newer. Any failure of the
        remote collaborator is logged and reported as "no update".

        Returns:
            The descriptor if an update is available, otherwise None.
        """
        logger.info("Checking for updates")
        try:
            descriptor = await self._source.fetch_descriptor()
        except CheckFailure as e:
            logger.warning(
                f"Update check failed: {e.message}",
                extra={"error_code": e.error_code},
            )
            return None
        except Exception as e:
            logger.error(f"Update check failed unexpectedly: {e}", exc_info=True)
            return None

        if descriptor is None:
            return None

        local_version = self._store.get_version(descriptor.track)
        logger.info(
            f"Version comparison for {descriptor.track.value}: "
            f"local {local_version}, remote {descriptor.version}",
            extra={
                "track": descriptor.track.value,
                "local_version": local_version,
                "remote_version": descriptor.version,
            },
        )

        if self._comparator(descriptor.version, local_version):
            logger.info(
                "New version detected",
                extra={"track": descriptor.track.value, "version": descriptor.version},
            )
            return descriptor

        logger.info("No new version available")
        return None
