"""
Package track applier.

Downloads a full-package artifact into the process cache directory and hands
it to the platform installer. The installer only reports whether it could be
launched; whether the installation completes is outside the engine's view, so
"applied" here means "installer launched and the user did not report a
failure".
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from ota_updater.errors import DownloadFailure, InstallLaunchFailure
from ota_updater.logging import get_logger
from ota_updater.updates.descriptor import ApplyResult, Notice

if TYPE_CHECKING:
    from ota_updater.config import UpdaterConfig
    from ota_updater.updates.collaborators import PlatformInstaller, UserPrompt
    from ota_updater.updates.descriptor import UpdateDescriptor

logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "application/vnd.android.package-archive"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


class PackageTrackApplier:
    """
    Applies package-track updates.

    Attributes:
        cache_dir: Directory the artifact is downloaded into.
        artifact_path: Full path of the downloaded artifact.
    """

    DEFAULT_CACHE_DIR = Path("/var/cache/ota-updater")

    def __init__(
        self,
        installer: PlatformInstaller,
        prompt: UserPrompt,
        *,
        cache_dir: Path | str | None = None,
        artifact_name: str = "update.apk",
        mime_type: str = DEFAULT_MIME_TYPE,
        max_install_attempts: int = 3,
        download_timeout_seconds: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the PackageTrackApplier.

        Args:
            installer: Platform installer collaborator.
            prompt: User prompt for retry offers and notices.
            cache_dir: Directory for the downloaded artifact.
            artifact_name: File name of the downloaded artifact.
            mime_type: MIME type handed to the installer.
            max_install_attempts: Installer launches allowed per apply.
            download_timeout_seconds: Timeout for the artifact download.
            transport: Optional httpx transport, used to substitute the network.
        """
        self._installer = installer
        self._prompt = prompt
        self.cache_dir = Path(cache_dir) if cache_dir else self.DEFAULT_CACHE_DIR
        self.artifact_path = self.cache_dir / artifact_name
        self._mime_type = mime_type
        self._max_install_attempts = max(1, max_install_attempts)
        self._download_timeout = download_timeout_seconds
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: UpdaterConfig,
        installer: PlatformInstaller,
        prompt: UserPrompt,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> PackageTrackApplier:
        """Create a PackageTrackApplier from an UpdaterConfig."""
        return cls(
            installer,
            prompt,
            cache_dir=config.cache_dir,
            artifact_name=config.package_filename,
            mime_type=config.package_mime_type,
            max_install_attempts=config.max_install_attempts,
            download_timeout_seconds=config.download_timeout_seconds,
            transport=transport,
        )

    async def apply(self, descriptor: UpdateDescriptor) -> ApplyResult:
        """
        Download the package artifact and launch the installer.

        A download failure ends the cycle without invoking the installer or
        offering a retry. A launch failure, or a launch the user reports as
        unsuccessful, is followed by a retry offer that reuses the artifact.

        Args:
            descriptor: Package-track update descriptor.

        Returns:
            ApplyResult; applied once the installer was launched.
        """
        try:
            artifact = await self._download(descriptor)
        except DownloadFailure as e:
            logger.error(
                f"Package download failed: {e.message}",
                extra={"version": descriptor.version},
            )
            await self._notify(Notice.DOWNLOAD_FAILED, descriptor)
            return ApplyResult.failure(e.message)

        attempt = 0
        while True:
            attempt += 1
            try:
                await self._launch_installer(artifact, descriptor)
            except InstallLaunchFailure as e:
                logger.error(
                    f"Installer launch attempt {attempt}/{self._max_install_attempts} "
                    f"failed: {e.message}",
                    extra={"version": descriptor.version, "attempt": attempt},
                )
            else:
                if await self._prompt.confirm_install_launched(descriptor):
                    logger.info(
                        f"Installer launched for package {descriptor.version}",
                        extra={"version": descriptor.version, "attempt": attempt},
                    )
                    return ApplyResult.success(
                        f"Installer launched for package {descriptor.version}"
                    )
                logger.warning(
                    "User reported the installation did not complete",
                    extra={"version": descriptor.version, "attempt": attempt},
                )

            if attempt >= self._max_install_attempts:
                logger.error(
                    f"Giving up after {attempt} installer launch attempt(s)",
                    extra={"version": descriptor.version},
                )
                await self._notify(Notice.UPDATE_FAILED, descriptor)
                break

            if not await self._prompt.offer_retry(descriptor):
                logger.info(
                    "User declined installer retry",
                    extra={"version": descriptor.version},
                )
                break

        self._discard(artifact)
        return ApplyResult.failure(
            f"Package {descriptor.version} installation was not launched"
        )

    async def _download(self, descriptor: UpdateDescriptor) -> Path:
        """
        Stream the artifact into the cache directory.

        The body is written to a temporary file that is renamed only once the
        whole artifact was received.

        Raises:
            DownloadFailure: If the artifact cannot be retrieved in full.
        """
        url = descriptor.package_url
        if not url:
            raise DownloadFailure(
                "Descriptor has no package URL",
                details={"version": descriptor.version},
            )

        logger.info(
            f"Downloading package from {url}",
            extra={"version": descriptor.version, "path": str(self.artifact_path)},
        )

        temp_path = self.artifact_path.with_name(self.artifact_path.name + ".part")
        received = 0
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            async with httpx.AsyncClient(
                timeout=self._download_timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(temp_path, "wb") as f:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            f.write(chunk)
                            received += len(chunk)

            if received == 0:
                raise DownloadFailure(
                    "Downloaded package is empty",
                    details={"url": url},
                )

            temp_path.replace(self.artifact_path)
        except DownloadFailure:
            self._discard(temp_path)
            raise
        except (httpx.HTTPError, OSError) as e:
            self._discard(temp_path)
            raise DownloadFailure(
                f"Package download failed: {e}",
                details={"url": url},
            ) from e

        logger.info(
            "Package downloaded",
            extra={"path": str(self.artifact_path), "bytes": received},
        )
        return self.artifact_path

    async def _launch_installer(
        self,
        artifact: Path,
        descriptor: UpdateDescriptor,
    ) -> None:
        """
        Hand the artifact to the platform installer.

        Raises:
            InstallLaunchFailure: If the installer cannot be launched.
        """
        try:
            await self._installer.open(artifact, self._mime_type)
        except Exception as e:
            raise InstallLaunchFailure(
                f"Failed to launch installer: {e}",
                details={"path": str(artifact), "version": descriptor.version},
            ) from e

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")

    async def _notify(self, notice: Notice, descriptor: UpdateDescriptor) -> None:
        try:
            await self._prompt.notify(notice, descriptor)
        except Exception as e:
            logger.warning(f"Failed to show {notice.value} notice: {e}")
