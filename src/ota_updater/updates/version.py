"""
Version comparison for the OTA update engine.

Versions are dotted triplets of non-negative integers ("1.0.4"). A missing
trailing component counts as 0, so "1.2" equals "1.2.0". Components past the
third are not compared. A component that is not a plain run of digits makes
the whole string malformed; malformed versions are never silently coerced.
"""

from __future__ import annotations

import re

from ota_updater.errors import InvalidArgumentError
from ota_updater.logging import get_logger

logger = get_logger(__name__)

VERSION_COMPONENTS = 3

_COMPONENT_PATTERN = re.compile(r"^[0-9]+$")


def parse_version(version: str) -> tuple[int, int, int]:
    """
    Parse a dotted version string into a (major, minor, patch) triplet.

    Args:
        version: Version string (e.g., "1.0.4", "2.1").

    Returns:
        Tuple of three integers, missing trailing components set to 0.

    Raises:
        InvalidArgumentError: If the string is empty or a compared component
            is not a non-negative integer.
    """
    if not isinstance(version, str) or not version.strip():
        raise InvalidArgumentError(
            "Version string cannot be empty",
            details={"version": version},
        )

    parts = version.strip().split(".")[:VERSION_COMPONENTS]
    components: list[int] = []
    for position, part in enumerate(parts):
        if not _COMPONENT_PATTERN.match(part):
            raise InvalidArgumentError(
                f"Invalid version: {version}",
                details={
                    "version": version,
                    "position": position,
                    "component": part,
                    "format": "MAJOR.MINOR.PATCH",
                },
            )
        components.append(int(part))

    while len(components) < VERSION_COMPONENTS:
        components.append(0)

    return components[0], components[1], components[2]


def validate_version(version: str) -> str:
    """
    Validate a version string and return it stripped.

    Raises:
        InvalidArgumentError: If the version is malformed.
    """
    parse_version(version)
    return version.strip()


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two dotted versions.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2

    Raises:
        InvalidArgumentError: If either version is invalid.
    """
    p1 = parse_version(v1)
    p2 = parse_version(v2)

    for a, b in zip(p1, p2, strict=True):
        if a < b:
            return -1
        if a > b:
            return 1
    return 0


def is_newer(remote: str, local: str) -> bool:
    """
    Decide whether the remote version is strictly newer than the local one.

    Never raises: a version that cannot be parsed means "cannot confirm
    newer" and yields False.

    Args:
        remote: Version offered by the remote endpoint.
        local: Version recorded locally for the same track.

    Returns:
        True only if remote > local and both parse.
    """
    try:
        result = compare_versions(remote, local) > 0
    except InvalidArgumentError as e:
        logger.warning(
            f"Cannot compare versions: {e.message}",
            extra={"remote": remote, "local": local},
        )
        return False

    logger.debug(
        "Version comparison",
        extra={"remote": remote, "local": local, "newer": result},
    )
    return result
