"""Archive used when no remote storage is configured."""

import logging

from wapair.archive.base import RemoteArchive

logger = logging.getLogger(__name__)

PLACEHOLDER_SCHEME = "placeholder://"


class PlaceholderArchive(RemoteArchive):
    """Accepts every upload and returns a clearly marked placeholder locator.

    Nothing is stored. This keeps the linking flow usable in development
    without storage credentials.
    """

    name = "placeholder"

    async def archive(self, data: bytes, name: str) -> str:
        logger.warning(f"Remote archive not configured; discarding {len(data)} bytes for {name}")
        return f"{PLACEHOLDER_SCHEME}{name}"


def is_placeholder_locator(locator: str | None) -> bool:
    """Check whether a locator came from the placeholder archive."""
    return bool(locator) and locator.startswith(PLACEHOLDER_SCHEME)
