"""Archive factory for creating the remote archive from configuration."""

import logging

from wapair.archive.base import RemoteArchive
from wapair.core.config import ArchiveConfig

logger = logging.getLogger(__name__)


def create_archive(config: ArchiveConfig) -> RemoteArchive:
    """Create a remote archive from configuration.

    An ``http`` provider without ``upload_url`` degrades to the placeholder
    archive instead of failing.

    Args:
        config: Archive section of the application config.

    Returns:
        Configured RemoteArchive instance.

    Raises:
        ValueError: If the provider is unsupported.
    """
    if config.provider == "placeholder":
        from wapair.archive.placeholder import PlaceholderArchive

        return PlaceholderArchive()

    if config.provider == "http":
        if not config.upload_url:
            from wapair.archive.placeholder import PlaceholderArchive

            logger.warning("archive.upload_url is not set; using placeholder archive")
            return PlaceholderArchive()

        from wapair.archive.http_archive import HttpArchive

        return HttpArchive(
            upload_url=config.upload_url,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
        )

    raise ValueError(f"Unsupported archive provider: {config.provider}")
