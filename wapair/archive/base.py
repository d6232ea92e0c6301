"""Base remote archive interface."""

from abc import ABC, abstractmethod


class RemoteArchive(ABC):
    """Durable blob storage for credential backups.

    Archives are constructed once per process and injected into the
    coordinator. ``open()`` and ``close()`` bracket their lifetime.
    """

    name: str = "base"

    async def open(self) -> None:
        """Acquire connections or authenticate. Default: nothing to do."""

    async def close(self) -> None:
        """Release resources. Default: nothing to do."""

    @abstractmethod
    async def archive(self, data: bytes, name: str) -> str:
        """Store ``data`` under ``name``.

        Args:
            data: Bytes to upload.
            name: Blob name (e.g. "whatsapp_session_qr_123.json").

        Returns:
            An opaque locator the owner can use to retrieve the blob.

        Raises:
            ArchiveError: On authentication, network or server failure.
        """
        ...
