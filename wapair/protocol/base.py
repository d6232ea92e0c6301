"""Base protocol client interface."""

from abc import ABC, abstractmethod
from pathlib import Path

from wapair.model.events import EventSink


class ProtocolHandle(ABC):
    """One live connection to the messaging network.

    A handle reports lifecycle changes by calling the sink it was opened with.
    It must not forward the close event caused by its own ``close()``.
    """

    @abstractmethod
    async def request_pairing_code(self, phone_number: str) -> str:
        """Ask the server for a pairing code bound to ``phone_number``.

        Args:
            phone_number: Normalized digits including country code.

        Returns:
            The raw pairing code.
        """
        ...

    @abstractmethod
    async def send_text(self, jid: str, text: str) -> None:
        """Send a plain text message through this connection."""
        ...

    @abstractmethod
    async def logout(self) -> None:
        """Unlink this device from the account."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection without unlinking."""
        ...


class ProtocolClient(ABC):
    """Factory for protocol handles.

    Credential material is read from and written to ``credential_path`` by the
    implementation; the coordinator only owns the directory.
    """

    name: str = "base"

    @abstractmethod
    async def open(self, credential_path: Path, sink: EventSink) -> ProtocolHandle:
        """Open a connection using the credentials in ``credential_path``.

        Args:
            credential_path: Directory holding (or receiving) credential files.
            sink: Callback receiving QrIssued / ConnectionOpened / ConnectionClosed.

        Returns:
            A live handle.

        Raises:
            Exception: Any failure to establish the connection.
        """
        ...
