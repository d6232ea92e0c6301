"""Protocol client backed by the pyaileys asyncio WhatsApp Web client.

pyaileys is an optional dependency (``pip install wapair[whatsapp]``). It keeps
a Baileys-style multi-file auth folder, which maps directly onto the
per-session credential directory.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from wapair.model.events import (
    ConnectionClosed,
    ConnectionOpened,
    DisconnectReason,
    EventSink,
    QrIssued,
)
from wapair.protocol.base import ProtocolClient, ProtocolHandle

logger = logging.getLogger(__name__)

# Baileys-compatible disconnect status codes
_STATUS_REASONS: dict[int, DisconnectReason] = {
    401: DisconnectReason.LOGGED_OUT,
    408: DisconnectReason.TIMED_OUT,
    428: DisconnectReason.CONNECTION_LOST,
    440: DisconnectReason.CONNECTION_REPLACED,
    515: DisconnectReason.RESTART_REQUIRED,
}


def classify_disconnect(error: BaseException | None) -> DisconnectReason:
    """Map the exception attached to a close update onto a DisconnectReason.

    Args:
        error: ``ConnectionUpdate.last_disconnect`` or None.

    Returns:
        The matching reason; CONNECTION_LOST for unknown errors, UNKNOWN when
        the close carried no error at all.
    """
    if error is None:
        return DisconnectReason.UNKNOWN

    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        try:
            code = int(value) if value is not None else None
        except (TypeError, ValueError):
            code = None
        if code in _STATUS_REASONS:
            return _STATUS_REASONS[code]

    text = str(error).lower()
    if "logged out" in text or "loggedout" in text:
        return DisconnectReason.LOGGED_OUT
    if "restart required" in text:
        return DisconnectReason.RESTART_REQUIRED
    return DisconnectReason.CONNECTION_LOST


class PyaileysHandle(ProtocolHandle):
    """Wraps a connected ``pyaileys.WhatsAppClient``."""

    def __init__(
        self,
        client: Any,
        auth_state: Any,
        sink: EventSink,
        pairing_request_delay_seconds: float = 1.5,
    ):
        self._client = client
        self._auth_state = auth_state
        self._sink = sink
        self._pairing_delay = pairing_request_delay_seconds
        self._closing = False

    def _identity(self) -> str | None:
        me = getattr(self._client.socket.auth.creds, "me", None)
        return getattr(me, "id", None) if me else None

    async def on_connection_update(self, update: Any) -> None:
        """Translate a pyaileys ConnectionUpdate into typed events."""
        if update.qr:
            self._sink(QrIssued(update.qr))

        if update.connection == "open":
            self._sink(ConnectionOpened(self._identity()))
        elif update.connection == "close":
            if self._closing:
                return
            error = update.last_disconnect
            self._sink(
                ConnectionClosed(
                    reason=classify_disconnect(error),
                    detail=str(error) if error else None,
                )
            )

    async def on_creds_update(self, _creds: Any) -> None:
        """Persist credentials whenever the client rotates them."""
        await self._auth_state.save_creds()

    async def request_pairing_code(self, phone_number: str) -> str:
        request = getattr(self._client, "request_pairing_code", None) or getattr(
            self._client.socket, "request_pairing_code", None
        )
        if request is None:
            raise NotImplementedError("The installed pyaileys version does not support pairing codes")

        # The server rejects pairing requests sent before the handshake settles
        await asyncio.sleep(self._pairing_delay)
        code: str = await request(phone_number)
        return code

    async def send_text(self, jid: str, text: str) -> None:
        await self._client.send_text(jid, text)

    async def logout(self) -> None:
        logout = getattr(self._client, "logout", None)
        if logout is None:
            logger.debug("pyaileys client has no logout(); closing only")
            return
        self._closing = True
        await logout()

    async def close(self) -> None:
        self._closing = True
        await self._client.disconnect()


class PyaileysClient(ProtocolClient):
    """Opens pyaileys connections against per-session auth folders."""

    name = "pyaileys"

    def __init__(self, pairing_request_delay_seconds: float = 1.5):
        self._pairing_delay = pairing_request_delay_seconds

    @staticmethod
    def supports_pairing_codes() -> bool | None:
        """Whether the installed pyaileys can request pairing codes (None if it is not installed)."""
        try:
            from pyaileys import WhatsAppClient
        except ImportError:
            return None
        return hasattr(WhatsAppClient, "request_pairing_code")

    async def open(self, credential_path: Path, sink: EventSink) -> ProtocolHandle:
        try:
            from pyaileys import WhatsAppClient
        except ImportError as e:
            raise RuntimeError(
                "pyaileys is not installed. Install it with: pip install 'wapair[whatsapp]'"
            ) from e

        client, auth_state = await WhatsAppClient.from_auth_folder(str(credential_path))
        handle = PyaileysHandle(client, auth_state, sink, self._pairing_delay)
        client.on("connection.update", handle.on_connection_update)
        client.on("creds.update", handle.on_creds_update)

        try:
            await client.connect()
            await auth_state.save_creds()
        except BaseException:
            try:
                await client.disconnect()
            except Exception as e:
                logger.debug(f"Ignoring disconnect error after failed open: {e}")
            raise
        logger.debug(f"pyaileys connection started for {credential_path.name}")
        return handle
