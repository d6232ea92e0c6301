"""Business logic behind the session endpoints."""

import logging
from datetime import UTC, datetime
from typing import Any

from wapair.core.errors import SessionNotFoundError
from wapair.core.phone import format_pairing_code
from wapair.runtime.session.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


class SessionService:
    """Turns coordinator calls into response payloads.

    The QR payload or pairing code is returned synchronously. The archive
    locator is never awaited here: it reaches the user as a message on the
    linked account and through status polling.
    """

    def __init__(self, coordinator: SessionCoordinator, artifact_wait_seconds: float | None = None):
        """Initialize SessionService.

        Args:
            coordinator: Running session coordinator
            artifact_wait_seconds: Override for how long to wait for a QR payload
        """
        self.coordinator = coordinator
        self.artifact_wait_seconds = artifact_wait_seconds

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_qr(self) -> dict[str, Any]:
        """Create a QR session and wait for its first QR payload.

        Raises:
            CreationError: The protocol client could not open a connection.
            SessionTimeoutError: No QR arrived in time (the session is disposed).
        """
        session = await self.coordinator.create_qr_session()
        session = await self.coordinator.wait_for_artifact(session.id, self.artifact_wait_seconds)
        return {
            "session_id": session.id,
            "state": session.state.value,
            "qr": session.qr_payload,
        }

    async def create_pairing(self, phone_number: str) -> dict[str, Any]:
        """Create a pairing session; the code is available once creation returns.

        Raises:
            ValidationError: The phone number has too few digits.
            CreationError: The connection or the code request failed.
            SessionTimeoutError: No code arrived within the pairing deadline.
        """
        session = await self.coordinator.create_pairing_session(phone_number)
        session = await self.coordinator.wait_for_artifact(session.id, self.artifact_wait_seconds)
        assert session.pairing_code is not None
        return {
            "session_id": session.id,
            "state": session.state.value,
            "pairing_code": session.pairing_code,
            "formatted_code": format_pairing_code(session.pairing_code),
            "phone_number": session.phone_number,
        }

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self, session_id: str) -> dict[str, Any]:
        """Snapshot of a live or recently finished session.

        Raises:
            SessionNotFoundError: Unknown id (or its tombstone was evicted).
        """
        snapshot = self.coordinator.get_session(session_id)
        if snapshot is None:
            raise SessionNotFoundError(session_id)
        return snapshot

    def list_sessions(self) -> list[dict[str, Any]]:
        return self.coordinator.list_sessions()

    async def remove(self, session_id: str) -> bool:
        """Dispose a session on request.

        Removing a session that already finished is accepted and does nothing.

        Returns:
            True if a live session was disposed.

        Raises:
            SessionNotFoundError: The id was never seen (or its tombstone was evicted).
        """
        if self.coordinator.get_session(session_id) is None:
            raise SessionNotFoundError(session_id)
        removed = await self.coordinator.dispose_session(session_id, logout=True, reason="removed")
        if removed:
            logger.info(f"Session removed on request: {session_id}")
        return removed

    # =========================================================================
    # Health
    # =========================================================================

    def get_health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "sessions": self.coordinator.active_count,
        }
