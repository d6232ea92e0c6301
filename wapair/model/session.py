"""Domain models for linking sessions."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any


class SessionKind(StrEnum):
    """How the remote device is linked."""

    QR = "qr"
    PAIRING = "pairing"


class SessionState(StrEnum):
    """Status values for the session lifecycle.

    Lifecycle flow:
        initializing -> qr_issued -> connected -> archiving -> disposed
        initializing -> pairing_code_issued -> connected -> archiving -> disposed
        any non-terminal -> disconnected -> disposed
        any non-terminal -> timed_out -> disposed
    """

    INITIALIZING = "initializing"
    QR_ISSUED = "qr_issued"
    PAIRING_CODE_ISSUED = "pairing_code_issued"
    CONNECTED = "connected"
    ARCHIVING = "archiving"
    DISCONNECTED = "disconnected"
    TIMED_OUT = "timed_out"
    DISPOSED = "disposed"

    @property
    def is_terminal(self) -> bool:
        """True once the session can no longer make progress."""
        return self in (SessionState.DISCONNECTED, SessionState.TIMED_OUT, SessionState.DISPOSED)


# Allowed transitions. DISCONNECTED and TIMED_OUT are reachable from any
# non-terminal state and are added below.
_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIALIZING: frozenset(
        {SessionState.QR_ISSUED, SessionState.PAIRING_CODE_ISSUED, SessionState.CONNECTED}
    ),
    SessionState.QR_ISSUED: frozenset({SessionState.QR_ISSUED, SessionState.CONNECTED}),
    SessionState.PAIRING_CODE_ISSUED: frozenset({SessionState.CONNECTED}),
    SessionState.CONNECTED: frozenset({SessionState.ARCHIVING}),
    SessionState.ARCHIVING: frozenset(),
    SessionState.DISCONNECTED: frozenset({SessionState.DISPOSED}),
    SessionState.TIMED_OUT: frozenset({SessionState.DISPOSED}),
    SessionState.DISPOSED: frozenset(),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Check whether ``current -> target`` is a legal state change."""
    if current == SessionState.DISPOSED:
        return False
    if target == SessionState.DISPOSED:
        return True
    if target in (SessionState.DISCONNECTED, SessionState.TIMED_OUT):
        return not current.is_terminal
    return target in _TRANSITIONS[current]


class InvalidTransitionError(RuntimeError):
    """Raised when a state change would violate the lifecycle ordering."""


@dataclass
class Session:
    """A single in-flight linking session.

    Attributes:
        id: Unique session identifier (e.g., "qr_1739452800123_k3j9x0a1b").
        kind: QR linking or phone-number pairing.
        credential_path: Directory holding this session's credential files.
        state: Current lifecycle state.
        created_at: When the session was created.
        last_update_at: Last time a protocol event touched the session.
        phone_number: Normalized digits (pairing sessions only).
        qr_payload: Most recent QR challenge (QR sessions only).
        pairing_code: Raw code issued at session start (pairing sessions only).
        remote_locator: Archive locator once the backup succeeded.
        connected_identity: Account JID once the connection opened.
        archive_attempted: Whether the archive upload has been started.
        reconnect_attempts: Reconnections performed so far.
        end_reason: Why the session terminated (None while live).
        history: States visited, in order.
    """

    id: str
    kind: SessionKind
    credential_path: Path
    state: SessionState = SessionState.INITIALIZING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_update_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    phone_number: str | None = None
    qr_payload: str | None = None
    pairing_code: str | None = None
    remote_locator: str | None = None
    connected_identity: str | None = None
    archive_attempted: bool = False
    reconnect_attempts: int = 0
    end_reason: str | None = None
    history: list[SessionState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.state)

    def transition(self, target: SessionState) -> bool:
        """Move to ``target``.

        Returns:
            False when already in ``target`` (no-op), True on a real change.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if target == self.state and target != SessionState.QR_ISSUED:
            return False
        if not can_transition(self.state, target):
            raise InvalidTransitionError(f"Session {self.id}: {self.state} -> {target} is not allowed")
        changed = target != self.state
        self.state = target
        if changed:
            self.history.append(target)
        self.touch()
        return changed

    def touch(self) -> None:
        """Refresh ``last_update_at``."""
        self.last_update_at = datetime.now(UTC)

    @property
    def artifact(self) -> str | None:
        """The transient artifact the user needs: QR payload or pairing code."""
        if self.kind == SessionKind.QR:
            return self.qr_payload
        return self.pairing_code

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds since creation."""
        return ((now or datetime.now(UTC)) - self.created_at).total_seconds()

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view of the session. Never includes credential material.

        Returns:
            Dictionary with ISO 8601 datetime strings.
        """
        return {
            "session_id": self.id,
            "kind": self.kind.value,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "last_update_at": self.last_update_at.isoformat(),
            "phone_number": self.phone_number,
            "qr": self.qr_payload,
            "pairing_code": self.pairing_code,
            "connected_identity": self.connected_identity,
            "locator": self.remote_locator,
            "reconnect_attempts": self.reconnect_attempts,
            "end_reason": self.end_reason,
            "history": [s.value for s in self.history],
        }
