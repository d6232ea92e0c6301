"""Typed events consumed by the per-session state machine.

Protocol handles emit QrIssued, ConnectionOpened and ConnectionClosed. The
coordinator itself enqueues DeadlineExpired, ReconnectDue and ArchiveFinished
so that every state change for a session flows through one ordered queue.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class DisconnectReason(StrEnum):
    """Why the protocol connection closed."""

    LOGGED_OUT = "logged_out"
    RESTART_REQUIRED = "restart_required"
    CONNECTION_LOST = "connection_lost"
    CONNECTION_REPLACED = "connection_replaced"
    TIMED_OUT = "timed_out"
    UNKNOWN = "unknown"

    @property
    def is_logout(self) -> bool:
        """Logout is terminal; every other reason is treated as transient."""
        return self is DisconnectReason.LOGGED_OUT


@dataclass(frozen=True)
class QrIssued:
    """A new QR challenge is available."""

    payload: str


@dataclass(frozen=True)
class ConnectionOpened:
    """The link succeeded and the connection is open."""

    identity: str | None


@dataclass(frozen=True)
class ConnectionClosed:
    """The connection closed."""

    reason: DisconnectReason
    detail: str | None = None


@dataclass(frozen=True)
class DeadlineExpired:
    """The per-session deadline elapsed."""


@dataclass(frozen=True)
class ReconnectDue:
    """The reconnection backoff elapsed."""


@dataclass(frozen=True)
class ArchiveFinished:
    """The credential upload finished, successfully or not."""

    locator: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.locator is not None


ProtocolEvent = QrIssued | ConnectionOpened | ConnectionClosed
SessionEvent = QrIssued | ConnectionOpened | ConnectionClosed | DeadlineExpired | ReconnectDue | ArchiveFinished

EventSink = Callable[[ProtocolEvent], None]
