"""wapair domain models - pure business entities.

This package contains dataclasses and enums for sessions and the events that
drive them. These models have no dependencies on infrastructure.
"""

from wapair.model.events import (
    ArchiveFinished,
    ConnectionClosed,
    ConnectionOpened,
    DeadlineExpired,
    DisconnectReason,
    EventSink,
    ProtocolEvent,
    QrIssued,
    ReconnectDue,
    SessionEvent,
)
from wapair.model.session import (
    InvalidTransitionError,
    Session,
    SessionKind,
    SessionState,
    can_transition,
)

__all__ = [
    # Events
    "ArchiveFinished",
    "ConnectionClosed",
    "ConnectionOpened",
    "DeadlineExpired",
    "DisconnectReason",
    "EventSink",
    "ProtocolEvent",
    "QrIssued",
    "ReconnectDue",
    "SessionEvent",
    # Session
    "InvalidTransitionError",
    "Session",
    "SessionKind",
    "SessionState",
    "can_transition",
]
