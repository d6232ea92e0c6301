"""Exception hierarchy for wapair.

Only ValidationError, CreationError and SessionTimeoutError reach callers of
the coordinator. ArchiveError is raised by archive implementations and is
absorbed by the coordinator once a connection has been established.
"""


class WapairError(Exception):
    """Base class for all wapair errors."""


class ValidationError(WapairError, ValueError):
    """Input rejected before any session was created (e.g. a short phone number)."""


class CreationError(WapairError, RuntimeError):
    """The protocol client could not open a session, or it ended before issuing its artifact."""


class SessionTimeoutError(WapairError, TimeoutError):
    """No QR payload, pairing code or connection arrived within the deadline."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class SessionNotFoundError(WapairError, LookupError):
    """Unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ArchiveError(WapairError):
    """Remote archive upload failed (auth, network or server error)."""
