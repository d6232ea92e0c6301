"""Pydantic schemas for session API endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class PairingRequest(BaseModel):
    """Request model for POST /sessions/pair.

    Attributes:
        phone_number: Phone number in any format; non-digits are stripped
    """

    phone_number: str = Field(..., min_length=1, description="Phone number to pair")

    model_config = ConfigDict(extra="forbid")


class QrSessionResponse(BaseModel):
    """Response model for QR session creation.

    Attributes:
        session_id: Id to poll for status
        state: Session state at response time
        qr: QR payload to render and scan
    """

    session_id: str
    state: str
    qr: str

    model_config = ConfigDict(extra="forbid")


class PairingSessionResponse(BaseModel):
    """Response model for pairing session creation.

    Attributes:
        session_id: Id to poll for status
        state: Session state at response time
        pairing_code: Raw code as issued
        formatted_code: Code grouped for display (e.g. "ABCD-EFGH")
        phone_number: Normalized phone number
    """

    session_id: str
    state: str
    pairing_code: str
    formatted_code: str
    phone_number: str

    model_config = ConfigDict(extra="forbid")


class SessionStatusResponse(BaseModel):
    """Snapshot of a live or finished session.

    Never includes credential material.
    """

    session_id: str
    kind: str
    state: str
    created_at: str
    last_update_at: str
    phone_number: str | None = None
    qr: str | None = None
    pairing_code: str | None = None
    connected_identity: str | None = None
    locator: str | None = None
    reconnect_attempts: int = 0
    end_reason: str | None = None
    history: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SessionListResponse(BaseModel):
    """Response model for GET /sessions."""

    sessions: list[SessionStatusResponse]

    model_config = ConfigDict(extra="forbid")


class RemoveSessionResponse(BaseModel):
    """Response model for DELETE /sessions/{session_id}."""

    ok: bool

    model_config = ConfigDict(extra="forbid")
