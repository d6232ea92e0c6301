"""Pydantic schemas for API request/response models."""

from wapair.api.schemas.monitoring import HealthResponse
from wapair.api.schemas.sessions import (
    PairingRequest,
    PairingSessionResponse,
    QrSessionResponse,
    RemoveSessionResponse,
    SessionListResponse,
    SessionStatusResponse,
)

__all__ = [
    "HealthResponse",
    "PairingRequest",
    "PairingSessionResponse",
    "QrSessionResponse",
    "RemoveSessionResponse",
    "SessionListResponse",
    "SessionStatusResponse",
]
