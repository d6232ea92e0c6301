"""Session creation, status and removal endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from wapair.api.dependencies import get_session_service
from wapair.api.schemas.sessions import (
    PairingRequest,
    PairingSessionResponse,
    QrSessionResponse,
    RemoveSessionResponse,
    SessionListResponse,
    SessionStatusResponse,
)
from wapair.api.services.session_service import SessionService
from wapair.core.errors import (
    CreationError,
    SessionNotFoundError,
    SessionTimeoutError,
    ValidationError,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def to_http_exception(e: Exception) -> HTTPException:
    """Map coordinator errors to HTTP status codes."""
    if isinstance(e, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, SessionNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, SessionTimeoutError):
        code = status.HTTP_408_REQUEST_TIMEOUT
    else:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HTTPException(status_code=code, detail=str(e))


# =============================================================================
# Creation
# =============================================================================


@router.post("/qr", response_model=QrSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_qr_session(
    service: Annotated[SessionService, Depends(get_session_service)],
) -> QrSessionResponse:
    """Create a QR-linking session.

    Blocks until the first QR payload is available.

    Args:
        service: Session service instance

    Returns:
        QrSessionResponse: Session id and QR payload

    Raises:
        HTTPException: 408 if no QR arrived in time, 503 if the connection failed
    """
    try:
        result = await service.create_qr()
    except (SessionTimeoutError, CreationError) as e:
        raise to_http_exception(e) from e
    return QrSessionResponse(**result)


@router.post("/pair", response_model=PairingSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_pairing_session(
    request: PairingRequest,
    service: Annotated[SessionService, Depends(get_session_service)],
) -> PairingSessionResponse:
    """Create a phone-number pairing session.

    Args:
        request: Phone number to pair
        service: Session service instance

    Returns:
        PairingSessionResponse: Session id, raw and formatted pairing code

    Raises:
        HTTPException: 400 for an invalid number, 408 on timeout, 503 if the connection failed
    """
    try:
        result = await service.create_pairing(request.phone_number)
    except (ValidationError, SessionTimeoutError, CreationError) as e:
        raise to_http_exception(e) from e
    return PairingSessionResponse(**result)


# =============================================================================
# Status
# =============================================================================


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    service: Annotated[SessionService, Depends(get_session_service)],
) -> SessionListResponse:
    """List live sessions."""
    return SessionListResponse(
        sessions=[SessionStatusResponse(**s) for s in service.list_sessions()]
    )


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(
    session_id: str,
    service: Annotated[SessionService, Depends(get_session_service)],
) -> SessionStatusResponse:
    """Get the status of a session.

    Finished sessions stay visible (with their end reason and locator) for a
    while after disposal.

    Raises:
        HTTPException: 404 if the session is unknown
    """
    try:
        snapshot = service.get_status(session_id)
    except SessionNotFoundError as e:
        raise to_http_exception(e) from e
    return SessionStatusResponse(**snapshot)


@router.delete("/{session_id}", response_model=RemoveSessionResponse)
async def remove_session(
    session_id: str,
    service: Annotated[SessionService, Depends(get_session_service)],
) -> RemoveSessionResponse:
    """Unlink and dispose a session.

    Raises:
        HTTPException: 404 if the session is unknown
    """
    try:
        await service.remove(session_id)
    except SessionNotFoundError as e:
        raise to_http_exception(e) from e
    return RemoveSessionResponse(ok=True)
