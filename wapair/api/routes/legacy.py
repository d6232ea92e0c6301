"""Root-level GET aliases kept for existing clients (/qr and /code)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from wapair.api.dependencies import get_session_service
from wapair.api.routes.sessions import to_http_exception
from wapair.api.schemas.sessions import PairingSessionResponse, QrSessionResponse
from wapair.api.services.session_service import SessionService
from wapair.core.errors import CreationError, SessionTimeoutError, ValidationError

router = APIRouter(tags=["legacy"])


@router.get("/qr", response_model=QrSessionResponse, status_code=status.HTTP_201_CREATED)
async def legacy_qr(
    service: Annotated[SessionService, Depends(get_session_service)],
) -> QrSessionResponse:
    """Alias of POST /api/v1/sessions/qr."""
    try:
        result = await service.create_qr()
    except (SessionTimeoutError, CreationError) as e:
        raise to_http_exception(e) from e
    return QrSessionResponse(**result)


@router.get("/code", response_model=PairingSessionResponse, status_code=status.HTTP_201_CREATED)
async def legacy_code(
    service: Annotated[SessionService, Depends(get_session_service)],
    number: str | None = Query(None, description="Phone number including country code"),
) -> PairingSessionResponse:
    """Alias of POST /api/v1/sessions/pair taking the number as a query parameter."""
    try:
        result = await service.create_pairing(number or "")
    except (ValidationError, SessionTimeoutError, CreationError) as e:
        raise to_http_exception(e) from e
    return PairingSessionResponse(**result)
