"""Health check endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from wapair.api.dependencies import get_session_service
from wapair.api.schemas.monitoring import HealthResponse
from wapair.api.services.session_service import SessionService

router = APIRouter(tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: Annotated[SessionService, Depends(get_session_service)],
) -> HealthResponse:
    """System health check endpoint.

    Args:
        service: Session service instance

    Returns:
        HealthResponse: Status, server timestamp and live session count
    """
    return HealthResponse(**service.get_health())
