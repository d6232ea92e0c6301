"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from wapair.api.services.session_service import SessionService
from wapair.runtime.session.coordinator import SessionCoordinator


def get_coordinator(request: Request) -> SessionCoordinator:
    """
    Get the session coordinator from app state.

    Args:
        request: FastAPI request object

    Returns:
        SessionCoordinator instance

    Raises:
        HTTPException: 503 if the coordinator is not running
    """
    coordinator: SessionCoordinator | None = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session coordinator is not running",
        )
    return coordinator


def get_session_service(
    request: Request,
    coordinator: Annotated[SessionCoordinator, Depends(get_coordinator)],
) -> SessionService:
    """
    Get session service instance.

    Args:
        request: FastAPI request object
        coordinator: Session coordinator

    Returns:
        SessionService instance
    """
    config = request.app.state.config
    return SessionService(coordinator, config.sessions.artifact_wait_seconds)
