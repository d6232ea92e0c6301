"""Service layer for business logic."""

from wapair.api.services.session_service import SessionService

__all__ = ["SessionService"]
