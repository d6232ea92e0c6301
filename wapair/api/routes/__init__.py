"""API route modules."""

from wapair.api.routes.legacy import router as legacy_router
from wapair.api.routes.monitoring import router as monitoring_router
from wapair.api.routes.sessions import router as sessions_router

__all__ = ["legacy_router", "monitoring_router", "sessions_router"]
