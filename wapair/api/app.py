"""FastAPI application factory for the wapair linking service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wapair.api.routes.legacy import router as legacy_router
from wapair.api.routes.monitoring import router as monitoring_router
from wapair.api.routes.sessions import router as sessions_router
from wapair.archive.base import RemoteArchive
from wapair.archive.factory import create_archive
from wapair.core.config import Config
from wapair.protocol.base import ProtocolClient
from wapair.protocol.factory import create_protocol_client
from wapair.runtime.scheduling.sweep import SessionSweeper
from wapair.runtime.session.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle."""
    config: Config = app.state.config

    # Startup: build whatever was not injected by create_app
    if app.state.coordinator is None:
        archive: RemoteArchive = app.state.archive or create_archive(config.archive)
        protocol: ProtocolClient = app.state.protocol_client or create_protocol_client(config.protocol)
        app.state.coordinator = SessionCoordinator(
            protocol,
            archive,
            config.sessions,
            archive_name_prefix=config.archive.name_prefix,
        )
    coordinator: SessionCoordinator = app.state.coordinator
    app.state.archive = coordinator.archive

    await coordinator.archive.open()
    await coordinator.start()
    sweeper = SessionSweeper(coordinator, config.sweep)
    await sweeper.start()
    app.state.sweeper = sweeper
    logger.info("wapair started")

    yield

    # Shutdown: sweep first so it cannot race the final disposals
    await sweeper.stop()
    await coordinator.shutdown()
    await coordinator.archive.close()
    logger.info("wapair stopped")


def create_app(
    config: Config | None = None,
    coordinator: SessionCoordinator | None = None,
    archive: RemoteArchive | None = None,
    protocol_client: ProtocolClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Components not passed in are built from ``config`` when the app starts.

    Args:
        config: Application configuration (defaults to ``Config()``)
        coordinator: Optional pre-built session coordinator
        archive: Optional remote archive (ignored when a coordinator is given)
        protocol_client: Optional protocol client (ignored when a coordinator is given)

    Returns:
        Configured FastAPI application instance
    """
    app_config = config or Config()

    app = FastAPI(
        title="wapair",
        description="WhatsApp device linking service with credential archival",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = app_config
    app.state.coordinator = coordinator
    app.state.archive = archive
    app.state.protocol_client = protocol_client
    app.state.sweeper = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Root-level routes used by existing clients
    app.include_router(legacy_router)
    app.include_router(monitoring_router)

    # Mount routes at /api/v1
    api_v1 = FastAPI()
    api_v1.include_router(sessions_router)

    # Share state with sub-app so dependencies can access the coordinator
    api_v1.state = app.state

    app.mount("/api/v1", api_v1)

    return app
