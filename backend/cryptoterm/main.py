"""Crypto Intelligence Terminal FastAPI application.

Live market view pushed over WebSocket, plus read-only REST views and a
health check.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .routers import health, market
from .routers import websocket as ws_router
from .services.config import ConfigService, ConfigValidationException, TerminalSettings
from .services.external_data import ExternalDataService
from .services.logging_service import configure_logging
from .services.websocket import WebSocketManager

logger = logging.getLogger(__name__)


def load_settings(config_service: Optional[ConfigService] = None) -> TerminalSettings:
    """Load configuration; an invalid file is fatal, a missing one means defaults."""
    config_service = config_service or ConfigService()
    try:
        settings = config_service.load_settings()
    except ConfigValidationException as e:
        print(f"FATAL: {e}")
        print("Server cannot start with invalid configuration.")
        sys.exit(1)
    configure_logging(settings)
    return settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    await app.state.ws_manager.start()
    logger.info("WebSocket manager started")

    yield

    logger.info("Initiating graceful shutdown...")
    await app.state.ws_manager.stop()
    logger.info("Graceful shutdown complete")


def create_app(
    settings: Optional[TerminalSettings] = None,
    data_service: Optional[ExternalDataService] = None,
) -> FastAPI:
    """Build the application with its own, independently constructed services."""
    settings = settings or TerminalSettings()
    data_service = data_service or ExternalDataService(settings)

    app = FastAPI(
        title="Crypto Intelligence Terminal API",
        description="Live crypto market view, signals and whale activity",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.data_service = data_service
    app.state.ws_manager = WebSocketManager(
        data_service,
        interval=settings.broadcast_interval_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(ws_router.router, prefix="/api", tags=["WebSocket"])
    app.include_router(market.router, prefix="/api", tags=["Market"])

    @app.get("/")
    async def root():
        """Root endpoint redirect to docs."""
        return {"message": "Crypto Intelligence Terminal API", "docs": "/docs"}

    return app
