"""FastAPI application server."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes.frames import router as frames_router
from .routes.session import router as session_router
from .routes.websocket import router as websocket_router
from .schemas import HealthResponse
from .. import __version__

logger = logging.getLogger(__name__)

# Track pipeline status
_pipeline_running = False


def set_pipeline_running(running: bool) -> None:
    """Set the pipeline running status."""
    global _pipeline_running
    _pipeline_running = running


def is_pipeline_running() -> bool:
    """Check if the pipeline is running."""
    return _pipeline_running


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler."""
    logger.info("Starting Banknote Counter API")
    yield
    logger.info("Shutting down Banknote Counter API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Banknote Counter API",
        description="Real-time banknote scanning and counting API",
        version=__version__,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(session_router)
    app.include_router(websocket_router)
    app.include_router(frames_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            pipeline_running=is_pipeline_running(),
        )

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": "Banknote Counter API",
            "version": __version__,
            "docs": "/docs",
            "endpoints": {
                "health": "/health",
                "session": "/api/v1/session",
                "sum": "/api/v1/sum",
                "reset": "/api/v1/session/reset",
                "session_websocket": "/ws/session",
                "frames_websocket": "/ws/frames",
            },
        }

    return app


# Create the default app instance
app = create_app()
