"""API route handlers."""

from .frames import router as frames_router
from .session import router as session_router
from .websocket import router as websocket_router

__all__ = ["frames_router", "session_router", "websocket_router"]
