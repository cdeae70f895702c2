"""WebSocket routes for real-time scan session updates."""

import asyncio
import logging
from typing import Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...config import get_config
from ...shared.memory import get_shared_memory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class ConnectionManager:
    """Manage WebSocket connections."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        self.active_connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/session")
async def websocket_session_updates(websocket: WebSocket):
    """WebSocket endpoint for real-time scan session updates.

    Sends the session whenever the state, candidate, sum or last
    announcement changes. Prediction-only changes are not pushed.

    Message format:
    {
        "type": "session_update",
        "data": {
            "state": "cooldown",
            "accumulated_sum": 15,
            ...
        }
    }
    """
    await manager.connect(websocket)

    config = get_config()
    memory = get_shared_memory()
    last_snapshot: Optional[dict] = None

    try:
        while True:
            current = memory.get_snapshot_dict()

            if _has_significant_change(last_snapshot, current):
                await websocket.send_json({"type": "session_update", "data": current})
                last_snapshot = current

            await asyncio.sleep(config.api.websocket_broadcast_interval)

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)


def _has_significant_change(old: Optional[dict], new: dict) -> bool:
    """Check if there's a significant change between snapshots.

    Ignores predictions and last_updated, which change every frame.
    """
    if old is None:
        return True

    keys = ["state", "candidate_label", "accumulated_sum", "last_announcement"]
    return any(old.get(key) != new.get(key) for key in keys)
