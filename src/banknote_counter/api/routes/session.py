"""Scan session API routes."""

import logging

from fastapi import APIRouter

from ..schemas import ResetResponse, SessionResponse, SumResponse
from ...shared.memory import get_shared_memory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["session"])


@router.get("/session", response_model=SessionResponse)
async def get_session() -> SessionResponse:
    """Get the current scan session.

    Response fields:
    - state: 'ready', 'validating', 'confirmed' or 'cooldown'
    - candidate_label: Banknote being validated or counted
    - accumulated_sum: Running total
    - predictions / labels: Latest per-class classifier output
    - last_announcement: Most recent spoken text
    - last_updated: When the session was last updated
    """
    memory = get_shared_memory()
    return SessionResponse(**memory.get_snapshot_dict())


@router.get("/sum", response_model=SumResponse)
async def get_sum() -> SumResponse:
    """Get just the accumulated sum."""
    memory = get_shared_memory()
    return SumResponse(accumulated_sum=memory.get_sum())


@router.post("/session/reset", response_model=ResetResponse)
async def reset_session() -> ResetResponse:
    """Restart the active scan session (READY, sum 0, no pending timers)."""
    memory = get_shared_memory()
    reset = memory.request_reset()
    logger.info(f"Session reset requested (active session: {reset})")
    return ResetResponse(reset=reset)
