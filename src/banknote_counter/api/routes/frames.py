"""WebSocket endpoint for real-time frame scanning.

Each connection owns one scan session. Clients either send JPEG frames
(classified here) or JSON prediction lists from a classifier running in
the browser. Timers run on the event loop, between messages.
"""

import asyncio
import json
import logging
from typing import Optional

import cv2
import numpy as np
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..schemas import FrameMessage
from ...pipeline.announcer import BufferedAnnouncer
from ...pipeline.classifier import TeachableMachineClassifier
from ...pipeline.scanner import ScanStateMachine
from ...pipeline.timers import AsyncioTimerService
from ...shared.memory import get_shared_memory
from ...shared.state import ClassPrediction, ScanSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["frames"])

# Classifier (lazy loaded)
_classifier: Optional[TeachableMachineClassifier] = None


def get_classifier() -> TeachableMachineClassifier:
    """Lazy load the Teachable Machine classifier."""
    global _classifier
    if _classifier is None:
        _classifier = TeachableMachineClassifier()
    return _classifier


def decode_frame(data: bytes) -> Optional[np.ndarray]:
    """Decode JPEG/PNG bytes to a BGR image, None if undecodable."""
    nparr = np.frombuffer(data, np.uint8)
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


def parse_predictions(text: str) -> list[ClassPrediction]:
    """Parse a JSON prediction message.

    Accepts {"predictions": [...]} or a bare list of
    {"label": ..., "confidence": ...} objects.

    Raises:
        ValueError: If the message is not valid JSON or fails validation.
    """
    try:
        payload = json.loads(text)
        if isinstance(payload, list):
            payload = {"predictions": payload}
        message = FrameMessage.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid prediction message: {e}") from e

    return [ClassPrediction(label=p.label, confidence=p.confidence) for p in message.predictions]


@router.websocket("/ws/frames")
async def websocket_frame_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time frame scanning.

    Receives: Binary JPEG image data, or JSON predictions
    Sends: JSON session updates

    Message format (sent):
    {
        "type": "scan_update",
        "data": {"state": "validating", "accumulated_sum": 0, ...},
        "announcements": ["10 dollars"]
    }

    Announcements made by a timer (the sum reset) are pushed without
    waiting for the next frame.
    """
    await websocket.accept()
    logger.info("Frame WebSocket connected")

    announced = asyncio.Event()
    send_lock = asyncio.Lock()
    announcer = BufferedAnnouncer(on_speak=announced.set)
    machine = ScanStateMachine(timers=AsyncioTimerService(), announcer=announcer)
    memory = get_shared_memory()
    reset_hook = machine.start_session
    machine.start_session()
    memory.add_reset_hook(reset_hook)

    async def send(message: dict) -> None:
        async with send_lock:
            await websocket.send_json(message)

    async def push_timer_announcements() -> None:
        while True:
            await announced.wait()
            announced.clear()
            # Frame replies drain their own announcements first
            texts = announcer.drain()
            if texts:
                await send(scan_update(machine.snapshot(), texts))

    pusher = asyncio.create_task(push_timer_announcements())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            try:
                if message.get("bytes") is not None:
                    image = decode_frame(message["bytes"])
                    if image is None:
                        raise ValueError("Failed to decode image")
                    predictions = get_classifier().predict(image)
                else:
                    predictions = parse_predictions(message.get("text") or "")
            except (ValueError, FileNotFoundError, ImportError) as e:
                await send({"type": "error", "message": str(e)})
                continue

            snapshot = machine.process_frame(predictions)
            await send(scan_update(snapshot, announcer.drain()))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Frame WebSocket error: {e}")
    finally:
        pusher.cancel()
        memory.remove_reset_hook(reset_hook)
        machine.end_session()
        logger.info("Frame WebSocket disconnected")


def scan_update(snapshot: ScanSnapshot, announcements: list[str]) -> dict:
    """Build a scan_update message."""
    return {
        "type": "scan_update",
        "data": snapshot.to_dict(),
        "announcements": announcements,
    }
