"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PredictionModel(BaseModel):
    """Classifier output for one class."""

    label: str = Field(..., description="Class label (e.g., 'tenDollar')")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Probability in [0, 1]")


class SessionResponse(BaseModel):
    """Response for current scan session endpoint."""

    state: str = Field(
        ...,
        description="Scan state: 'ready', 'validating', 'confirmed', or 'cooldown'",
    )
    candidate_label: Optional[str] = Field(
        None,
        description="Banknote label currently being validated or counted",
    )
    accumulated_sum: int = Field(..., ge=0, description="Running total of scanned banknotes")
    predictions: list[PredictionModel] = Field(
        default_factory=list,
        description="Latest per-class predictions, in classifier order",
    )
    labels: list[str] = Field(
        default_factory=list,
        description="Display lines for the predictions (e.g., 'tenDollar: 0.97')",
    )
    best: Optional[PredictionModel] = Field(None, description="Most confident prediction")
    last_announcement: Optional[str] = Field(None, description="Most recent spoken text")
    last_updated: datetime = Field(..., description="When the session was last updated")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "state": "cooldown",
                    "candidate_label": "tenDollar",
                    "accumulated_sum": 15,
                    "predictions": [
                        {"label": "empty", "confidence": 0.01},
                        {"label": "tenDollar", "confidence": 0.98},
                    ],
                    "labels": ["empty: 0.01", "tenDollar: 0.98"],
                    "best": {"label": "tenDollar", "confidence": 0.98},
                    "last_announcement": "10 dollars",
                    "last_updated": "2024-01-15T10:35:00",
                },
            ]
        }
    )


class SumResponse(BaseModel):
    """Response for the accumulated sum endpoint."""

    accumulated_sum: int = Field(..., ge=0, description="Running total of scanned banknotes")


class ResetResponse(BaseModel):
    """Response for the session reset endpoint."""

    reset: bool = Field(..., description="Whether an active session was restarted")


class FrameMessage(BaseModel):
    """Predictions sent over the frame WebSocket by a browser-side classifier."""

    predictions: list[PredictionModel] = Field(..., min_length=1)


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Application version")
    pipeline_running: bool = Field(..., description="Whether the camera pipeline is running")
