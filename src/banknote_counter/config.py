"""Configuration management for the banknote counter."""

import os
from dataclasses import dataclass, field
from typing import Optional, Union


def _source_from_env() -> Union[int, str]:
    """Camera index if VIDEO_SOURCE is numeric, otherwise a URL or file path."""
    source = os.getenv("VIDEO_SOURCE", "0")
    return int(source) if source.isdigit() else source


@dataclass
class VideoConfig:
    """Video source configuration."""

    source: Union[int, str] = field(default_factory=_source_from_env)
    flip: bool = True  # Mirror the webcam image like a selfie view
    fps_limit: int = 30  # Process at most N frames per second


@dataclass
class ClassifierConfig:
    """Teachable Machine model configuration."""

    model_path: str = field(
        default_factory=lambda: os.getenv("MODEL_PATH", "model/model_unquant.tflite")
    )
    labels_path: str = field(
        default_factory=lambda: os.getenv("LABELS_PATH", "model/labels.txt")
    )
    num_threads: int = 1


@dataclass
class ScanConfig:
    """Scan state machine configuration (durations in seconds)."""

    threshold: float = 0.95  # Confidence a prediction must exceed to start a scan
    empty_label: str = field(default_factory=lambda: os.getenv("EMPTY_LABEL", "empty"))
    validate_time: float = 2.0  # Stable time before a banknote is confirmed
    scan_wait_time: float = 5.0  # Cooldown before the next scan
    sum_reset_time: float = 20.0  # Inactivity before the sum is announced and cleared

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        for name in ("validate_time", "scan_wait_time", "sum_reset_time"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


@dataclass
class SpeechConfig:
    """Text-to-speech configuration."""

    enabled: bool = field(
        default_factory=lambda: os.getenv("SPEECH_ENABLED", "true").lower() == "true"
    )
    rate_factor: float = 0.6  # Relative to the engine's default words per minute
    volume: float = 1.0
    queue_size: int = 8  # Announcements beyond this are dropped


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = field(default_factory=lambda: os.getenv("API_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("API_PORT", "8000")))
    websocket_broadcast_interval: float = 0.1  # Seconds between WebSocket broadcasts


@dataclass
class Config:
    """Main configuration class."""

    video: VideoConfig = field(default_factory=VideoConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls()


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance (for testing)."""
    global _config
    _config = config
