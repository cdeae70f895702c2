"""Frame grabber for camera and video sources.

Design decisions:
- OpenCV: one API for webcams (device index), streams and files.
- FPS limit: frames are produced at most fps_limit per second; scan timing
  is wall-clock based so the limit only bounds the classifier load.
- Optional horizontal flip so the image matches a mirror view.
- Context manager support: cv2.VideoCapture needs an explicit release.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Union

import cv2
import numpy as np

from ..config import VideoConfig, get_config

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """A single video frame with metadata."""

    image: np.ndarray  # BGR image
    timestamp: float  # Monotonic capture time in seconds
    frame_number: int

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def width(self) -> int:
        return self.image.shape[1]


class FrameGrabber:
    """Grab frames from a webcam index, a stream URL or a video file."""

    def __init__(
        self,
        source: Optional[Union[int, str]] = None,
        config: Optional[VideoConfig] = None,
    ):
        """Initialize the frame grabber.

        Args:
            source: Camera index, URL or path. If None, uses config.
            config: Video configuration. If None, uses global config.
        """
        self.config = config or get_config().video
        self.source = self.config.source if source is None else source

        self._cap: Optional[cv2.VideoCapture] = None
        self._frame_number = 0
        self._last_frame_time = 0.0
        self._min_frame_interval = 1.0 / self.config.fps_limit if self.config.fps_limit > 0 else 0

    def open(self) -> bool:
        """Open the video source.

        Returns:
            True if successfully opened, False otherwise.
        """
        if self._cap is not None:
            self._cap.release()

        self._cap = cv2.VideoCapture(self.source)

        if not self._cap.isOpened():
            logger.error(f"Failed to open video source: {self.source}")
            return False

        self._frame_number = 0
        logger.info(f"Opened video source: {self.source}")
        return True

    def close(self) -> None:
        """Close the video source."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Closed video source")

    def read_frame(self) -> Optional[Frame]:
        """Read a single frame from the video source.

        Returns:
            Frame if successful, None if end of video or error.
        """
        if self._cap is None or not self._cap.isOpened():
            return None

        # Rate limiting
        if self._min_frame_interval > 0:
            elapsed = time.monotonic() - self._last_frame_time
            if elapsed < self._min_frame_interval:
                time.sleep(self._min_frame_interval - elapsed)

        ret, image = self._cap.read()

        if not ret:
            logger.warning(f"Failed to read frame from {self.source}")
            return None

        if self.config.flip:
            image = cv2.flip(image, 1)

        self._last_frame_time = time.monotonic()
        self._frame_number += 1

        return Frame(
            image=image,
            timestamp=self._last_frame_time,
            frame_number=self._frame_number,
        )

    def frames(self) -> Iterator[Frame]:
        """Iterate over frames until the source is exhausted."""
        if not self.open():
            return

        try:
            while True:
                frame = self.read_frame()
                if frame is None:
                    break
                yield frame
        finally:
            self.close()

    def __enter__(self) -> "FrameGrabber":
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def __iter__(self) -> Iterator[Frame]:
        """Iterate over frames."""
        return self.frames()
