"""Announcers that turn scan results into speech.

The state machine only calls speak(text) and never waits for the audio.
"""

import logging
import queue
import threading
from collections import deque
from typing import Callable, Optional, Protocol

from ..config import SpeechConfig, get_config

logger = logging.getLogger(__name__)


class Announcer(Protocol):
    """Fire-and-forget text output."""

    def speak(self, text: str) -> None: ...


class LoggingAnnouncer:
    """Writes announcements to the log instead of speaking them."""

    def speak(self, text: str) -> None:
        logger.info(f"Announcement: {text}")


class BufferedAnnouncer:
    """Collects announcements until a consumer drains them.

    Used by the frame WebSocket so the browser can speak the texts
    with its own speech engine. on_speak, if given, is called after each
    text is buffered.
    """

    def __init__(self, maxlen: int = 16, on_speak: Optional[Callable[[], None]] = None) -> None:
        self._pending: deque[str] = deque(maxlen=maxlen)
        self._on_speak = on_speak

    def speak(self, text: str) -> None:
        self._pending.append(text)
        if self._on_speak is not None:
            self._on_speak()

    def drain(self) -> list[str]:
        texts = list(self._pending)
        self._pending.clear()
        return texts


class SpeechAnnouncer:
    """Speaks announcements with pyttsx3 on a background worker thread.

    The engine blocks while speaking, so texts are queued and the
    caller returns immediately. When the queue is full the text is
    dropped.
    """

    def __init__(self, config: Optional[SpeechConfig] = None) -> None:
        """Initialize the announcer.

        Args:
            config: Speech configuration. If None, uses global config.
        """
        self.config = config or get_config().speech
        self._queue: queue.Queue[Optional[str]] = queue.Queue(maxsize=self.config.queue_size)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the speech worker thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._worker, name="speech", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the speech worker after the queued texts."""
        if self._thread is None:
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Speech queue full, worker not signalled to stop")
        self._thread.join(timeout=timeout)
        self._thread = None

    def speak(self, text: str) -> None:
        if self._thread is None:
            self.start()
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            logger.warning(f"Speech queue full, dropping announcement: {text}")

    def _init_engine(self):
        # pyttsx3 engines must be created on the thread that drives them
        import pyttsx3

        engine = pyttsx3.init()
        rate = engine.getProperty("rate")
        engine.setProperty("rate", int(rate * self.config.rate_factor))
        engine.setProperty("volume", self.config.volume)
        return engine

    def _worker(self) -> None:
        try:
            engine = self._init_engine()
        except Exception as e:
            logger.error(f"Failed to initialize speech engine: {e}")
            return

        while True:
            text = self._queue.get()
            if text is None:
                break
            try:
                engine.say(text)
                engine.runAndWait()
            except Exception as e:
                logger.error(f"Speech failed for {text!r}: {e}")

    def __enter__(self) -> "SpeechAnnouncer":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.stop()


def create_announcer(config: Optional[SpeechConfig] = None) -> Announcer:
    """Create the announcer for the camera pipeline."""
    config = config or get_config().speech
    if not config.enabled:
        return LoggingAnnouncer()
    return SpeechAnnouncer(config)
