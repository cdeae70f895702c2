"""Scan pipeline components."""

from .announcer import BufferedAnnouncer, LoggingAnnouncer, SpeechAnnouncer
from .classifier import TeachableMachineClassifier
from .grabber import FrameGrabber
from .scanner import ScanStateMachine
from .timers import AsyncioTimerService, PolledTimerService, TimerSlot

__all__ = [
    "AsyncioTimerService",
    "BufferedAnnouncer",
    "FrameGrabber",
    "LoggingAnnouncer",
    "PolledTimerService",
    "ScanStateMachine",
    "SpeechAnnouncer",
    "TeachableMachineClassifier",
    "TimerSlot",
]
