"""Pytest configuration and shared fixtures."""

import pytest

from banknote_counter.config import Config, ScanConfig, set_config
from banknote_counter.pipeline.scanner import ScanStateMachine
from banknote_counter.pipeline.timers import PolledTimerService
from banknote_counter.shared.memory import SharedMemory
from banknote_counter.shared.state import ClassPrediction

LABELS = [
    "empty",
    "oneDollar",
    "fiveDollar",
    "tenDollar",
    "twentyDollar",
    "fiftyDollar",
    "hundredDollar",
]

FRAME_INTERVAL = 1 / 30


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAnnouncer:
    """Announcer that keeps every spoken text."""

    def __init__(self):
        self.texts: list[str] = []

    def speak(self, text: str) -> None:
        self.texts.append(text)


def make_predictions(label: str, confidence: float = 0.97) -> list[ClassPrediction]:
    """Full per-class prediction list with `label` at `confidence`."""
    rest = (1.0 - confidence) / (len(LABELS) - 1)
    return [
        ClassPrediction(label=name, confidence=confidence if name == label else rest)
        for name in LABELS
    ]


class Scanner:
    """Drives a state machine the way the camera pipeline does."""

    def __init__(self, machine: ScanStateMachine, timers: PolledTimerService, clock: FakeClock):
        self.machine = machine
        self.timers = timers
        self.clock = clock
        self.states_seen = []

    def frame(self, label: str, confidence: float = 0.97):
        """Fire due timers, then process one frame."""
        self.timers.poll()
        self.states_seen.append(self.machine.state)
        snapshot = self.machine.process_frame(make_predictions(label, confidence))
        self.states_seen.append(snapshot.state)
        return snapshot

    def show(self, label: str, seconds: float, confidence: float = 0.97):
        """Show one label for `seconds` at 30 fps, ending one frame after."""
        end = self.clock.now + seconds
        snapshot = None
        while self.clock.now < end:
            snapshot = self.frame(label, confidence)
            self.clock.advance(FRAME_INTERVAL)
        return snapshot

    def idle(self, seconds: float) -> None:
        """Let time pass with no frames at all."""
        self.clock.advance(seconds)
        self.timers.poll()


@pytest.fixture(autouse=True)
def reset_shared_memory():
    """Reset shared memory before each test."""
    SharedMemory.reset_instance()
    yield
    SharedMemory.reset_instance()


@pytest.fixture
def default_config():
    """Create a default test configuration."""
    config = Config()
    set_config(config)
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers(clock):
    return PolledTimerService(clock=clock)


@pytest.fixture
def announcer():
    return RecordingAnnouncer()


@pytest.fixture
def machine(default_config, timers, announcer):
    """A started scan session with default durations."""
    machine = ScanStateMachine(timers=timers, announcer=announcer, config=ScanConfig())
    machine.start_session()
    return machine


@pytest.fixture
def scanner(machine, timers, clock):
    return Scanner(machine, timers, clock)
