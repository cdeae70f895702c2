"""Tests for pipeline/scanner.py - scan debounce and accumulation."""

import logging

import pytest

from banknote_counter.config import ScanConfig
from banknote_counter.pipeline.scanner import ScanStateMachine
from banknote_counter.pipeline.timers import PolledTimerService
from banknote_counter.shared.catalog import BanknoteCatalog
from banknote_counter.shared.memory import get_shared_memory
from banknote_counter.shared.state import ClassPrediction, ScanState

from conftest import FakeClock, RecordingAnnouncer, Scanner, make_predictions


class UncancellableTimerService(PolledTimerService):
    """Timer service whose cancel() does nothing, so stale timers still fire."""

    def cancel(self, handle) -> None:
        pass


class TestReadyState:
    """Tests for transitions out of READY."""

    def test_initial_state(self, machine):
        """Test a new session is READY with an empty sum."""
        assert machine.state == ScanState.READY
        assert machine.candidate_label is None
        assert machine.accumulated_sum == 0

    def test_confident_banknote_starts_validation(self, scanner, timers):
        """Test confidence above threshold starts validating."""
        snapshot = scanner.frame("tenDollar", 0.97)

        assert snapshot.state == ScanState.VALIDATING
        assert snapshot.candidate_label == "tenDollar"
        assert timers.pending == 1

    def test_confidence_at_threshold_is_ignored(self, scanner):
        """Test the threshold is exclusive."""
        snapshot = scanner.frame("tenDollar", 0.95)

        assert snapshot.state == ScanState.READY
        assert snapshot.candidate_label is None

    def test_confidence_just_above_threshold(self, scanner):
        """Test a confidence just above the threshold starts validating."""
        snapshot = scanner.frame("tenDollar", 0.951)

        assert snapshot.state == ScanState.VALIDATING

    def test_empty_label_is_ignored(self, scanner, timers):
        """Test a confident background prediction never starts a scan."""
        snapshot = scanner.frame("empty", 0.99)

        assert snapshot.state == ScanState.READY
        assert timers.pending == 0

    def test_tie_goes_to_first_class(self, machine):
        """Test ties between classes pick the earliest prediction."""
        predictions = [
            ClassPrediction(label="fiveDollar", confidence=0.97),
            ClassPrediction(label="tenDollar", confidence=0.97),
        ]

        snapshot = machine.process_frame(predictions)

        assert snapshot.candidate_label == "fiveDollar"


class TestValidatingState:
    """Tests for the validation window."""

    def test_stable_label_confirms(self, scanner, machine):
        """Test a label held for the validation window reaches CONFIRMED."""
        scanner.frame("oneDollar")
        scanner.idle(2.0)

        assert machine.state == ScanState.CONFIRMED

    def test_not_confirmed_before_window(self, scanner, machine):
        """Test the machine is still validating just before the window ends."""
        scanner.show("oneDollar", 1.9)

        assert machine.state == ScanState.VALIDATING
        assert machine.accumulated_sum == 0

    def test_label_change_reverts_to_ready(self, scanner, machine, timers, clock):
        """Test a different best label cancels validation."""
        scanner.frame("oneDollar")
        clock.advance(0.5)
        snapshot = scanner.frame("fiveDollar")

        assert snapshot.state == ScanState.READY
        assert snapshot.candidate_label is None
        assert timers.pending == 0

    def test_low_confidence_same_label_keeps_validating(self, scanner):
        """Test only the label matters while validating."""
        scanner.frame("oneDollar", 0.97)
        snapshot = scanner.frame("oneDollar", 0.6)

        assert snapshot.state == ScanState.VALIDATING

    def test_revalidation_after_revert(self, scanner, machine, clock):
        """Test a new candidate after a revert gets its own full window."""
        scanner.frame("oneDollar")
        clock.advance(1.5)
        scanner.frame("fiveDollar")  # revert
        scanner.frame("fiveDollar")  # new candidate at t=1.5
        scanner.idle(1.0)

        assert machine.state == ScanState.VALIDATING
        assert machine.candidate_label == "fiveDollar"

        scanner.idle(1.0)
        assert machine.state == ScanState.CONFIRMED


class TestConfirmedState:
    """Tests for counting a confirmed banknote."""

    def test_confirmed_banknote_is_counted(self, scanner, machine, announcer):
        """Test the frame after confirmation adds the value and announces it."""
        scanner.frame("twentyDollar")
        scanner.idle(2.0)
        snapshot = scanner.frame("twentyDollar")

        assert snapshot.state == ScanState.COOLDOWN
        assert snapshot.accumulated_sum == 20
        assert snapshot.last_announcement == "20 dollars"
        assert announcer.texts == ["20 dollars"]

    def test_one_dollar_is_singular(self, scanner, announcer):
        """Test the announcement wording for a single dollar."""
        scanner.frame("oneDollar")
        scanner.idle(2.0)
        scanner.frame("oneDollar")

        assert announcer.texts == ["1 dollar"]

    def test_confirmed_counts_whatever_is_in_view(self, scanner, machine):
        """Test the confirmed candidate is counted even if the next frame differs."""
        scanner.frame("fiveDollar")
        scanner.idle(2.0)
        snapshot = scanner.frame("empty")

        assert snapshot.accumulated_sum == 5

    def test_unknown_label_reverts_to_ready(self, default_config, timers, clock, caplog):
        """Test a confirmed label with no value is not counted."""
        announcer = RecordingAnnouncer()
        machine = ScanStateMachine(
            timers=timers,
            announcer=announcer,
            catalog=BanknoteCatalog({"oneDollar": 1}),
            config=ScanConfig(),
        )
        machine.start_session()
        scanner = Scanner(machine, timers, clock)

        scanner.frame("tenDollar")
        scanner.idle(2.0)
        with caplog.at_level(logging.WARNING):
            snapshot = scanner.frame("tenDollar")

        assert snapshot.state == ScanState.READY
        assert snapshot.accumulated_sum == 0
        assert announcer.texts == []
        assert timers.pending == 0
        assert "no banknote value" in caplog.text


class TestCooldownState:
    """Tests for the post-scan cooldown."""

    def test_frames_ignored_during_cooldown(self, scanner, machine, announcer):
        """Test nothing is counted while cooling down."""
        scanner.show("tenDollar", 2.1)
        scanner.show("fiftyDollar", 4.0)

        assert machine.state == ScanState.COOLDOWN
        assert machine.accumulated_sum == 10
        assert announcer.texts == ["10 dollars"]

    def test_cooldown_returns_to_ready(self, scanner, machine):
        """Test the cooldown timer reverts to READY."""
        scanner.frame("tenDollar")
        scanner.idle(2.0)
        scanner.frame("tenDollar")
        scanner.idle(5.0)

        assert machine.state == ScanState.READY
        assert machine.candidate_label is None

    def test_held_banknote_counted_once_per_cycle(self, scanner, machine, announcer):
        """Test a note held continuously is recounted only after cooldown and validation."""
        scanner.show("fiveDollar", 6.9)
        assert machine.accumulated_sum == 5

        scanner.show("fiveDollar", 2.5)
        assert machine.accumulated_sum == 10
        assert announcer.texts == ["5 dollars", "5 dollars"]


class TestSumReset:
    """Tests for the inactivity sum reset."""

    def test_scenario_a_single_note(self, scanner, machine, announcer):
        """oneDollar at 0.97 for 2.1s is confirmed and counted once."""
        scanner.show("oneDollar", 2.1)

        assert ScanState.CONFIRMED in scanner.states_seen
        assert machine.accumulated_sum == 1
        assert announcer.texts == ["1 dollar"]

    def test_scenario_b_unstable_note(self, scanner, machine, clock):
        """A label change at 500ms reverts to READY without counting."""
        scanner.frame("oneDollar")
        clock.advance(0.5)
        scanner.frame("fiveDollar")

        assert machine.state == ScanState.READY
        assert machine.accumulated_sum == 0

    def test_scenario_c_two_scans_in_window(self, scanner, machine, timers, announcer):
        """Two tenDollar scans inside the reset window sum to 20 with one reset pending."""
        scanner.show("tenDollar", 2.1)  # counted at t~2.0
        scanner.show("empty", 5.9)  # cooldown ends at t~7.0
        scanner.show("tenDollar", 2.1)  # counted at t~10.0

        assert machine.accumulated_sum == 20
        assert machine.sum_reset_pending
        # cooldown and sum reset; the first sum reset was cancelled
        assert timers.pending == 2

        # The first window would have ended at t~22.0
        scanner.idle(22.5 - scanner.clock.now)
        assert machine.accumulated_sum == 20

        scanner.idle(8.0)
        assert machine.accumulated_sum == 0
        assert announcer.texts == ["10 dollars", "10 dollars", "Sum of scanned bills: 20 dollars"]

    def test_scenario_d_reset_after_inactivity(self, scanner, machine, announcer):
        """fiftyDollar then 21s of empty frames clears the sum with one announcement."""
        scanner.show("fiftyDollar", 2.1)
        scanner.show("empty", 21.0)

        assert machine.accumulated_sum == 0
        assert machine.state == ScanState.READY
        assert announcer.texts.count("Sum of scanned bills: 50 dollars") == 1
        assert announcer.texts == ["50 dollars", "Sum of scanned bills: 50 dollars"]
        assert not machine.sum_reset_pending

    def test_reset_fires_without_frames(self, scanner, machine, announcer):
        """Test the sum reset does not depend on frames arriving."""
        scanner.frame("hundredDollar")
        scanner.idle(2.0)
        scanner.frame("hundredDollar")
        scanner.idle(20.0)

        assert machine.accumulated_sum == 0
        assert announcer.texts[-1] == "Sum of scanned bills: 100 dollars"


class TestStaleTimers:
    """Tests for timers firing after their state has moved on."""

    @pytest.fixture
    def leaky(self, default_config):
        clock = FakeClock()
        timers = UncancellableTimerService(clock=clock)
        announcer = RecordingAnnouncer()
        machine = ScanStateMachine(timers=timers, announcer=announcer, config=ScanConfig())
        machine.start_session()
        return Scanner(machine, timers, clock), announcer

    def test_stale_validation_timer_ignored(self, leaky):
        """Test a validation timer from a reverted candidate does not confirm."""
        scanner, _ = leaky
        scanner.frame("oneDollar")  # timer due at t=2.0
        scanner.clock.advance(1.0)
        scanner.frame("fiveDollar")  # revert
        scanner.frame("fiveDollar")  # new candidate, timer due at t=3.0
        scanner.idle(1.5)

        assert scanner.machine.state == ScanState.VALIDATING
        assert scanner.machine.candidate_label == "fiveDollar"

    def test_stale_sum_reset_ignored(self, leaky):
        """Test the first sum reset does not clear a sum extended by a later scan."""
        scanner, announcer = leaky
        scanner.show("tenDollar", 2.1)
        scanner.show("empty", 5.9)
        scanner.show("tenDollar", 2.1)

        scanner.idle(22.5 - scanner.clock.now)

        assert scanner.machine.accumulated_sum == 20
        assert not any(text.startswith("Sum of") for text in announcer.texts)

    def test_timers_ignored_after_session_end(self, leaky):
        """Test timers that outlive the session do nothing."""
        scanner, announcer = leaky
        scanner.show("tenDollar", 2.1)
        scanner.machine.end_session()
        scanner.idle(30.0)

        assert scanner.machine.state == ScanState.COOLDOWN
        assert scanner.machine.accumulated_sum == 10
        assert announcer.texts == ["10 dollars"]


class TestSessionLifecycle:
    """Tests for session start, end and publishing."""

    def test_start_session_resets(self, scanner, machine, timers):
        """Test start_session clears the sum and cancels timers."""
        scanner.show("tenDollar", 2.1)
        machine.start_session()

        assert machine.state == ScanState.READY
        assert machine.accumulated_sum == 0
        assert machine.candidate_label is None
        assert timers.pending == 0

    def test_context_manager(self, default_config, timers, announcer):
        """Test the machine can be used as a context manager."""
        with ScanStateMachine(timers=timers, announcer=announcer) as machine:
            machine.process_frame(make_predictions("tenDollar"))
            assert timers.pending == 1

        assert timers.pending == 0

    def test_snapshot_published(self, scanner):
        """Test each frame publishes a snapshot to shared memory."""
        scanner.frame("tenDollar", 0.98)

        snapshot = get_shared_memory().get_snapshot()
        assert snapshot.state == ScanState.VALIDATING
        assert snapshot.candidate_label == "tenDollar"
        assert snapshot.best.label == "tenDollar"
        assert len(snapshot.predictions) == 7

    def test_timer_transition_published(self, scanner):
        """Test timer-driven transitions are visible without a new frame."""
        scanner.frame("tenDollar")
        scanner.idle(2.0)

        assert get_shared_memory().get_state() == ScanState.CONFIRMED

    def test_predictions_exposed(self, scanner, machine):
        """Test the latest predictions are readable after a frame."""
        scanner.frame("fiveDollar", 0.5)

        assert [p.label for p in machine.predictions][2] == "fiveDollar"
        assert machine.predictions[2].confidence == 0.5
