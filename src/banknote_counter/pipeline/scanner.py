"""Scan state machine: debounce per-frame predictions into counted banknotes.

このモジュールは分類結果を集約し、時間ベースの検証ロジックで紙幣の合計を管理する責務を担う。

=== 設計判断: なぜ時間ベースの検証か？ ===

理由1: フレームレート非依存
- カメラのfpsは30〜60で変動する
- 「2秒間同じ紙幣」ならfpsに関係なく同じ挙動

理由2: ノイズ耐性
- 紙幣をかざす途中の一瞬の誤分類では確定しない
- 検証中にラベルが変わったら即座にREADYへ戻る

理由3: 二重カウント防止
- 確定後5秒間はクールダウンで同じ紙幣を数えない

=== 状態遷移 ===

READY       信頼度 > 0.95 かつ "empty" 以外 → VALIDATING（検証タイマー開始）
VALIDATING  ラベル変化 → READY（検証タイマーをキャンセル）
            2秒経過    → CONFIRMED
CONFIRMED   次のフレームで合計に加算・読み上げ → COOLDOWN
            （未知のラベルは加算せずREADYへ戻る）
COOLDOWN    5秒経過 → READY

合計リセット: 最後の確定から20秒間新しい紙幣がなければ合計を読み上げて0に戻す。

Key behaviors:
1. Every timer is one-shot and owned by a TimerSlot
2. Leaving a state cancels the timer that state armed
3. Timer callbacks carry the phase they were armed in and no-op when stale
"""

import logging
from typing import Optional, Sequence

from ..config import ScanConfig, get_config
from ..shared.catalog import BanknoteCatalog, format_sum, format_value
from ..shared.memory import SharedMemory, get_shared_memory
from ..shared.state import ClassPrediction, ScanSnapshot, ScanState, best_prediction
from .announcer import Announcer
from .timers import TimerService, TimerSlot

logger = logging.getLogger(__name__)


class ScanStateMachine:
    """Owns one scan session.

    Frames and timer callbacks must be delivered on the same logical
    thread; the machine takes no locks.
    """

    def __init__(
        self,
        timers: TimerService,
        announcer: Announcer,
        catalog: Optional[BanknoteCatalog] = None,
        config: Optional[ScanConfig] = None,
        shared_memory: Optional[SharedMemory] = None,
    ):
        """Initialize the state machine.

        Args:
            timers: Timer service that schedules delayed transitions.
            announcer: Receives the texts to speak.
            catalog: Label to value mapping. If None, uses the dollar catalog.
            config: Scan configuration. If None, uses global config.
            shared_memory: Where snapshots are published. If None, uses global instance.
        """
        self.config = config or get_config().scan
        self.catalog = catalog or BanknoteCatalog()
        self._announcer = announcer
        self._memory = shared_memory or get_shared_memory()

        self._validation_timer = TimerSlot(timers, "validation")
        self._cooldown_timer = TimerSlot(timers, "cooldown")
        self._sum_reset_timer = TimerSlot(timers, "sum reset")

        self._state = ScanState.READY
        self._candidate: Optional[str] = None
        self._sum = 0
        self._predictions: list[ClassPrediction] = []
        self._last_announcement: Optional[str] = None
        # Bumped on every state change; timers armed in an older phase are stale
        self._phase = 0
        self._sum_window = 0

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def candidate_label(self) -> Optional[str]:
        return self._candidate

    @property
    def accumulated_sum(self) -> int:
        return self._sum

    @property
    def predictions(self) -> list[ClassPrediction]:
        return list(self._predictions)

    @property
    def sum_reset_pending(self) -> bool:
        return self._sum_reset_timer.pending

    def start_session(self) -> None:
        """Reset to READY with an empty sum and no pending timers."""
        self._cancel_timers()
        self._state = ScanState.READY
        self._candidate = None
        self._sum = 0
        self._predictions = []
        self._last_announcement = None
        self._phase += 1
        self._sum_window += 1
        logger.info("Scan session started")
        self._publish()

    def end_session(self) -> None:
        """Cancel every pending timer; the machine ignores them afterwards."""
        self._cancel_timers()
        self._phase += 1
        self._sum_window += 1
        logger.info(f"Scan session ended (sum: {self._sum})")

    def process_frame(self, predictions: Sequence[ClassPrediction]) -> ScanSnapshot:
        """Advance the machine with one frame of classifier output.

        Args:
            predictions: One prediction per known class, in classifier order.

        Returns:
            Snapshot of the session after this frame.
        """
        self._predictions = list(predictions)
        best = best_prediction(self._predictions)

        if best is not None:
            if self._state is ScanState.READY:
                self._handle_ready(best)
            elif self._state is ScanState.VALIDATING:
                self._handle_validating(best)
            elif self._state is ScanState.CONFIRMED:
                self._handle_confirmed()
            # COOLDOWN: frames are ignored until the cooldown timer fires

        return self._publish()

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(
            state=self._state,
            candidate_label=self._candidate,
            accumulated_sum=self._sum,
            predictions=list(self._predictions),
            last_announcement=self._last_announcement,
        )

    def _handle_ready(self, best: ClassPrediction) -> None:
        if best.confidence <= self.config.threshold or best.label == self.config.empty_label:
            return

        self._candidate = best.label
        self._transition(ScanState.VALIDATING)
        phase = self._phase
        self._validation_timer.arm(
            self.config.validate_time, lambda: self._on_validation_elapsed(phase)
        )
        logger.debug(f"Validating {best.label} ({best.confidence:.2f})")

    def _handle_validating(self, best: ClassPrediction) -> None:
        if best.label == self._candidate:
            return

        logger.debug(f"Banknote changed from {self._candidate} to {best.label}, resetting")
        self._validation_timer.cancel()
        self._candidate = None
        self._transition(ScanState.READY)

    def _handle_confirmed(self) -> None:
        value = self.catalog.value_of(self._candidate)

        if value <= 0:
            logger.warning(f"Confirmed label {self._candidate!r} has no banknote value, ignoring")
            self._candidate = None
            self._transition(ScanState.READY)
            return

        self._sum_reset_timer.cancel()
        self._sum += value
        logger.info(f"Banknote counted: {self._candidate} ({value}) - Sum: {self._sum}")
        self._announce(format_value(value))

        self._transition(ScanState.COOLDOWN)
        phase = self._phase
        self._cooldown_timer.arm(
            self.config.scan_wait_time, lambda: self._on_cooldown_elapsed(phase)
        )

        if self._sum > 0:
            self._sum_window += 1
            window = self._sum_window
            self._sum_reset_timer.arm(
                self.config.sum_reset_time, lambda: self._on_sum_reset_elapsed(window)
            )

    def _on_validation_elapsed(self, phase: int) -> None:
        if phase != self._phase or self._state is not ScanState.VALIDATING:
            logger.debug("Ignoring stale validation timer")
            return
        self._transition(ScanState.CONFIRMED)
        self._publish()

    def _on_cooldown_elapsed(self, phase: int) -> None:
        if phase != self._phase or self._state is not ScanState.COOLDOWN:
            logger.debug("Ignoring stale cooldown timer")
            return
        self._candidate = None
        self._transition(ScanState.READY)
        self._publish()

    def _on_sum_reset_elapsed(self, window: int) -> None:
        if window != self._sum_window:
            logger.debug("Ignoring stale sum reset timer")
            return
        logger.info(f"No banknote for {self.config.sum_reset_time:.0f}s, clearing the sum ({self._sum})")
        self._announce(format_sum(self._sum))
        self._sum = 0
        self._publish()

    def _transition(self, state: ScanState) -> None:
        logger.info(f"Switching to {state.value} state")
        self._state = state
        self._phase += 1

    def _announce(self, text: str) -> None:
        self._last_announcement = text
        self._announcer.speak(text)

    def _cancel_timers(self) -> None:
        self._validation_timer.cancel()
        self._cooldown_timer.cancel()
        self._sum_reset_timer.cancel()

    def _publish(self) -> ScanSnapshot:
        snapshot = self.snapshot()
        self._memory.update_snapshot(snapshot)
        return snapshot

    def __enter__(self) -> "ScanStateMachine":
        """Context manager entry."""
        self.start_session()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.end_session()
