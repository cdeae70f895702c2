"""One-shot, cancellable timers for the scan state machine.

このモジュールは状態遷移を遅延実行するタイマーを提供する責務を担う。

設計判断:
- ワンショットのみ: 検証タイマーを周期タイマーで代用しない
  → 二重遷移の原因を根本から排除
- 2種類の実装:
  - PolledTimerService: フレームループがpoll()を呼ぶとき、期限切れのコールバックを実行
    → カメラパイプラインのスレッド上で、フレーム処理の合間にだけ動く
  - AsyncioTimerService: loop.call_later()を使用
    → WebSocketのイベントループ上で、フレームメッセージの合間に動く
- TimerSlot: タイマー種別ごとに1つだけハンドルを所有
  → 再設定時は前のタイマーを必ずキャンセル
- cancel()は冪等: 発火済み・キャンセル済みでも何もしない
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    """Handle to a scheduled callback."""

    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class TimerService(Protocol):
    """Schedules one-shot callbacks."""

    def after(self, delay: float, callback: Callback) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> None: ...


class PolledTimer:
    """Timer scheduled on a PolledTimerService."""

    def __init__(self, deadline: float, callback: Callback) -> None:
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class PolledTimerService:
    """Timer service driven by explicit poll() calls.

    Callbacks run synchronously inside poll(), in deadline order, on the
    thread that polls. Timers armed by a callback with zero delay run in
    the same poll() call.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        """Initialize the timer service.

        Args:
            clock: Monotonic clock in seconds. Defaults to time.monotonic.
        """
        self._clock = clock or time.monotonic
        self._heap: list[tuple[float, int, PolledTimer]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._clock()

    def after(self, delay: float, callback: Callback) -> PolledTimer:
        """Schedule callback to run once, delay seconds from now."""
        timer = PolledTimer(self._clock() + max(0.0, delay), callback)
        heapq.heappush(self._heap, (timer.deadline, next(self._sequence), timer))
        return timer

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    def poll(self) -> int:
        """Run every due callback.

        Returns:
            Number of callbacks that ran.
        """
        ran = 0
        while self._heap:
            deadline, _, timer = self._heap[0]
            if deadline > self._clock():
                break
            heapq.heappop(self._heap)
            if not timer.active:
                continue
            timer.fired = True
            timer.callback()
            ran += 1
        return ran

    @property
    def pending(self) -> int:
        """Number of timers that have neither fired nor been cancelled."""
        return sum(1 for _, _, timer in self._heap if timer.active)

    def next_deadline(self) -> Optional[float]:
        """Earliest deadline among active timers, None if idle."""
        deadlines = [timer.deadline for _, _, timer in self._heap if timer.active]
        return min(deadlines) if deadlines else None


class AsyncioTimer:
    """Timer scheduled on an asyncio event loop."""

    def __init__(self, callback: Callback) -> None:
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self.fired = False

    def _run(self) -> None:
        self.fired = True
        self._callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    @property
    def active(self) -> bool:
        return self._handle is not None and not self.fired and not self._handle.cancelled()


class AsyncioTimerService:
    """Timer service backed by loop.call_later."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def after(self, delay: float, callback: Callback) -> AsyncioTimer:
        timer = AsyncioTimer(callback)
        timer._handle = self._loop.call_later(max(0.0, delay), timer._run)
        return timer

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()


class TimerSlot:
    """Owns at most one pending timer of a given kind.

    Arming the slot cancels whatever timer it held before.
    """

    def __init__(self, timers: TimerService, name: str) -> None:
        self._timers = timers
        self.name = name
        self._handle: Optional[TimerHandle] = None

    def arm(self, delay: float, callback: Callback) -> None:
        self.cancel()
        self._handle = self._timers.after(delay, callback)
        logger.debug(f"Armed {self.name} timer ({delay:.1f}s)")

    def cancel(self) -> None:
        if self._handle is not None:
            if self._handle.active:
                logger.debug(f"Cancelled {self.name} timer")
            self._timers.cancel(self._handle)
            self._handle = None

    @property
    def pending(self) -> bool:
        return self._handle is not None and self._handle.active
