"""Shared memory for the latest scan snapshot.

このモジュールはパイプラインとAPIサーバー間でスキャン状態を共有する責務を担う。

設計判断:
- Singletonパターン: グローバルに一意な状態を保証
  - パイプラインスレッドとAPIの両方から同じインスタンスにアクセス
  - テスト時にreset_instance()でリセット可能

- RLock（再入可能ロック）を採用:
  - 同一スレッドからの再帰的なロック取得を許可

- get_snapshot()でコピーを返す:
  - 外部からの直接変更を防止
  - 状態機械本体はパイプライン側のスレッドだけが触る

┌─────────────────┐     ┌─────────────────┐     ┌─────────────────┐
│ Pipeline Thread │────▶│  SharedMemory   │◀────│ API Server      │
│ (スナップショット更新) │     │  (Singleton)    │     │ (状態参照)       │
└─────────────────┘     └─────────────────┘     └─────────────────┘
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from .state import ScanSnapshot, ScanState


class SharedMemory:
    """Thread-safe holder of the most recent ScanSnapshot.

    Also carries an optional reset hook so the API can restart the
    running scan session without owning the state machine.
    """

    _instance: Optional["SharedMemory"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "SharedMemory":
        """Singleton pattern to ensure only one instance exists."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the shared memory."""
        if self._initialized:
            return
        self._snapshot = ScanSnapshot()
        self._snapshot_lock = threading.RLock()
        self._reset_hooks: list[Callable[[], None]] = []
        self._initialized = True

    def get_snapshot(self) -> ScanSnapshot:
        """Get a copy of the current snapshot."""
        with self._snapshot_lock:
            return replace(self._snapshot, predictions=list(self._snapshot.predictions))

    def update_snapshot(self, snapshot: ScanSnapshot) -> None:
        """Replace the current snapshot."""
        with self._snapshot_lock:
            snapshot.last_updated = datetime.now()
            self._snapshot = snapshot

    def get_state(self) -> ScanState:
        """Get the current scan state."""
        with self._snapshot_lock:
            return self._snapshot.state

    def get_sum(self) -> int:
        """Get the accumulated sum."""
        with self._snapshot_lock:
            return self._snapshot.accumulated_sum

    def get_snapshot_dict(self) -> dict:
        """Get the current snapshot as a dictionary."""
        with self._snapshot_lock:
            return self._snapshot.to_dict()

    def add_reset_hook(self, hook: Callable[[], None]) -> None:
        """Register the callable that restarts a scan session.

        The most recently added hook that is still registered receives
        reset requests.
        """
        with self._snapshot_lock:
            self._reset_hooks.append(hook)

    def remove_reset_hook(self, hook: Callable[[], None]) -> None:
        """Unregister a hook added by add_reset_hook. Unknown hooks are ignored."""
        with self._snapshot_lock:
            self._reset_hooks = [h for h in self._reset_hooks if h != hook]

    def request_reset(self) -> bool:
        """Ask the active session to restart.

        Returns:
            True if a session was registered and reset, False otherwise.
        """
        with self._snapshot_lock:
            hook = self._reset_hooks[-1] if self._reset_hooks else None
        if hook is None:
            self.reset()
            return False
        hook()
        return True

    def reset(self) -> None:
        """Reset the snapshot to initial values."""
        with self._snapshot_lock:
            self._snapshot = ScanSnapshot()

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance._initialized = False
                cls._instance._snapshot = ScanSnapshot()
                cls._instance._reset_hooks = []


# Convenience function to get the shared memory instance
def get_shared_memory() -> SharedMemory:
    """Get the global shared memory instance."""
    return SharedMemory()
