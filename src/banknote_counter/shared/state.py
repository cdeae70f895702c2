"""Data structures for banknote scan state.

このモジュールはシステム全体で使用するデータ構造を定義する。

設計判断:
- dataclassを採用: 型安全性、自動生成メソッド（__eq__, __repr__）
- 明確な責務分離:
  - ClassPrediction: 1クラス分の分類結果（ラベルと確信度）
  - ScanState: スキャン状態機械の4状態
  - ScanSnapshot: 1フレーム処理後の状態（表示・API用の読み取り専用ビュー）

- ScanSnapshotの設計:
  - 状態機械そのものではなくコピーを公開: APIスレッドから状態を書き換えられない
  - 候補ラベルと合計金額を分離: UIで「確認中: tenDollar」のような表示が可能
  - 直近の読み上げ文を保持: デバッグ・監視が容易
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence


class ScanState(Enum):
    """State of the scan state machine."""

    READY = "ready"  # Waiting for a confident banknote prediction
    VALIDATING = "validating"  # Candidate must stay stable for the validation window
    CONFIRMED = "confirmed"  # Candidate validated, counted on the next frame
    COOLDOWN = "cooldown"  # Dead time so the same note is not counted twice

    @property
    def ordinal(self) -> int:
        return list(ScanState).index(self)


@dataclass(frozen=True)
class ClassPrediction:
    """Classifier output for one known class in one frame."""

    label: str
    confidence: float  # Probability in [0, 1]

    @property
    def display_text(self) -> str:
        """Label line as rendered next to the camera view."""
        return f"{self.label}: {self.confidence:.2f}"

    def to_dict(self) -> dict:
        return {"label": self.label, "confidence": self.confidence}


def best_prediction(predictions: Sequence[ClassPrediction]) -> Optional[ClassPrediction]:
    """Return the most confident prediction.

    Ties go to the earliest entry, since only a strictly greater
    confidence replaces the current best.
    """
    best: Optional[ClassPrediction] = None
    for prediction in predictions:
        if best is None or prediction.confidence > best.confidence:
            best = prediction
    return best


@dataclass
class ScanSnapshot:
    """The observable state of a scan session after a frame or timer event."""

    state: ScanState = ScanState.READY
    candidate_label: Optional[str] = None
    accumulated_sum: int = 0
    predictions: list[ClassPrediction] = field(default_factory=list)
    last_announcement: Optional[str] = None
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def best(self) -> Optional[ClassPrediction]:
        return best_prediction(self.predictions)

    def to_dict(self) -> dict:
        """Convert snapshot to dictionary for API response."""
        best = self.best
        return {
            "state": self.state.value,
            "candidate_label": self.candidate_label,
            "accumulated_sum": self.accumulated_sum,
            "predictions": [p.to_dict() for p in self.predictions],
            "labels": [p.display_text for p in self.predictions],
            "best": best.to_dict() if best is not None else None,
            "last_announcement": self.last_announcement,
            "last_updated": self.last_updated.isoformat(),
        }
