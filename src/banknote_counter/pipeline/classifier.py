"""Teachable Machine image classifier.

Runs the TFLite export of a Teachable Machine image project and returns
one ClassPrediction per label, in label order.

Design decisions:
- Lazy loading: the TFLite interpreter is created on first predict()
  so that importing the pipeline (and the tests) never needs the runtime.
- Preprocessing mirrors the Teachable Machine export: 224x224 RGB,
  scaled to [-1, 1].
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence

import cv2
import numpy as np

from ..config import ClassifierConfig, get_config
from ..shared.state import ClassPrediction

logger = logging.getLogger(__name__)


class FrameClassifier(Protocol):
    """Maps an image frame to one prediction per known class."""

    def predict(self, frame: np.ndarray) -> list[ClassPrediction]: ...


def parse_labels(text: str) -> list[str]:
    """Parse a Teachable Machine labels.txt.

    Lines look like "0 oneDollar"; the leading class index is dropped.
    Blank lines are ignored.
    """
    labels = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        index, _, name = line.partition(" ")
        labels.append(name.strip() if index.isdigit() and name else line)
    return labels


def to_predictions(labels: Sequence[str], scores: Sequence[float]) -> list[ClassPrediction]:
    """Pair labels with scores, clamping scores into [0, 1]."""
    if len(labels) != len(scores):
        raise ValueError(f"Model returned {len(scores)} scores for {len(labels)} labels")
    return [
        ClassPrediction(label=label, confidence=min(1.0, max(0.0, float(score))))
        for label, score in zip(labels, scores)
    ]


def _load_interpreter(model_path: str, num_threads: int):
    """Create a TFLite interpreter."""
    from tflite_runtime.interpreter import Interpreter

    interpreter = Interpreter(model_path=model_path, num_threads=num_threads)
    interpreter.allocate_tensors()
    return interpreter


class TeachableMachineClassifier:
    """Classify frames with a Teachable Machine TFLite model."""

    def __init__(self, config: Optional[ClassifierConfig] = None, interpreter=None):
        """Initialize the classifier.

        Args:
            config: Classifier configuration. If None, uses global config.
            interpreter: Preloaded interpreter (for testing). If None, loaded lazily.
        """
        self.config = config or get_config().classifier
        self._interpreter = interpreter
        self._labels: Optional[list[str]] = None

    @property
    def labels(self) -> list[str]:
        if self._labels is None:
            path = Path(self.config.labels_path)
            if not path.exists():
                raise FileNotFoundError(f"Labels file not found: {path}")
            self._labels = parse_labels(path.read_text(encoding="utf-8"))
            logger.info(f"Loaded {len(self._labels)} labels: {self._labels}")
        return self._labels

    def _get_interpreter(self):
        if self._interpreter is None:
            if not Path(self.config.model_path).exists():
                raise FileNotFoundError(f"Model not found: {self.config.model_path}")
            logger.info(f"Loading TFLite model: {self.config.model_path}")
            self._interpreter = _load_interpreter(self.config.model_path, self.config.num_threads)
            logger.info("TFLite model loaded")
        return self._interpreter

    def preprocess(self, frame: np.ndarray, height: int, width: int) -> np.ndarray:
        """Convert a BGR frame to the model's input tensor."""
        resized = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        normalized = rgb.astype(np.float32) / 127.5 - 1.0
        return np.expand_dims(normalized, axis=0)

    def predict(self, frame: np.ndarray) -> list[ClassPrediction]:
        """Classify one frame.

        Returns:
            One prediction per label, in labels.txt order.
        """
        interpreter = self._get_interpreter()
        input_details = interpreter.get_input_details()[0]
        output_details = interpreter.get_output_details()[0]

        _, height, width, _ = input_details["shape"]
        tensor = self.preprocess(frame, int(height), int(width))
        interpreter.set_tensor(input_details["index"], tensor.astype(input_details["dtype"]))
        interpreter.invoke()
        scores = interpreter.get_tensor(output_details["index"])[0]

        return to_predictions(self.labels, scores)
