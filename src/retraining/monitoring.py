"""
Production Performance Tracking

A performance source for the orchestrator. Prediction batches and the
outcomes later observed for them are logged per model type; the
tracker reports rolling accuracy over the most recent window.

Usage Example:
    >>> tracker = PerformanceTracker(window_size=500)
    >>> tracker.log_predictions(RetrainableModelType.INSIDER_PREDICTOR, [1, 0, 1], [1, 0, 0])
    >>> tracker.accuracy_of(RetrainableModelType.INSIDER_PREDICTOR)
"""

from typing import Dict, Optional, Any, Callable, Sequence
from collections import deque
from dataclasses import dataclass
from datetime import datetime
import threading

import numpy as np
from loguru import logger
from sklearn.metrics import accuracy_score

from retraining.types import RetrainableModelType


@dataclass
class AccuracySnapshot:
    """Rolling accuracy after one logged batch."""
    model_type: RetrainableModelType
    accuracy: float
    n_samples: int
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'model_type': self.model_type.value,
            'accuracy': self.accuracy,
            'n_samples': self.n_samples,
            'timestamp': self.timestamp.isoformat()
        }


class PerformanceTracker:
    """
    Rolling-window accuracy per model type.

    Args:
        window_size: Number of most recent outcomes kept per model type
        min_samples: Outcomes required before accuracy is reported
        history_size: Accuracy snapshots kept per model type
        clock: Source of the current time
    """

    def __init__(
        self,
        window_size: int = 1000,
        min_samples: int = 10,
        history_size: int = 1000,
        clock: Callable[[], datetime] = datetime.now
    ):
        if window_size < 1 or history_size < 1:
            raise ValueError(f"Invalid window or history size: {window_size}, {history_size}")
        self.window_size = window_size
        self.min_samples = min_samples
        self.history_size = history_size
        self.clock = clock

        self._predictions: Dict[RetrainableModelType, deque] = {}
        self._actuals: Dict[RetrainableModelType, deque] = {}
        self.accuracy_history: Dict[RetrainableModelType, deque] = {}
        self._lock = threading.Lock()

    def log_predictions(
        self,
        model_type: RetrainableModelType,
        predictions: Sequence[Any],
        actuals: Sequence[Any]
    ) -> Optional[float]:
        """
        Record a batch of predictions with their observed outcomes.

        Returns:
            Rolling accuracy after the batch, or None below ``min_samples``
        """
        model_type = RetrainableModelType(model_type)
        predictions = np.asarray(predictions)
        actuals = np.asarray(actuals)
        if predictions.shape != actuals.shape:
            raise ValueError(
                f"Predictions and actuals differ in shape: {predictions.shape} vs {actuals.shape}"
            )

        with self._lock:
            preds = self._predictions.setdefault(model_type, deque(maxlen=self.window_size))
            acts = self._actuals.setdefault(model_type, deque(maxlen=self.window_size))
            preds.extend(predictions.ravel().tolist())
            acts.extend(actuals.ravel().tolist())

            accuracy = self._accuracy(model_type)
            if accuracy is not None:
                history = self.accuracy_history.setdefault(model_type, deque(maxlen=self.history_size))
                history.append(AccuracySnapshot(
                    model_type=model_type,
                    accuracy=accuracy,
                    n_samples=len(acts),
                    timestamp=self.clock()
                ))

        logger.debug(f"Logged {predictions.size} outcomes for {model_type.value}, accuracy {accuracy}")
        return accuracy

    def accuracy_of(self, model_type: RetrainableModelType) -> Optional[float]:
        """Current rolling accuracy, or None when too few outcomes are known."""
        with self._lock:
            return self._accuracy(RetrainableModelType(model_type))

    def sample_count(self, model_type: RetrainableModelType) -> int:
        with self._lock:
            return len(self._actuals.get(RetrainableModelType(model_type), ()))

    def reset(self, model_type: Optional[RetrainableModelType] = None) -> None:
        """Forget outcomes for one model type, or for all of them."""
        with self._lock:
            if model_type is None:
                self._predictions.clear()
                self._actuals.clear()
                self.accuracy_history.clear()
                return
            for store in (self._predictions, self._actuals, self.accuracy_history):
                store.pop(model_type, None)

    def _accuracy(self, model_type: RetrainableModelType) -> Optional[float]:
        acts = self._actuals.get(model_type)
        if not acts or len(acts) < self.min_samples:
            return None
        return float(accuracy_score(list(acts), list(self._predictions[model_type])))
