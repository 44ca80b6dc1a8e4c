"""
Model Training Stage

Wraps a pluggable training backend. A backend is any object with a
``train(samples)`` method returning a ``TrainingResult`` (or a mapping
with ``model_id`` and ``metrics``). Without a backend the stage
simulates training so every job still yields a well-formed metrics
object.

Usage Example:
    >>> from retraining.training import SklearnTrainer, TrainingStage
    >>> stage = TrainingStage(trainer=SklearnTrainer(n_estimators=50))
    >>> result = stage.run(samples, previous_model_id=None)
    >>> result.metrics.accuracy
"""

from typing import Dict, List, Optional, Union, Any, Mapping
from abc import ABC, abstractmethod
from dataclasses import dataclass
import time

import numpy as np
from loguru import logger
from sklearn.ensemble import IsolationForest, RandomForestClassifier
from sklearn.metrics import (
    accuracy_score, f1_score, log_loss, precision_score, recall_score, roc_auc_score
)
from sklearn.model_selection import train_test_split

from retraining.data_collection import samples_to_frame
from retraining.errors import TrainingError
from retraining.types import IdGenerator, TrainingMetrics, TrainingSample


@dataclass
class TrainingResult:
    """A trained model's identifier and metrics."""
    model_id: str
    metrics: TrainingMetrics
    model: Any = None


class ModelTrainer(ABC):
    """Training backend contract."""

    @abstractmethod
    def train(self, samples: List[TrainingSample]) -> TrainingResult:
        """Train a model on ``samples``."""


class SklearnTrainer(ModelTrainer):
    """
    Scikit-learn training backend.

    Fits a random forest on the labeled samples when both classes are
    present, holding out ``test_size`` of them for metrics. Otherwise it
    fits an isolation forest on all samples and reports only the loss
    (mean anomaly score).

    Trained estimators are kept in ``models`` keyed by model id.
    """

    def __init__(
        self,
        n_estimators: int = 100,
        test_size: float = 0.2,
        min_labeled_samples: int = 20,
        random_state: int = 42,
        id_generator: Optional[IdGenerator] = None
    ):
        self.n_estimators = n_estimators
        self.test_size = test_size
        self.min_labeled_samples = min_labeled_samples
        self.random_state = random_state
        self.generate_id = id_generator or IdGenerator()
        self.models: Dict[str, Any] = {}

    def train(self, samples: List[TrainingSample]) -> TrainingResult:
        if not samples:
            raise TrainingError("No samples to train on")

        start = time.perf_counter()
        frame = samples_to_frame(samples)
        X = frame.drop(columns=['label', 'timestamp']).fillna(0.0)
        labeled = frame['label'].notna()
        y = frame.loc[labeled, 'label'].astype(int)

        if labeled.sum() >= self.min_labeled_samples and y.nunique() == 2:
            model, metrics = self._train_supervised(X[labeled], y)
        else:
            logger.info("Not enough labeled data for supervised training, fitting IsolationForest")
            model, metrics = self._train_unsupervised(X)

        metrics.training_duration_ms = (time.perf_counter() - start) * 1000
        metrics.samples_used = len(samples)

        model_id = self.generate_id("model")
        self.models[model_id] = model
        logger.info(f"Trained {type(model).__name__} {model_id} on {len(samples)} samples")
        return TrainingResult(model_id=model_id, metrics=metrics, model=model)

    def _train_supervised(self, X, y):
        stratify = y if y.value_counts().min() >= 2 else None
        X_train, X_test, y_train, y_test = train_test_split(
            X, y, test_size=self.test_size, random_state=self.random_state, stratify=stratify
        )

        model = RandomForestClassifier(n_estimators=self.n_estimators, random_state=self.random_state)
        model.fit(X_train, y_train)

        proba = model.predict_proba(X_test)[:, list(model.classes_).index(1)]
        y_pred = (proba >= 0.5).astype(int)

        auc = None
        if y_test.nunique() == 2:
            auc = float(roc_auc_score(y_test, proba))

        metrics = TrainingMetrics(
            loss=float(log_loss(y_test, proba, labels=[0, 1])),
            accuracy=float(accuracy_score(y_test, y_pred)),
            precision=float(precision_score(y_test, y_pred, zero_division=0)),
            recall=float(recall_score(y_test, y_pred, zero_division=0)),
            f1_score=float(f1_score(y_test, y_pred, zero_division=0)),
            auc_roc=auc
        )
        return model, metrics

    def _train_unsupervised(self, X):
        model = IsolationForest(n_estimators=self.n_estimators, random_state=self.random_state)
        model.fit(X)
        scores = -model.score_samples(X)
        return model, TrainingMetrics(loss=float(np.mean(scores)))


class TrainingStage:
    """
    Runs the configured backend or simulates training.

    The simulated metrics draw accuracy from 75-95%, precision from
    70-95% and recall from 65-95%, with F1 derived from the latter two.
    Quality metrics are None when no sample is labeled.
    """

    def __init__(
        self,
        trainer: Optional[ModelTrainer] = None,
        rng: Optional[np.random.Generator] = None,
        id_generator: Optional[IdGenerator] = None
    ):
        self.trainer = trainer
        self.rng = rng or np.random.default_rng()
        self.generate_id = id_generator or IdGenerator()

    def run(self, samples: List[TrainingSample], previous_model_id: Optional[str] = None) -> TrainingResult:
        """
        Train a new model.

        Raises:
            TrainingError: If the backend returns no model id or reuses
                the previous one
        """
        if self.trainer is None:
            result = self.simulate(samples)
        else:
            result = self._normalize(self.trainer.train(samples))

        if not result.model_id:
            raise TrainingError("Training backend returned no model id")
        if previous_model_id is not None and result.model_id == previous_model_id:
            raise TrainingError(f"Training backend reused the deployed model id {previous_model_id}")
        return result

    def simulate(self, samples: List[TrainingSample]) -> TrainingResult:
        rng = self.rng
        has_labels = any(s.label is not None for s in samples)

        accuracy = 0.75 + rng.random() * 0.2
        precision = 0.7 + rng.random() * 0.25
        recall = 0.65 + rng.random() * 0.3
        f1 = 2 * precision * recall / (precision + recall)
        auc = 0.8 + rng.random() * 0.15

        metrics = TrainingMetrics(
            loss=0.1 + rng.random() * 0.1,
            accuracy=accuracy if has_labels else None,
            precision=precision if has_labels else None,
            recall=recall if has_labels else None,
            f1_score=f1 if has_labels else None,
            auc_roc=auc if has_labels else None,
            training_duration_ms=1000 + rng.random() * 5000,
            samples_used=len(samples)
        )
        return TrainingResult(model_id=self.generate_id("model"), metrics=metrics)

    @staticmethod
    def _normalize(result: Union[TrainingResult, Mapping[str, Any]]) -> TrainingResult:
        if isinstance(result, TrainingResult):
            return result
        if isinstance(result, Mapping):
            metrics = result.get('metrics')
            if isinstance(metrics, Mapping):
                metrics = TrainingMetrics(**metrics)
            if not isinstance(metrics, TrainingMetrics):
                raise TrainingError("Training backend returned no metrics")
            return TrainingResult(model_id=result.get('model_id'), metrics=metrics, model=result.get('model'))
        raise TrainingError(f"Unsupported training result: {type(result).__name__}")
