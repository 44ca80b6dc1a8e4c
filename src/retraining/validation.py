"""
Model Validation Stage

Compares a freshly trained model's accuracy with the model in
production and decides whether it may be deployed.

Gates are checked in priority order and only the first one that trips
is reported:

1. new accuracy below ``min_accuracy``
2. improvement below ``min_improvement``
3. improvement below ``max_degradation`` (a negative bound)
"""

from typing import Optional, Callable, Protocol, Tuple, List
from datetime import datetime

import numpy as np
from loguru import logger

from retraining.config import ValidationPolicy
from retraining.types import (
    RetrainableModelType,
    TrainingMetrics,
    TrainingSample,
    ValidationResult,
)

# Used when the training backend reports no value
DEFAULT_PRECISION = 0.8
DEFAULT_RECALL = 0.75
DEFAULT_F1 = 0.77
DEFAULT_AUC_ROC = 0.85


class PerformanceSource(Protocol):
    """Reports the accuracy of the model currently in production."""

    def accuracy_of(self, model_type: RetrainableModelType) -> Optional[float]:
        ...


def evaluate_gates(policy: ValidationPolicy, old_accuracy: float, new_accuracy: float) -> Tuple[bool, Optional[str]]:
    """
    Apply the validation gates.

    Returns:
        ``(passed, failure_reason)``; the reason is None when passed
    """
    improvement = new_accuracy - old_accuracy

    if new_accuracy < policy.min_accuracy:
        return False, (
            f"New model accuracy ({new_accuracy * 100:.1f}%) below minimum threshold "
            f"({policy.min_accuracy * 100:.1f}%)"
        )
    if improvement < policy.min_improvement:
        return False, (
            f"Improvement ({improvement * 100:.2f}%) below minimum required "
            f"({policy.min_improvement * 100:.2f}%)"
        )
    if improvement < policy.max_degradation:
        return False, (
            f"Model degradation ({improvement * 100:.2f}%) exceeds maximum allowed "
            f"({policy.max_degradation * 100:.2f}%)"
        )
    return True, None


class ValidationStage:
    """
    Produces one ``ValidationResult`` per job.

    The old accuracy comes from the registered performance source and
    falls back to a simulated 75-85% baseline. The new accuracy comes
    from the training metrics and falls back to a simulated 75-95%.
    """

    def __init__(
        self,
        performance_source: Optional[PerformanceSource] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.performance_source = performance_source
        self.rng = rng or np.random.default_rng()
        self.clock = clock

    def current_accuracy(self, model_type: RetrainableModelType) -> float:
        """Accuracy of the production model, real or simulated."""
        if self.performance_source is not None:
            accuracy = self.performance_source.accuracy_of(model_type)
            if accuracy is not None:
                return float(accuracy)
        return 0.75 + self.rng.random() * 0.1

    def validate(
        self,
        model_type: RetrainableModelType,
        policy: ValidationPolicy,
        metrics: Optional[TrainingMetrics],
        samples: List[TrainingSample]
    ) -> ValidationResult:
        """Run the gates for a newly trained model."""
        holdout = samples[len(samples) - int(len(samples) * policy.holdout_size):]

        old_accuracy = self.current_accuracy(model_type)
        if metrics is not None and metrics.accuracy is not None:
            new_accuracy = float(metrics.accuracy)
        else:
            new_accuracy = 0.75 + self.rng.random() * 0.2

        improvement = new_accuracy - old_accuracy
        improvement_percent = improvement / old_accuracy * 100 if old_accuracy > 0 else 0.0
        passed, failure_reason = evaluate_gates(policy, old_accuracy, new_accuracy)

        def metric(name: str, default: float) -> float:
            value = getattr(metrics, name, None) if metrics is not None else None
            return default if value is None else float(value)

        result = ValidationResult(
            strategy=policy.strategy,
            passed=passed,
            old_accuracy=old_accuracy,
            new_accuracy=new_accuracy,
            improvement=improvement,
            improvement_percent=improvement_percent,
            samples_used=len(holdout),
            metrics={
                'precision': metric('precision', DEFAULT_PRECISION),
                'recall': metric('recall', DEFAULT_RECALL),
                'f1_score': metric('f1_score', DEFAULT_F1),
                'auc_roc': metric('auc_roc', DEFAULT_AUC_ROC),
            },
            validated_at=self.clock(),
            failure_reason=failure_reason
        )

        if passed:
            logger.info(
                f"Validation passed for {model_type.value}: "
                f"{old_accuracy:.4f} -> {new_accuracy:.4f} ({improvement_percent:+.2f}%)"
            )
        else:
            logger.warning(f"Validation failed for {model_type.value}: {failure_reason}")
        return result
