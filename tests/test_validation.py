"""
Test suite for the validation gates.
"""

import numpy as np
import pytest

from conftest import StubPerformanceSource, make_samples
from retraining.config import ValidationPolicy
from retraining.types import RetrainableModelType, TrainingMetrics, ValidationStrategy
from retraining.validation import (
    DEFAULT_AUC_ROC,
    DEFAULT_F1,
    DEFAULT_PRECISION,
    DEFAULT_RECALL,
    ValidationStage,
    evaluate_gates,
)

MODEL = RetrainableModelType.INSIDER_PREDICTOR


class TestEvaluateGates:
    """Gates are checked in order and only the first failure is reported."""

    def test_pass(self):
        assert evaluate_gates(ValidationPolicy(), 0.78, 0.82) == (True, None)

    def test_equal_accuracy_passes_by_default(self):
        assert evaluate_gates(ValidationPolicy(), 0.8, 0.8) == (True, None)

    def test_below_minimum_accuracy(self):
        passed, reason = evaluate_gates(ValidationPolicy(), 0.6, 0.65)
        assert not passed
        assert reason == "New model accuracy (65.0%) below minimum threshold (70.0%)"

    def test_insufficient_improvement(self):
        passed, reason = evaluate_gates(ValidationPolicy(min_improvement=0.02), 0.78, 0.79)
        assert not passed
        assert reason == "Improvement (1.00%) below minimum required (2.00%)"

    def test_excessive_degradation(self):
        policy = ValidationPolicy(min_improvement=-0.1, max_degradation=-0.05)
        passed, reason = evaluate_gates(policy, 0.8, 0.72)
        assert not passed
        assert reason == "Model degradation (-8.00%) exceeds maximum allowed (-5.00%)"

    def test_tolerated_degradation(self):
        policy = ValidationPolicy(min_improvement=-0.1, max_degradation=-0.05)
        assert evaluate_gates(policy, 0.8, 0.77) == (True, None)

    def test_minimum_accuracy_reported_first(self):
        passed, reason = evaluate_gates(ValidationPolicy(min_improvement=0.05), 0.9, 0.6)
        assert not passed
        assert reason.startswith("New model accuracy")


class TestValidationStage:

    def test_result_fields(self, clock):
        stage = ValidationStage(performance_source=StubPerformanceSource(0.78), clock=clock)
        metrics = TrainingMetrics(accuracy=0.82, precision=0.9, recall=0.7, f1_score=0.79, auc_roc=0.88)

        result = stage.validate(MODEL, ValidationPolicy(), metrics, make_samples(clock, 100))

        assert result.passed
        assert result.failure_reason is None
        assert result.strategy == ValidationStrategy.HOLDOUT_VALIDATION
        assert result.old_accuracy == 0.78
        assert result.new_accuracy == 0.82
        assert result.improvement == pytest.approx(0.04)
        assert result.improvement_percent == pytest.approx(0.04 / 0.78 * 100)
        assert result.samples_used == 20
        assert result.metrics == {'precision': 0.9, 'recall': 0.7, 'f1_score': 0.79, 'auc_roc': 0.88}
        assert result.validated_at == clock()

    def test_missing_metrics_use_defaults(self, clock):
        stage = ValidationStage(performance_source=StubPerformanceSource(0.78), clock=clock)

        result = stage.validate(MODEL, ValidationPolicy(), TrainingMetrics(accuracy=0.8), make_samples(clock, 10))

        assert result.metrics == {
            'precision': DEFAULT_PRECISION,
            'recall': DEFAULT_RECALL,
            'f1_score': DEFAULT_F1,
            'auc_roc': DEFAULT_AUC_ROC,
        }

    def test_failed_gate_is_reported(self, clock):
        stage = ValidationStage(performance_source=StubPerformanceSource(0.78), clock=clock)

        result = stage.validate(MODEL, ValidationPolicy(), TrainingMetrics(accuracy=0.65), [])

        assert not result.passed
        assert "below minimum threshold" in result.failure_reason
        assert result.samples_used == 0

    def test_zero_old_accuracy(self, clock):
        stage = ValidationStage(performance_source=StubPerformanceSource(0.0), clock=clock)

        result = stage.validate(MODEL, ValidationPolicy(), TrainingMetrics(accuracy=0.8), [])

        assert result.old_accuracy == 0.0
        assert result.improvement_percent == 0.0

    def test_simulated_accuracies(self, clock):
        stage = ValidationStage(
            performance_source=StubPerformanceSource(None),
            rng=np.random.default_rng(5),
            clock=clock
        )

        for _ in range(20):
            assert 0.75 <= stage.current_accuracy(MODEL) < 0.85
            result = stage.validate(MODEL, ValidationPolicy(), None, [])
            assert 0.75 <= result.new_accuracy < 0.95

    def test_per_model_source(self, clock):
        source = StubPerformanceSource(0.8, overrides={RetrainableModelType.SIGNAL_TRACKER: 0.6})
        stage = ValidationStage(performance_source=source, clock=clock)

        assert stage.current_accuracy(RetrainableModelType.SIGNAL_TRACKER) == 0.6
        assert stage.current_accuracy(MODEL) == 0.8
