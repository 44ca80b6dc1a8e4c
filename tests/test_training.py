"""
Test suite for the training stage and the scikit-learn backend.
"""

import numpy as np
import pytest
from sklearn.ensemble import IsolationForest, RandomForestClassifier

from conftest import StubTrainer, make_samples
from retraining.config import DataCollectionPolicy
from retraining.data_collection import SyntheticDataGenerator
from retraining.errors import TrainingError
from retraining.training import SklearnTrainer, TrainingResult, TrainingStage
from retraining.types import TrainingMetrics


class TestSimulatedTraining:
    """Test training without a backend."""

    def test_metrics_within_ranges(self, clock):
        stage = TrainingStage(rng=np.random.default_rng(0))
        samples = make_samples(clock, 50)

        for _ in range(20):
            metrics = stage.run(samples).metrics
            assert 0.75 <= metrics.accuracy < 0.95
            assert 0.7 <= metrics.precision < 0.95
            assert 0.65 <= metrics.recall < 0.95
            assert 0.8 <= metrics.auc_roc < 0.95
            assert 0.1 <= metrics.loss < 0.2
            assert 1000 <= metrics.training_duration_ms < 6000
            assert metrics.f1_score == pytest.approx(
                2 * metrics.precision * metrics.recall / (metrics.precision + metrics.recall)
            )
            assert metrics.samples_used == 50

    def test_unlabeled_samples_have_no_quality_metrics(self, clock):
        stage = TrainingStage(rng=np.random.default_rng(0))

        metrics = stage.run(make_samples(clock, 10, labeled=False)).metrics

        assert metrics.accuracy is None
        assert metrics.precision is None
        assert metrics.auc_roc is None
        assert metrics.loss is not None

    def test_fresh_model_ids(self, clock):
        stage = TrainingStage(rng=np.random.default_rng(0))
        samples = make_samples(clock, 5)
        ids = {stage.run(samples).model_id for _ in range(5)}
        assert len(ids) == 5
        assert all(model_id.startswith("model_") for model_id in ids)


class TestTrainingBackends:

    def test_backend_result_passes_through(self, clock):
        trainer = StubTrainer(accuracy=0.9)
        stage = TrainingStage(trainer=trainer)

        result = stage.run(make_samples(clock, 10), previous_model_id="model_old")

        assert result.model_id == "model_stub_1"
        assert result.metrics.accuracy == 0.9
        assert trainer.calls == 1

    def test_mapping_result_is_normalized(self, clock):
        class MappingTrainer:
            def train(self, samples):
                return {'model_id': 'model_custom', 'metrics': {'loss': 0.3, 'accuracy': 0.81}}

        result = TrainingStage(trainer=MappingTrainer()).run(make_samples(clock, 10))

        assert isinstance(result, TrainingResult)
        assert result.model_id == 'model_custom'
        assert result.metrics == TrainingMetrics(loss=0.3, accuracy=0.81)

    def test_reused_model_id_rejected(self, clock):
        stage = TrainingStage(trainer=StubTrainer())
        with pytest.raises(TrainingError, match="reused"):
            stage.run(make_samples(clock, 10), previous_model_id="model_stub_1")

    @pytest.mark.parametrize("returned", [
        {'model_id': '', 'metrics': {'loss': 0.1}},
        {'model_id': 'model_x'},
        "model_x",
    ])
    def test_malformed_results_rejected(self, clock, returned):
        class BadTrainer:
            def train(self, samples):
                return returned

        with pytest.raises(TrainingError):
            TrainingStage(trainer=BadTrainer()).run(make_samples(clock, 10))

    def test_backend_errors_propagate(self, clock):
        stage = TrainingStage(trainer=StubTrainer(error=RuntimeError("GPU unavailable")))
        with pytest.raises(RuntimeError, match="GPU unavailable"):
            stage.run(make_samples(clock, 10))


class TestSklearnTrainer:
    """Test the scikit-learn backend on synthetic wallet features."""

    @pytest.fixture
    def labeled_samples(self, clock):
        generator = SyntheticDataGenerator(rng=np.random.default_rng(11), clock=clock)
        return generator.generate(DataCollectionPolicy(labeled_only=True))

    def test_supervised_training(self, labeled_samples):
        trainer = SklearnTrainer(n_estimators=10)

        result = trainer.train(labeled_samples)

        assert isinstance(result.model, RandomForestClassifier)
        assert trainer.models[result.model_id] is result.model
        metrics = result.metrics
        assert metrics.accuracy > 0.8
        assert 0 <= metrics.precision <= 1
        assert 0 <= metrics.recall <= 1
        assert 0 <= metrics.f1_score <= 1
        assert metrics.auc_roc is not None
        assert metrics.loss >= 0
        assert metrics.samples_used == len(labeled_samples)
        assert metrics.training_duration_ms > 0

    def test_unlabeled_falls_back_to_isolation_forest(self, clock):
        trainer = SklearnTrainer(n_estimators=10)

        result = trainer.train(make_samples(clock, 40, labeled=False))

        assert isinstance(result.model, IsolationForest)
        assert result.metrics.accuracy is None
        assert result.metrics.loss > 0

    def test_single_class_falls_back_to_isolation_forest(self, clock):
        samples = make_samples(clock, 40, anomaly_every=1000)
        samples[0].label = False

        result = SklearnTrainer(n_estimators=10).train(samples)

        assert isinstance(result.model, IsolationForest)

    def test_empty_samples_rejected(self):
        with pytest.raises(TrainingError):
            SklearnTrainer().train([])

    def test_works_inside_training_stage(self, labeled_samples):
        stage = TrainingStage(trainer=SklearnTrainer(n_estimators=10))
        first = stage.run(labeled_samples)
        second = stage.run(labeled_samples, previous_model_id=first.model_id)
        assert second.model_id != first.model_id
