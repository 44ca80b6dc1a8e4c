"""
Test suite for training data collection.
"""

from datetime import timedelta

import numpy as np
import pytest

from conftest import make_samples
from retraining.config import DataCollectionPolicy, FilterCriteria
from retraining.data_collection import (
    FEATURE_NAMES,
    DataCollectionStage,
    SyntheticDataGenerator,
    apply_filter_criteria,
    samples_to_frame,
    synthetic_sample_count,
)
from retraining.types import RetrainableModelType

MODEL = RetrainableModelType.ANOMALY_DETECTION


class TestSyntheticData:
    """Test the synthetic fallback generator."""

    @pytest.mark.parametrize("min_samples,max_samples,expected", [
        (100, 10000, 500),
        (800, 10000, 800),
        (100, 200, 200),
        (0, 0, 0),
    ])
    def test_sample_count(self, min_samples, max_samples, expected):
        policy = DataCollectionPolicy(min_samples=min_samples, max_samples=max_samples)
        assert synthetic_sample_count(policy) == expected

    def test_generated_samples(self, clock):
        generator = SyntheticDataGenerator(rng=np.random.default_rng(7), clock=clock)

        samples = generator.generate(DataCollectionPolicy())

        assert len(samples) == 500
        assert set(samples[0].features) == set(FEATURE_NAMES)
        assert all(s.wallet_address.startswith("0x") and len(s.wallet_address) == 42 for s in samples)
        assert all(s.timestamp <= clock() for s in samples)

        labeled = [s for s in samples if s.label is not None]
        anomaly_rate = sum(s.label for s in labeled) / len(labeled)
        assert 0.05 < anomaly_rate < 0.15
        assert len(labeled) < len(samples)

    def test_anomalies_have_elevated_signals(self, clock):
        generator = SyntheticDataGenerator(rng=np.random.default_rng(7), clock=clock)
        samples = generator.generate(DataCollectionPolicy(labeled_only=True))

        anomalies = [s for s in samples if s.label]
        normal = [s for s in samples if not s.label]

        assert all(s.features['coordination_score'] >= 50 for s in anomalies)
        assert all(s.features['coordination_score'] < 30 for s in normal)

    def test_labeled_only(self, clock):
        generator = SyntheticDataGenerator(rng=np.random.default_rng(7), clock=clock)
        samples = generator.generate(DataCollectionPolicy(labeled_only=True))
        assert all(s.label is not None for s in samples)

    def test_seeded_generation_is_reproducible(self, clock):
        first = SyntheticDataGenerator(rng=np.random.default_rng(3), clock=clock).generate(DataCollectionPolicy())
        second = SyntheticDataGenerator(rng=np.random.default_rng(3), clock=clock).generate(DataCollectionPolicy())
        assert [s.features for s in first] == [s.features for s in second]


class TestFilterCriteria:

    def test_confidence_floor(self, clock):
        samples = make_samples(clock, 3)
        samples[0].metadata['confidence'] = 0.2
        samples[1].metadata['confidence'] = 0.9

        kept = apply_filter_criteria(samples, FilterCriteria(min_confidence=0.5))

        assert [s.sample_id for s in kept] == ["sample_1", "sample_2"]

    def test_category_allow_list(self, clock):
        samples = make_samples(clock, 3)
        samples[0].metadata['category'] = 'politics'
        samples[1].metadata['category'] = 'crypto'

        kept = apply_filter_criteria(samples, FilterCriteria(categories=('politics',)))

        assert [s.sample_id for s in kept] == ["sample_0"]

    def test_exclude_anomalies(self, clock):
        samples = make_samples(clock, 20, anomaly_every=5)
        kept = apply_filter_criteria(samples, FilterCriteria(exclude_anomalies=True))
        assert len(kept) == 16
        assert not any(s.label for s in kept)


class TestDataCollectionStage:

    def test_synthetic_fallback(self, clock):
        stage = DataCollectionStage(rng=np.random.default_rng(1), clock=clock)

        samples = stage.collect(MODEL, DataCollectionPolicy())

        assert stage.uses_synthetic_data
        assert len(samples) == 500
        timestamps = [s.timestamp for s in samples]
        assert timestamps == sorted(timestamps)

    def test_collector_receives_model_type_and_policy(self, clock):
        calls = []

        def collector(model_type, policy):
            calls.append((model_type, policy))
            return make_samples(clock, 5)

        policy = DataCollectionPolicy(min_samples=1)
        stage = DataCollectionStage(collector=collector, clock=clock)

        assert len(stage.collect(MODEL, policy)) == 5
        assert calls == [(MODEL, policy)]
        assert not stage.uses_synthetic_data

    def test_time_window(self, clock):
        samples = make_samples(clock, 10)
        samples[0].timestamp = clock() - timedelta(days=31)
        stage = DataCollectionStage(collector=lambda m, p: samples, clock=clock)

        collected = stage.collect(MODEL, DataCollectionPolicy())

        assert len(collected) == 9
        assert "sample_0" not in {s.sample_id for s in collected}

    def test_labeled_only_drops_unlabeled(self, clock):
        samples = make_samples(clock, 4) + make_samples(clock, 3, labeled=False)
        stage = DataCollectionStage(collector=lambda m, p: samples, clock=clock)

        collected = stage.collect(MODEL, DataCollectionPolicy(labeled_only=True))

        assert len(collected) == 4

    def test_max_samples_keeps_most_recent(self, clock):
        samples = make_samples(clock, 10)
        stage = DataCollectionStage(collector=lambda m, p: list(reversed(samples)), clock=clock)

        collected = stage.collect(MODEL, DataCollectionPolicy(max_samples=3))

        assert [s.sample_id for s in collected] == ["sample_7", "sample_8", "sample_9"]


def test_samples_to_frame(clock):
    samples = make_samples(clock, 4) + make_samples(clock, 1, labeled=False)

    frame = samples_to_frame(samples)

    assert list(frame.columns) == ['win_rate', 'coordination_score', 'label', 'timestamp']
    assert len(frame) == 5
    assert frame['label'].isna().sum() == 1
