"""
Training Data Collection

Pluggable data collection for retraining jobs. A collector is any
callable ``collect(model_type, policy) -> List[TrainingSample]``. When
none is configured the stage falls back to a synthetic generator so the
pipeline stays exercisable without a real data source.

Collected samples are then bounded by the policy: the time window, the
labeled-only flag, the filter criteria and ``max_samples`` (most recent
samples win).
"""

from typing import Dict, List, Optional, Callable, Iterable
from datetime import datetime, timedelta

import numpy as np
import pandas as pd
from loguru import logger

from retraining.config import DataCollectionPolicy, FilterCriteria
from retraining.types import RetrainableModelType, TrainingSample

DataCollector = Callable[[RetrainableModelType, DataCollectionPolicy], List[TrainingSample]]

SYNTHETIC_ANOMALY_RATE = 0.1
SYNTHETIC_BASE_COUNT = 500

FEATURE_NAMES = [
    'wallet_age_days',
    'total_trades',
    'unique_markets',
    'avg_trade_size',
    'trade_size_stddev',
    'buy_sell_ratio',
    'holding_period_avg',
    'volume_spike_count',
    'whale_trade_count',
    'total_volume_usd',
    'off_hours_ratio',
    'pre_event_trade_ratio',
    'timing_consistency_score',
    'market_concentration',
    'niche_market_ratio',
    'political_market_ratio',
    'win_rate',
    'profit_factor',
    'max_consecutive_wins',
    'coordination_score',
    'cluster_membership_count',
    'sybil_risk_score',
]


def synthetic_sample_count(policy: DataCollectionPolicy) -> int:
    """``clamp(max_samples, max(min_samples, 500))``."""
    return min(policy.max_samples, max(policy.min_samples, SYNTHETIC_BASE_COUNT))


class SyntheticDataGenerator:
    """
    Generates wallet-behaviour feature vectors with a fixed anomaly rate.

    Anomalous rows get inflated values on the insider-trading features
    (volume spikes, whale trades, pre-event ratio, win rate, coordination
    and sybil scores). Without ``labeled_only`` roughly 30% of rows are
    left unlabeled.
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now,
        anomaly_rate: float = SYNTHETIC_ANOMALY_RATE
    ):
        self.rng = rng or np.random.default_rng()
        self.clock = clock
        self.anomaly_rate = anomaly_rate

    def __call__(self, model_type: RetrainableModelType, policy: DataCollectionPolicy) -> List[TrainingSample]:
        return self.generate(policy)

    def generate(self, policy: DataCollectionPolicy) -> List[TrainingSample]:
        n = synthetic_sample_count(policy)
        if n <= 0:
            return []

        rng = self.rng
        anomaly = rng.random(n) < self.anomaly_rate

        def uniform(low: float = 0.0, high: float = 1.0) -> np.ndarray:
            return low + rng.random(n) * (high - low)

        def split(anomalous: np.ndarray, normal: np.ndarray) -> np.ndarray:
            return np.where(anomaly, anomalous, normal)

        features: Dict[str, np.ndarray] = {
            'wallet_age_days': uniform(0, 365),
            'total_trades': np.floor(uniform(0, 1000)),
            'unique_markets': np.floor(uniform(0, 50)),
            'avg_trade_size': uniform(0, 10000),
            'trade_size_stddev': uniform(0, 5000),
            'buy_sell_ratio': uniform(),
            'holding_period_avg': uniform(0, 168),
            'volume_spike_count': split(np.floor(uniform(5, 25)), np.floor(uniform(0, 3))),
            'whale_trade_count': split(np.floor(uniform(2, 12)), np.floor(uniform(0, 2))),
            'total_volume_usd': uniform(0, 100000),
            'off_hours_ratio': uniform(),
            'pre_event_trade_ratio': split(uniform(0.5, 1.0), uniform(0, 0.3)),
            'timing_consistency_score': uniform(),
            'market_concentration': uniform(),
            'niche_market_ratio': split(uniform(0.5, 1.0), uniform(0, 0.3)),
            'political_market_ratio': uniform(),
            'win_rate': split(uniform(0.7, 1.0), uniform(0.2, 0.8)),
            'profit_factor': split(uniform(2, 5), uniform(0.5, 2.5)),
            'max_consecutive_wins': split(np.floor(uniform(5, 20)), np.floor(uniform(0, 5))),
            'coordination_score': split(uniform(50, 100), uniform(0, 30)),
            'cluster_membership_count': np.floor(uniform(0, 5)),
            'sybil_risk_score': split(uniform(30, 80), uniform(0, 30)),
        }

        if policy.labeled_only:
            labeled = np.ones(n, dtype=bool)
        else:
            labeled = rng.random(n) > 0.3

        now = self.clock()
        age_ms = rng.random(n) * policy.time_window_ms
        epoch_ms = int(now.timestamp() * 1000)

        samples = []
        for i in range(n):
            samples.append(TrainingSample(
                sample_id=f"sample_{epoch_ms}_{i}",
                wallet_address="0x" + rng.bytes(20).hex(),
                features={name: float(values[i]) for name, values in features.items()},
                label=bool(anomaly[i]) if labeled[i] else None,
                timestamp=now - timedelta(milliseconds=float(age_ms[i])),
                metadata={'synthetic': True}
            ))
        return samples


def apply_filter_criteria(samples: Iterable[TrainingSample], criteria: FilterCriteria) -> List[TrainingSample]:
    """
    Apply the policy's filter criteria.

    The confidence floor and category allow-list read ``confidence`` and
    ``category`` from sample metadata; a sample without a confidence
    value passes the floor, a sample without a category fails an
    allow-list. Anomaly exclusion drops samples labeled anomalous.
    """
    kept = []
    allowed = set(criteria.categories) if criteria.categories is not None else None
    for sample in samples:
        confidence = sample.metadata.get('confidence')
        if criteria.min_confidence is not None and confidence is not None:
            if confidence < criteria.min_confidence:
                continue
        if allowed is not None and sample.metadata.get('category') not in allowed:
            continue
        if criteria.exclude_anomalies and sample.label is True:
            continue
        kept.append(sample)
    return kept


class DataCollectionStage:
    """
    Runs the configured collector (or the synthetic fallback) and bounds
    its output by the job's policy.
    """

    def __init__(
        self,
        collector: Optional[DataCollector] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.collector = collector
        self.clock = clock
        self.synthetic = SyntheticDataGenerator(rng=rng, clock=clock)

    @property
    def uses_synthetic_data(self) -> bool:
        return self.collector is None

    def collect(self, model_type: RetrainableModelType, policy: DataCollectionPolicy) -> List[TrainingSample]:
        """
        Collect samples for ``model_type``.

        Returns:
            Samples in chronological order, at most ``policy.max_samples``
        """
        source = self.collector or self.synthetic
        raw = list(source(model_type, policy))

        cutoff = self.clock() - timedelta(milliseconds=policy.time_window_ms)
        samples = [s for s in raw if s.timestamp >= cutoff]
        if policy.labeled_only:
            samples = [s for s in samples if s.label is not None]
        samples = apply_filter_criteria(samples, policy.filter_criteria)

        samples.sort(key=lambda s: s.timestamp)
        if len(samples) > policy.max_samples:
            samples = samples[len(samples) - policy.max_samples:]

        logger.debug(
            f"Collected {len(samples)} samples for {model_type.value} "
            f"({len(raw)} raw, {'synthetic' if self.uses_synthetic_data else 'collector'})"
        )
        return samples


def samples_to_frame(samples: List[TrainingSample]) -> pd.DataFrame:
    """Flatten samples into a DataFrame of features plus ``label`` and ``timestamp``."""
    frame = pd.DataFrame([s.features for s in samples])
    frame['label'] = pd.Series([s.label for s in samples], dtype=object)
    frame['timestamp'] = [s.timestamp for s in samples]
    return frame
