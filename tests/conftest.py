"""
Shared fixtures for the retraining test suite.

Collaborator stubs make the pipeline deterministic: a trainer with a
fixed accuracy, a performance source with fixed production accuracy, an
always-healthy deployer and a clock that only moves when told to.
"""

import sys
import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from retraining.config import SchedulerConfig  # noqa: E402
from retraining.orchestrator import RetrainingOrchestrator  # noqa: E402
from retraining.training import ModelTrainer, TrainingResult  # noqa: E402
from retraining.types import HealthCheckResult, TrainingMetrics, TrainingSample  # noqa: E402

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class FakeClock:
    """Callable clock that advances only on demand."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += timedelta(milliseconds=ms)


class StubTrainer(ModelTrainer):
    """Returns a fixed accuracy, or raises ``error``."""

    def __init__(self, accuracy=0.82, error=None):
        self.accuracy = accuracy
        self.error = error
        self.calls = 0

    def train(self, samples):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return TrainingResult(
            model_id=f"model_stub_{self.calls}",
            metrics=TrainingMetrics(
                loss=0.12,
                accuracy=self.accuracy,
                precision=0.8,
                recall=0.78,
                f1_score=0.79,
                auc_roc=0.9,
                training_duration_ms=25.0,
                samples_used=len(samples)
            )
        )


class BlockingTrainer(StubTrainer):
    """Blocks inside ``train`` until ``release`` is set."""

    def __init__(self, accuracy=0.82):
        super().__init__(accuracy=accuracy)
        self.started = threading.Event()
        self.release = threading.Event()

    def train(self, samples):
        self.started.set()
        self.release.wait(timeout=10)
        return super().train(samples)


class StubPerformanceSource:
    """Fixed production accuracy, optionally per model type."""

    def __init__(self, default=0.78, overrides=None):
        self.default = default
        self.overrides = dict(overrides or {})

    def accuracy_of(self, model_type):
        return self.overrides.get(model_type, self.default)


class HealthyDeployer:
    def __init__(self):
        self.deployed = []

    def deploy(self, model_type, model_id, policy, traffic_steps):
        self.deployed.append((model_type, model_id, list(traffic_steps)))
        return HealthCheckResult(healthy=True, latency_ms=12.0, error_rate=0.001)


class UnhealthyDeployer:
    def deploy(self, model_type, model_id, policy, traffic_steps):
        return HealthCheckResult(
            healthy=False,
            latency_ms=850.0,
            error_rate=0.2,
            message="Latency SLA breached"
        )


def make_samples(clock, n, labeled=True, anomaly_every=10, metadata=None):
    """Samples stamped one second apart, oldest first, ending at ``clock()``."""
    now = clock()
    samples = []
    for i in range(n):
        samples.append(TrainingSample(
            sample_id=f"sample_{i}",
            wallet_address=f"0x{i:040x}",
            features={'win_rate': 0.5, 'coordination_score': float(i % 7)},
            label=(i % anomaly_every == 0) if labeled else None,
            timestamp=now - timedelta(seconds=n - 1 - i),
            metadata=dict(metadata or {})
        ))
    return samples


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_orchestrator(clock):
    """Factory for deterministic orchestrators, destroyed after the test."""
    created = []

    def factory(config=None, **kwargs):
        if config is None or isinstance(config, dict):
            config = SchedulerConfig(**{'random_seed': 42, **(config or {})})
        kwargs.setdefault('trainer', StubTrainer())
        kwargs.setdefault('performance_source', StubPerformanceSource())
        kwargs.setdefault('deployer', HealthyDeployer())
        kwargs.setdefault('clock', clock)
        orchestrator = RetrainingOrchestrator(config, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        orchestrator.destroy()
