"""
Retraining Configuration

Policy dataclasses for data collection, validation and deployment, the
global scheduler configuration, and the loaders that build them from
YAML.

Policies are resolved with an explicit three-level merge. The
compiled-in defaults below sit at the bottom, the scheduler-wide
defaults from ``SchedulerConfig`` override them, and per-call overrides
passed to ``trigger_retraining`` win over both.

Usage Example:
    >>> from retraining.config import SchedulerConfig, merge_policy, ValidationPolicy
    >>> config = SchedulerConfig(default_validation={'min_accuracy': 0.75})
    >>> policy = merge_policy(ValidationPolicy, config.default_validation, {'min_improvement': 0.01})
    >>> policy.min_accuracy, policy.min_improvement
    (0.75, 0.01)
"""

from typing import Dict, List, Optional, Union, Any, Callable, Mapping, Tuple, Type, TypeVar
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
import sys

import yaml
from loguru import logger

from retraining.types import (
    DataSourceType,
    DeploymentStrategy,
    RetrainableModelType,
    TriggerReason,
    ValidationStrategy,
)

DAY_MS = 24 * 60 * 60 * 1000

P = TypeVar('P')


@dataclass(frozen=True)
class FilterCriteria:
    """Sample filtering rules applied after collection."""
    min_confidence: Optional[float] = None
    categories: Optional[Tuple[str, ...]] = None
    exclude_anomalies: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'min_confidence': self.min_confidence,
            'categories': list(self.categories) if self.categories is not None else None,
            'exclude_anomalies': self.exclude_anomalies
        }


@dataclass(frozen=True)
class DataCollectionPolicy:
    """How training data is gathered for a job."""
    sources: Tuple[DataSourceType, ...] = (DataSourceType.DATABASE, DataSourceType.CACHE)
    time_window_ms: int = 30 * DAY_MS
    min_samples: int = 100
    max_samples: int = 10000
    labeled_only: bool = False
    filter_criteria: FilterCriteria = field(default_factory=lambda: FilterCriteria(min_confidence=0.5))

    def validate(self) -> bool:
        """Validate the policy values."""
        if self.min_samples < 0 or self.max_samples < 0:
            raise ValueError("Sample bounds must be non-negative")
        if self.min_samples > self.max_samples:
            raise ValueError(f"min_samples ({self.min_samples}) exceeds max_samples ({self.max_samples})")
        if self.time_window_ms <= 0:
            raise ValueError(f"Invalid time window: {self.time_window_ms}")
        confidence = self.filter_criteria.min_confidence
        if confidence is not None and not 0 <= confidence <= 1:
            raise ValueError(f"Invalid confidence floor: {confidence}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'sources': [s.value for s in self.sources],
            'time_window_ms': self.time_window_ms,
            'min_samples': self.min_samples,
            'max_samples': self.max_samples,
            'labeled_only': self.labeled_only,
            'filter_criteria': self.filter_criteria.to_dict()
        }


@dataclass(frozen=True)
class ValidationPolicy:
    """Quality gates a new model must clear before deployment."""
    strategy: ValidationStrategy = ValidationStrategy.HOLDOUT_VALIDATION
    min_accuracy: float = 0.7
    min_improvement: float = 0.0  # same accuracy is acceptable
    max_degradation: float = -0.05  # negative bound
    holdout_size: float = 0.2
    validation_samples: int = 1000
    ab_test_duration_ms: int = DAY_MS
    ab_test_traffic_percent: float = 10.0

    def validate(self) -> bool:
        """Validate the policy values."""
        if not 0 <= self.min_accuracy <= 1:
            raise ValueError(f"Invalid minimum accuracy: {self.min_accuracy}")
        if self.max_degradation > 0:
            raise ValueError(f"Maximum degradation must be <= 0, got {self.max_degradation}")
        if not 0 <= self.holdout_size < 1:
            raise ValueError(f"Invalid holdout size: {self.holdout_size}")
        if not 0 < self.ab_test_traffic_percent <= 100:
            raise ValueError(f"Invalid A/B traffic percentage: {self.ab_test_traffic_percent}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'strategy': self.strategy.value,
            'min_accuracy': self.min_accuracy,
            'min_improvement': self.min_improvement,
            'max_degradation': self.max_degradation,
            'holdout_size': self.holdout_size,
            'validation_samples': self.validation_samples,
            'ab_test_duration_ms': self.ab_test_duration_ms,
            'ab_test_traffic_percent': self.ab_test_traffic_percent
        }


@dataclass(frozen=True)
class DeploymentPolicy:
    """How a validated model is rolled out."""
    strategy: DeploymentStrategy = DeploymentStrategy.IMMEDIATE
    rollout_steps: Tuple[float, ...] = (10.0, 25.0, 50.0, 75.0, 100.0)
    canary_percent: float = 5.0
    auto_rollback: bool = True
    timeout_ms: int = 5 * 60 * 1000
    health_check_interval_ms: int = 30 * 1000

    def validate(self) -> bool:
        """Validate the policy values."""
        if not 0 < self.canary_percent <= 100:
            raise ValueError(f"Invalid canary percentage: {self.canary_percent}")
        if self.strategy == DeploymentStrategy.GRADUAL:
            steps = list(self.rollout_steps)
            if not steps:
                raise ValueError("Rollout steps required for gradual deployment")
            if any(b <= a for a, b in zip(steps, steps[1:])):
                raise ValueError(f"Rollout steps must be increasing: {steps}")
            if steps[-1] != 100:
                raise ValueError("Rollout steps must end at 100%")
        if self.timeout_ms <= 0:
            raise ValueError(f"Invalid deployment timeout: {self.timeout_ms}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'strategy': self.strategy.value,
            'rollout_steps': list(self.rollout_steps),
            'canary_percent': self.canary_percent,
            'auto_rollback': self.auto_rollback,
            'timeout_ms': self.timeout_ms,
            'health_check_interval_ms': self.health_check_interval_ms
        }


def _to_filter_criteria(value: Any) -> FilterCriteria:
    if isinstance(value, FilterCriteria):
        return value
    if value is None:
        return FilterCriteria()
    unknown = set(value) - {f.name for f in fields(FilterCriteria)}
    if unknown:
        raise ValueError(f"Unknown filter criteria: {sorted(unknown)}")
    categories = value.get('categories')
    return FilterCriteria(
        min_confidence=value.get('min_confidence'),
        categories=tuple(categories) if categories is not None else None,
        exclude_anomalies=bool(value.get('exclude_anomalies', False))
    )


_CONVERTERS: Dict[type, Dict[str, Callable[[Any], Any]]] = {
    DataCollectionPolicy: {
        'sources': lambda v: tuple(DataSourceType(s) for s in v),
        'filter_criteria': _to_filter_criteria,
    },
    ValidationPolicy: {
        'strategy': ValidationStrategy,
    },
    DeploymentPolicy: {
        'strategy': DeploymentStrategy,
        'rollout_steps': lambda v: tuple(float(s) for s in v),
    },
}


def merge_policy(policy_cls: Type[P], *layers: Optional[Union[Mapping[str, Any], P]]) -> P:
    """
    Resolve a policy from layered overrides.

    Layers are applied lowest precedence first, on top of the
    compiled-in defaults of ``policy_cls``. A layer is either a mapping
    of field overrides or a complete policy instance, which replaces
    everything below it.

    Args:
        policy_cls: One of the policy dataclasses
        *layers: Override layers, lowest precedence first

    Returns:
        Validated policy instance
    """
    policy = policy_cls()
    names = {f.name for f in fields(policy_cls)}
    converters = _CONVERTERS.get(policy_cls, {})

    for layer in layers:
        if not layer:
            continue
        if isinstance(layer, policy_cls):
            policy = layer
            continue

        unknown = set(layer) - names
        if unknown:
            raise ValueError(f"Unknown {policy_cls.__name__} fields: {sorted(unknown)}")

        changes = {
            name: converters[name](value) if name in converters else value
            for name, value in layer.items()
        }
        policy = replace(policy, **changes)

    policy.validate()
    return policy


@dataclass(frozen=True)
class RetrainingJobConfig:
    """Frozen configuration of a single retraining job."""
    model_type: RetrainableModelType
    data_collection: DataCollectionPolicy
    validation: ValidationPolicy
    deployment: DeploymentPolicy
    trigger_reason: TriggerReason
    schedule_id: Optional[str] = None
    priority: int = 1
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'model_type': self.model_type.value,
            'data_collection': self.data_collection.to_dict(),
            'validation': self.validation.to_dict(),
            'deployment': self.deployment.to_dict(),
            'trigger_reason': self.trigger_reason.value,
            'schedule_id': self.schedule_id,
            'priority': self.priority,
            'tags': list(self.tags)
        }


@dataclass
class SchedulerConfig:
    """Global orchestrator settings."""
    max_concurrent_jobs: int = 2
    default_data_collection: Dict[str, Any] = field(default_factory=dict)
    default_validation: Dict[str, Any] = field(default_factory=dict)
    default_deployment: Dict[str, Any] = field(default_factory=dict)
    auto_performance_retraining: bool = True
    performance_drop_threshold: float = 0.1  # 10% drop vs. baseline
    min_retraining_interval_ms: int = DAY_MS
    enabled: bool = True
    cache_enabled: bool = True
    cache_ttl_ms: int = 5 * 60 * 1000
    baseline_accuracy: float = 0.8
    baseline_window: int = 5
    random_seed: Optional[int] = None
    max_workers: int = 4
    timer_poll_interval_s: float = 1.0

    def validate(self) -> bool:
        """Validate configuration values."""
        if self.max_concurrent_jobs < 1:
            raise ValueError(f"max_concurrent_jobs must be >= 1, got {self.max_concurrent_jobs}")
        if not 0 <= self.performance_drop_threshold <= 1:
            raise ValueError(f"Invalid performance drop threshold: {self.performance_drop_threshold}")
        if not 0 <= self.baseline_accuracy <= 1:
            raise ValueError(f"Invalid baseline accuracy: {self.baseline_accuracy}")
        if self.min_retraining_interval_ms < 0:
            raise ValueError("min_retraining_interval_ms must be non-negative")
        if self.cache_ttl_ms < 0:
            raise ValueError("cache_ttl_ms must be non-negative")
        if self.baseline_window < 1 or self.max_workers < 1:
            raise ValueError("baseline_window and max_workers must be >= 1")
        if self.timer_poll_interval_s <= 0:
            raise ValueError("timer_poll_interval_s must be positive")

        # Scheduler-level defaults must resolve to valid policies on their own
        merge_policy(DataCollectionPolicy, self.default_data_collection)
        merge_policy(ValidationPolicy, self.default_validation)
        merge_policy(DeploymentPolicy, self.default_deployment)
        return True

    def merged(self, updates: Mapping[str, Any]) -> 'SchedulerConfig':
        """Return a copy with ``updates`` applied field by field."""
        unknown = set(updates) - {f.name for f in fields(SchedulerConfig)}
        if unknown:
            raise ValueError(f"Unknown scheduler config fields: {sorted(unknown)}")
        config = replace(self, **dict(updates))
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'SchedulerConfig':
        """Build a validated config from a mapping. Unknown keys raise ValueError."""
        return cls().merged(data or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'max_concurrent_jobs': self.max_concurrent_jobs,
            'default_data_collection': dict(self.default_data_collection),
            'default_validation': dict(self.default_validation),
            'default_deployment': dict(self.default_deployment),
            'auto_performance_retraining': self.auto_performance_retraining,
            'performance_drop_threshold': self.performance_drop_threshold,
            'min_retraining_interval_ms': self.min_retraining_interval_ms,
            'enabled': self.enabled,
            'cache_enabled': self.cache_enabled,
            'cache_ttl_ms': self.cache_ttl_ms,
            'baseline_accuracy': self.baseline_accuracy,
            'baseline_window': self.baseline_window,
            'random_seed': self.random_seed,
            'max_workers': self.max_workers,
            'timer_poll_interval_s': self.timer_poll_interval_s
        }


def build_job_config(
    model_type: RetrainableModelType,
    trigger_reason: TriggerReason,
    scheduler_config: SchedulerConfig,
    schedule_id: Optional[str] = None,
    priority: int = 1,
    data_collection: Optional[Mapping[str, Any]] = None,
    validation: Optional[Mapping[str, Any]] = None,
    deployment: Optional[Mapping[str, Any]] = None,
    tags: Optional[List[str]] = None
) -> RetrainingJobConfig:
    """Resolve all three policies and freeze them into a job config."""
    return RetrainingJobConfig(
        model_type=RetrainableModelType(model_type),
        data_collection=merge_policy(
            DataCollectionPolicy, scheduler_config.default_data_collection, data_collection
        ),
        validation=merge_policy(
            ValidationPolicy, scheduler_config.default_validation, validation
        ),
        deployment=merge_policy(
            DeploymentPolicy, scheduler_config.default_deployment, deployment
        ),
        trigger_reason=TriggerReason(trigger_reason),
        schedule_id=schedule_id,
        priority=priority,
        tags=tuple(tags or ())
    )


def load_config(config_path: Optional[Union[str, Path]]) -> Dict[str, Any]:
    """
    Load the raw YAML configuration.

    Returns an empty dict when the path is missing so callers fall back
    to compiled-in defaults.
    """
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")
        return data
    if config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")
    return {}


def configure_logging(log_config: Optional[Mapping[str, Any]] = None) -> None:
    """Replace the default loguru sink with one driven by ``log_config``."""
    log_config = log_config or {}
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=log_config.get('level', 'INFO'),
        format=log_config.get('format', '{time} | {level} | {message}')
    )
