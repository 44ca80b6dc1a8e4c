"""
Core Types for Model Retraining

Enumerations and record types shared by the schedule store, the job
orchestrator and the history aggregator. Records are plain dataclasses
with a ``to_dict()`` for JSON output.
"""

from typing import Dict, List, Optional, Any, TYPE_CHECKING
import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

if TYPE_CHECKING:
    from retraining.config import RetrainingJobConfig


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RetrainableModelType(str, Enum):
    """Model types that can be retrained."""
    ANOMALY_DETECTION = "ANOMALY_DETECTION"
    INSIDER_PREDICTOR = "INSIDER_PREDICTOR"
    MARKET_PREDICTOR = "MARKET_PREDICTOR"
    SIGNAL_TRACKER = "SIGNAL_TRACKER"


class ScheduleType(str, Enum):
    """Retraining schedule kinds."""
    INTERVAL = "INTERVAL"
    CRON = "CRON"
    PERFORMANCE_TRIGGER = "PERFORMANCE_TRIGGER"
    DATA_VOLUME_TRIGGER = "DATA_VOLUME_TRIGGER"
    MANUAL = "MANUAL"


class RetrainingJobStatus(str, Enum):
    """Retraining job status."""
    PENDING = "PENDING"
    COLLECTING_DATA = "COLLECTING_DATA"
    TRAINING = "TRAINING"
    VALIDATING = "VALIDATING"
    DEPLOYING = "DEPLOYING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    ROLLED_BACK = "ROLLED_BACK"


TERMINAL_STATUSES = frozenset({
    RetrainingJobStatus.COMPLETED,
    RetrainingJobStatus.FAILED,
    RetrainingJobStatus.CANCELLED,
    RetrainingJobStatus.ROLLED_BACK,
})

# Legal forward edges of the job state machine. CANCELLED is reachable
# from every non-terminal state and is handled separately.
ALLOWED_TRANSITIONS: Dict[RetrainingJobStatus, frozenset] = {
    RetrainingJobStatus.PENDING: frozenset({
        RetrainingJobStatus.COLLECTING_DATA,
        RetrainingJobStatus.FAILED,
    }),
    RetrainingJobStatus.COLLECTING_DATA: frozenset({
        RetrainingJobStatus.TRAINING,
        RetrainingJobStatus.FAILED,
    }),
    RetrainingJobStatus.TRAINING: frozenset({
        RetrainingJobStatus.VALIDATING,
        RetrainingJobStatus.FAILED,
    }),
    RetrainingJobStatus.VALIDATING: frozenset({
        RetrainingJobStatus.DEPLOYING,
        RetrainingJobStatus.ROLLED_BACK,
        RetrainingJobStatus.FAILED,
    }),
    RetrainingJobStatus.DEPLOYING: frozenset({
        RetrainingJobStatus.COMPLETED,
        RetrainingJobStatus.ROLLED_BACK,
        RetrainingJobStatus.FAILED,
    }),
}


class DataSourceType(str, Enum):
    """Data source type for training data."""
    DATABASE = "DATABASE"
    STREAM = "STREAM"
    CACHE = "CACHE"
    EXTERNAL_API = "EXTERNAL_API"
    MANUAL_UPLOAD = "MANUAL_UPLOAD"


class ValidationStrategy(str, Enum):
    """Validation strategy for new models."""
    ACCURACY_COMPARISON = "ACCURACY_COMPARISON"
    AB_TEST = "AB_TEST"
    SHADOW_MODE = "SHADOW_MODE"
    HOLDOUT_VALIDATION = "HOLDOUT_VALIDATION"
    CROSS_VALIDATION = "CROSS_VALIDATION"


class DeploymentStrategy(str, Enum):
    """Deployment strategy for new models."""
    IMMEDIATE = "IMMEDIATE"
    GRADUAL = "GRADUAL"
    CANARY = "CANARY"
    BLUE_GREEN = "BLUE_GREEN"


class TriggerReason(str, Enum):
    """Why a retraining job was created."""
    SCHEDULED = "SCHEDULED"
    PERFORMANCE_DROP = "PERFORMANCE_DROP"
    NEW_DATA_AVAILABLE = "NEW_DATA_AVAILABLE"
    DATA_DRIFT_DETECTED = "DATA_DRIFT_DETECTED"
    MANUAL = "MANUAL"
    MODEL_EXPIRED = "MODEL_EXPIRED"


@dataclass
class TrainingSample:
    """One training example. ``label`` is None for unlabeled data."""
    sample_id: str
    wallet_address: str
    features: Dict[str, float]
    label: Optional[bool]
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrainingMetrics:
    """Metrics reported by a training run. Quality metrics may be absent."""
    loss: Optional[float] = None
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1_score: Optional[float] = None
    auc_roc: Optional[float] = None
    training_duration_ms: float = 0.0
    samples_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'loss': self.loss,
            'accuracy': self.accuracy,
            'precision': self.precision,
            'recall': self.recall,
            'f1_score': self.f1_score,
            'auc_roc': self.auc_roc,
            'training_duration_ms': self.training_duration_ms,
            'samples_used': self.samples_used
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the validation gate for one job."""
    strategy: ValidationStrategy
    passed: bool
    old_accuracy: float
    new_accuracy: float
    improvement: float
    improvement_percent: float
    samples_used: int
    metrics: Dict[str, float]
    validated_at: datetime
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'strategy': self.strategy.value,
            'passed': self.passed,
            'old_accuracy': self.old_accuracy,
            'new_accuracy': self.new_accuracy,
            'improvement': self.improvement,
            'improvement_percent': self.improvement_percent,
            'samples_used': self.samples_used,
            'metrics': dict(self.metrics),
            'validated_at': self.validated_at.isoformat(),
            'failure_reason': self.failure_reason
        }


@dataclass(frozen=True)
class HealthCheckResult:
    """Post-deployment health snapshot."""
    healthy: bool
    latency_ms: float
    error_rate: float
    message: Optional[str] = None


@dataclass(frozen=True)
class DeploymentResult:
    """Outcome of the deployment stage for one job."""
    strategy: DeploymentStrategy
    success: bool
    deployed_model_id: str
    deployed_at: datetime
    previous_model_id: Optional[str] = None
    rolled_back: bool = False
    rollback_reason: Optional[str] = None
    health_check: Optional[HealthCheckResult] = None
    traffic_steps: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        health = None
        if self.health_check is not None:
            health = {
                'healthy': self.health_check.healthy,
                'latency_ms': self.health_check.latency_ms,
                'error_rate': self.health_check.error_rate
            }
        return {
            'strategy': self.strategy.value,
            'success': self.success,
            'deployed_model_id': self.deployed_model_id,
            'previous_model_id': self.previous_model_id,
            'deployed_at': self.deployed_at.isoformat(),
            'rolled_back': self.rolled_back,
            'rollback_reason': self.rollback_reason,
            'health_check': health,
            'traffic_steps': list(self.traffic_steps)
        }


@dataclass
class RetrainingSchedule:
    """A standing rule that produces retraining triggers."""
    schedule_id: str
    model_type: RetrainableModelType
    schedule_type: ScheduleType
    created_at: datetime
    updated_at: datetime
    interval_ms: Optional[int] = None
    cron_expression: Optional[str] = None
    performance_threshold: float = 0.1
    data_volume_threshold: int = 1000
    enabled: bool = True
    last_executed_at: Optional[datetime] = None
    next_execution_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'schedule_id': self.schedule_id,
            'model_type': self.model_type.value,
            'schedule_type': self.schedule_type.value,
            'interval_ms': self.interval_ms,
            'cron_expression': self.cron_expression,
            'performance_threshold': self.performance_threshold,
            'data_volume_threshold': self.data_volume_threshold,
            'enabled': self.enabled,
            'last_executed_at': _iso(self.last_executed_at),
            'next_execution_at': _iso(self.next_execution_at),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }


@dataclass
class RetrainingJob:
    """
    One end-to-end attempt to retrain and conditionally deploy a model.

    Mutated only by the orchestrator while active; never touched again
    once ``status`` is terminal.
    """
    job_id: str
    config: 'RetrainingJobConfig'
    created_at: datetime
    status: RetrainingJobStatus = RetrainingJobStatus.PENDING
    progress: int = 0
    stage_message: str = "Job created"
    previous_model_id: Optional[str] = None
    new_model_id: Optional[str] = None
    training_metrics: Optional[TrainingMetrics] = None
    validation_result: Optional[ValidationResult] = None
    deployment_result: Optional[DeploymentResult] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    @property
    def model_type(self) -> RetrainableModelType:
        return self.config.model_type

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'job_id': self.job_id,
            'config': self.config.to_dict(),
            'status': self.status.value,
            'progress': self.progress,
            'stage_message': self.stage_message,
            'previous_model_id': self.previous_model_id,
            'new_model_id': self.new_model_id,
            'training_metrics': self.training_metrics.to_dict() if self.training_metrics else None,
            'validation_result': self.validation_result.to_dict() if self.validation_result else None,
            'deployment_result': self.deployment_result.to_dict() if self.deployment_result else None,
            'error': self.error,
            'created_at': self.created_at.isoformat(),
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
            'duration_ms': self.duration_ms
        }


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only summary of one finished job."""
    entry_id: str
    job_id: str
    model_type: RetrainableModelType
    trigger_reason: TriggerReason
    status: RetrainingJobStatus
    previous_accuracy: float
    training_samples: int
    duration_ms: float
    timestamp: datetime
    new_accuracy: Optional[float] = None
    improvement: Optional[float] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'entry_id': self.entry_id,
            'job_id': self.job_id,
            'model_type': self.model_type.value,
            'trigger_reason': self.trigger_reason.value,
            'status': self.status.value,
            'previous_accuracy': self.previous_accuracy,
            'new_accuracy': self.new_accuracy,
            'improvement': self.improvement,
            'training_samples': self.training_samples,
            'duration_ms': self.duration_ms,
            'timestamp': self.timestamp.isoformat(),
            'notes': self.notes
        }


@dataclass
class SchedulerStatistics:
    """Aggregate counters derived from the job table."""
    total_jobs: int
    successful_jobs: int
    failed_jobs: int
    rolled_back_jobs: int
    cancelled_jobs: int
    avg_training_duration_ms: float
    avg_improvement_percent: float
    total_samples_used: int
    active_schedules: int
    jobs_by_model_type: Dict[RetrainableModelType, int]
    jobs_by_trigger_reason: Dict[TriggerReason, int]
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'total_jobs': self.total_jobs,
            'successful_jobs': self.successful_jobs,
            'failed_jobs': self.failed_jobs,
            'rolled_back_jobs': self.rolled_back_jobs,
            'cancelled_jobs': self.cancelled_jobs,
            'avg_training_duration_ms': self.avg_training_duration_ms,
            'avg_improvement_percent': self.avg_improvement_percent,
            'total_samples_used': self.total_samples_used,
            'active_schedules': self.active_schedules,
            'jobs_by_model_type': {k.value: v for k, v in self.jobs_by_model_type.items()},
            'jobs_by_trigger_reason': {k.value: v for k, v in self.jobs_by_trigger_reason.items()},
            'last_updated': self.last_updated.isoformat()
        }


class IdGenerator:
    """Produces ``<prefix>_<epoch ms>_<counter>`` identifiers."""

    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self, prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}_{next(self._counter)}"
