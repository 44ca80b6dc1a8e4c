"""
Model Retraining Scheduler

Automated retraining for the prediction-market monitoring models:
- Interval, cron, performance and data-volume schedules
- A collect -> train -> validate -> deploy job pipeline with quality gates
- Automatic rollback and concurrency limits
- Retraining history and scheduler statistics

Example:
    >>> from retraining import RetrainingOrchestrator, RetrainableModelType
    >>> orchestrator = RetrainingOrchestrator()
    >>> job = orchestrator.trigger_retraining(RetrainableModelType.ANOMALY_DETECTION)
"""

# Core types
from retraining.types import (
    RetrainableModelType,
    ScheduleType,
    RetrainingJobStatus,
    DataSourceType,
    ValidationStrategy,
    DeploymentStrategy,
    TriggerReason,
    TrainingSample,
    TrainingMetrics,
    ValidationResult,
    HealthCheckResult,
    DeploymentResult,
    RetrainingSchedule,
    RetrainingJob,
    HistoryEntry,
    SchedulerStatistics
)

# Configuration
from retraining.config import (
    FilterCriteria,
    DataCollectionPolicy,
    ValidationPolicy,
    DeploymentPolicy,
    RetrainingJobConfig,
    SchedulerConfig,
    merge_policy,
    load_config,
    configure_logging
)

# Errors
from retraining.errors import (
    RetrainingError,
    RetrainingRejectedError,
    SchedulerDisabledError,
    ConcurrencyLimitError,
    InsufficientDataError,
    TrainingError,
    DeploymentError
)

# Events
from retraining.events import EventBus, Event, EventType

# Pipeline stages
from retraining.data_collection import DataCollectionStage, SyntheticDataGenerator
from retraining.training import ModelTrainer, SklearnTrainer, TrainingResult, TrainingStage
from retraining.validation import ValidationStage, evaluate_gates
from retraining.deployment import DeploymentStage, SimulatedDeployer, plan_rollout
from retraining.monitoring import PerformanceTracker

# Orchestration
from retraining.orchestrator import RetrainingOrchestrator, build_orchestrator

__all__ = [
    # Core types
    'RetrainableModelType',
    'ScheduleType',
    'RetrainingJobStatus',
    'DataSourceType',
    'ValidationStrategy',
    'DeploymentStrategy',
    'TriggerReason',
    'TrainingSample',
    'TrainingMetrics',
    'ValidationResult',
    'HealthCheckResult',
    'DeploymentResult',
    'RetrainingSchedule',
    'RetrainingJob',
    'HistoryEntry',
    'SchedulerStatistics',

    # Configuration
    'FilterCriteria',
    'DataCollectionPolicy',
    'ValidationPolicy',
    'DeploymentPolicy',
    'RetrainingJobConfig',
    'SchedulerConfig',
    'merge_policy',
    'load_config',
    'configure_logging',

    # Errors
    'RetrainingError',
    'RetrainingRejectedError',
    'SchedulerDisabledError',
    'ConcurrencyLimitError',
    'InsufficientDataError',
    'TrainingError',
    'DeploymentError',

    # Events
    'EventBus',
    'Event',
    'EventType',

    # Pipeline stages
    'DataCollectionStage',
    'SyntheticDataGenerator',
    'ModelTrainer',
    'SklearnTrainer',
    'TrainingResult',
    'TrainingStage',
    'ValidationStage',
    'evaluate_gates',
    'DeploymentStage',
    'SimulatedDeployer',
    'plan_rollout',
    'PerformanceTracker',

    # Orchestration
    'RetrainingOrchestrator',
    'build_orchestrator',
]

__version__ = '0.1.0'
