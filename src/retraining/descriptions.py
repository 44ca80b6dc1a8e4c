"""Human-readable labels, status colors and formatting helpers."""

from typing import Dict

from retraining.types import (
    DeploymentStrategy,
    RetrainableModelType,
    RetrainingJobStatus,
    ScheduleType,
    TriggerReason,
    ValidationStrategy,
)

SCHEDULE_TYPE_DESCRIPTIONS: Dict[ScheduleType, str] = {
    ScheduleType.INTERVAL: "Run at fixed time intervals",
    ScheduleType.CRON: "Run on cron schedule",
    ScheduleType.PERFORMANCE_TRIGGER: "Run when performance drops below threshold",
    ScheduleType.DATA_VOLUME_TRIGGER: "Run when new data volume reaches threshold",
    ScheduleType.MANUAL: "Manual trigger only",
}

MODEL_TYPE_DESCRIPTIONS: Dict[RetrainableModelType, str] = {
    RetrainableModelType.ANOMALY_DETECTION: "Anomaly Detection Model",
    RetrainableModelType.INSIDER_PREDICTOR: "Insider Probability Predictor",
    RetrainableModelType.MARKET_PREDICTOR: "Market Outcome Predictor",
    RetrainableModelType.SIGNAL_TRACKER: "Signal Effectiveness Tracker",
}

JOB_STATUS_DESCRIPTIONS: Dict[RetrainingJobStatus, str] = {
    RetrainingJobStatus.PENDING: "Pending execution",
    RetrainingJobStatus.COLLECTING_DATA: "Collecting training data",
    RetrainingJobStatus.TRAINING: "Training model",
    RetrainingJobStatus.VALIDATING: "Validating model",
    RetrainingJobStatus.DEPLOYING: "Deploying model",
    RetrainingJobStatus.COMPLETED: "Completed successfully",
    RetrainingJobStatus.FAILED: "Failed",
    RetrainingJobStatus.CANCELLED: "Cancelled",
    RetrainingJobStatus.ROLLED_BACK: "Rolled back",
}

JOB_STATUS_COLORS: Dict[RetrainingJobStatus, str] = {
    RetrainingJobStatus.PENDING: "#60A5FA",
    RetrainingJobStatus.COLLECTING_DATA: "#F59E0B",
    RetrainingJobStatus.TRAINING: "#F59E0B",
    RetrainingJobStatus.VALIDATING: "#F59E0B",
    RetrainingJobStatus.DEPLOYING: "#F59E0B",
    RetrainingJobStatus.COMPLETED: "#10B981",
    RetrainingJobStatus.FAILED: "#EF4444",
    RetrainingJobStatus.CANCELLED: "#6B7280",
    RetrainingJobStatus.ROLLED_BACK: "#F97316",
}

TRIGGER_REASON_DESCRIPTIONS: Dict[TriggerReason, str] = {
    TriggerReason.SCHEDULED: "Scheduled retraining",
    TriggerReason.PERFORMANCE_DROP: "Performance drop detected",
    TriggerReason.NEW_DATA_AVAILABLE: "New training data available",
    TriggerReason.DATA_DRIFT_DETECTED: "Data drift detected",
    TriggerReason.MANUAL: "Manual trigger",
    TriggerReason.MODEL_EXPIRED: "Model expired",
}

VALIDATION_STRATEGY_DESCRIPTIONS: Dict[ValidationStrategy, str] = {
    ValidationStrategy.ACCURACY_COMPARISON: "Compare accuracy metrics",
    ValidationStrategy.AB_TEST: "A/B test with production traffic",
    ValidationStrategy.SHADOW_MODE: "Shadow mode comparison",
    ValidationStrategy.HOLDOUT_VALIDATION: "Holdout validation set",
    ValidationStrategy.CROSS_VALIDATION: "Cross-validation",
}

DEPLOYMENT_STRATEGY_DESCRIPTIONS: Dict[DeploymentStrategy, str] = {
    DeploymentStrategy.IMMEDIATE: "Immediate replacement",
    DeploymentStrategy.GRADUAL: "Gradual rollout",
    DeploymentStrategy.CANARY: "Canary deployment",
    DeploymentStrategy.BLUE_GREEN: "Blue-green deployment",
}


def describe_schedule_type(schedule_type: ScheduleType) -> str:
    return SCHEDULE_TYPE_DESCRIPTIONS[ScheduleType(schedule_type)]


def describe_model_type(model_type: RetrainableModelType) -> str:
    return MODEL_TYPE_DESCRIPTIONS[RetrainableModelType(model_type)]


def describe_job_status(status: RetrainingJobStatus) -> str:
    return JOB_STATUS_DESCRIPTIONS[RetrainingJobStatus(status)]


def job_status_color(status: RetrainingJobStatus) -> str:
    """Hex color used for ``status`` in dashboards."""
    return JOB_STATUS_COLORS[RetrainingJobStatus(status)]


def describe_trigger_reason(reason: TriggerReason) -> str:
    return TRIGGER_REASON_DESCRIPTIONS[TriggerReason(reason)]


def describe_validation_strategy(strategy: ValidationStrategy) -> str:
    return VALIDATION_STRATEGY_DESCRIPTIONS[ValidationStrategy(strategy)]


def describe_deployment_strategy(strategy: DeploymentStrategy) -> str:
    return DEPLOYMENT_STRATEGY_DESCRIPTIONS[DeploymentStrategy(strategy)]


def format_duration(ms: float) -> str:
    """
    Format milliseconds for display.

    >>> format_duration(450)
    '450ms'
    >>> format_duration(90_000)
    '1.5m'
    """
    if ms < 1000:
        return f"{ms:g}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    if ms < 3_600_000:
        return f"{ms / 60_000:.1f}m"
    return f"{ms / 3_600_000:.1f}h"


def format_percent(value: float, decimals: int = 1) -> str:
    """Format a fraction as a percentage, e.g. ``0.823 -> '82.3%'``."""
    return f"{value * 100:.{decimals}f}%"


def format_improvement(value: float) -> str:
    """Signed percentage for an accuracy delta, e.g. ``0.04 -> '+4.00%'``."""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value * 100:.2f}%"
