"""Exceptions raised by the retraining orchestrator."""


class RetrainingError(Exception):
    """Base class for retraining errors."""


class RetrainingRejectedError(RetrainingError):
    """A trigger was refused; no job was created."""


class SchedulerDisabledError(RetrainingRejectedError):
    """The orchestrator is globally disabled."""

    def __init__(self) -> None:
        super().__init__("Scheduler is disabled")


class ConcurrencyLimitError(RetrainingRejectedError):
    """The concurrency ceiling is already reached."""

    def __init__(self, max_concurrent_jobs: int) -> None:
        self.max_concurrent_jobs = max_concurrent_jobs
        super().__init__(f"Maximum concurrent jobs ({max_concurrent_jobs}) reached")


class InsufficientDataError(RetrainingError):
    """Fewer samples were collected than the policy requires."""

    def __init__(self, collected: int, required: int) -> None:
        self.collected = collected
        self.required = required
        super().__init__(f"Insufficient training samples: {collected} < {required}")


class TrainingError(RetrainingError):
    """The training backend produced an unusable result."""


class DeploymentError(RetrainingError):
    """A deployment could not be carried out."""
