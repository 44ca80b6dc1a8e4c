"""
Model Retraining Orchestrator

Schedules retraining work for the monitoring models and runs every
retraining attempt through a strict pipeline:

    PENDING -> COLLECTING_DATA -> TRAINING -> VALIDATING
            -> DEPLOYING -> COMPLETED
            |  ROLLED_BACK | FAILED

``CANCELLED`` is reachable from any non-terminal state. Jobs run on a
thread pool; ``trigger_retraining`` returns as soon as the job exists in
``PENDING`` and the outcome is observed through the event bus or by
polling the query methods.

Usage Example:
    >>> from retraining import RetrainingOrchestrator, SchedulerConfig
    >>> orchestrator = RetrainingOrchestrator(SchedulerConfig(max_concurrent_jobs=2))
    >>> orchestrator.create_schedule(
    ...     model_type=RetrainableModelType.ANOMALY_DETECTION,
    ...     schedule_type=ScheduleType.INTERVAL,
    ...     interval_ms=7 * 24 * 60 * 60 * 1000
    ... )
    >>> orchestrator.start()
    >>> job = orchestrator.trigger_retraining(RetrainableModelType.INSIDER_PREDICTOR)
    >>> orchestrator.wait_for_job(job.job_id).status
    <RetrainingJobStatus.COMPLETED: 'COMPLETED'>
"""

from typing import Dict, List, Optional, Any, Callable, Mapping, Set
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
import threading

import numpy as np
from loguru import logger

from retraining.config import SchedulerConfig, build_job_config
from retraining.data_collection import DataCollectionStage, DataCollector
from retraining.deployment import (
    DEFAULT_ROLLBACK_REASON,
    DeploymentStage,
    ModelDeployer,
    SimulatedDeployer,
)
from retraining.errors import (
    ConcurrencyLimitError,
    InsufficientDataError,
    RetrainingRejectedError,
    SchedulerDisabledError,
)
from retraining.events import EventBus, EventType
from retraining.history import (
    STATISTICS_CACHE_KEY,
    HistoryLedger,
    TTLCache,
    build_history_entry,
    compute_statistics,
)
from retraining.schedules import ScheduleStore
from retraining.timers import TimerBank
from retraining.training import ModelTrainer, TrainingStage
from retraining.types import (
    ALLOWED_TRANSITIONS,
    HistoryEntry,
    IdGenerator,
    RetrainableModelType,
    RetrainingJob,
    RetrainingJobStatus,
    RetrainingSchedule,
    SchedulerStatistics,
    ScheduleType,
    TriggerReason,
)
from retraining.validation import PerformanceSource, ValidationStage

CANCELLED_ERROR = "Job cancelled by user"
DEPLOYMENT_FAILED_ERROR = "Deployment failed"
PERFORMANCE_TRIGGER_PRIORITY = 10


class _JobAbandoned(Exception):
    """The job was cancelled (or discarded) while a stage was running."""


class RetrainingOrchestrator:
    """
    Automated model retraining orchestrator.

    Owns the schedule store, the timer bank, the job table, the history
    ledger and the statistics cache. A single re-entrant lock guards the
    job table and the active set so admission against the concurrency
    ceiling and job finalization are atomic.

    Every collaborator is optional; without them data, training,
    validation baselines and deployments are simulated.

    Args:
        config: Scheduler configuration
        trainer: Training backend
        performance_source: Source of production accuracy per model type
        data_collector: Training-data collection function
        deployer: Deployment backend
        event_bus: Notification channel (a private one is created if omitted)
        clock: Source of the current time
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        trainer: Optional[ModelTrainer] = None,
        performance_source: Optional[PerformanceSource] = None,
        data_collector: Optional[DataCollector] = None,
        deployer: Optional[ModelDeployer] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.config = config or SchedulerConfig()
        self.config.validate()
        self.clock = clock
        self.events = event_bus or EventBus()
        self.generate_id = IdGenerator()
        self.rng = np.random.default_rng(self.config.random_seed)

        # Pipeline stages
        self.data_stage = DataCollectionStage(collector=data_collector, rng=self.rng, clock=clock)
        self.training_stage = TrainingStage(trainer=trainer, rng=self.rng, id_generator=self.generate_id)
        self.validation_stage = ValidationStage(performance_source=performance_source, rng=self.rng, clock=clock)
        self.deployment_stage = DeploymentStage(deployer=deployer, rng=self.rng, clock=clock)

        # Scheduling
        self.timer_bank = TimerBank(poll_interval_s=self.config.timer_poll_interval_s)
        self.schedules = ScheduleStore(
            timer_bank=self.timer_bank,
            on_fire=self._on_timer_fire,
            clock=clock,
            id_generator=self.generate_id
        )

        # Job tracking
        self._jobs: Dict[str, RetrainingJob] = {}
        self._active: Set[str] = set()
        self._futures: Dict[str, Future] = {}
        self._last_retrained: Dict[RetrainableModelType, datetime] = {}
        self._lock = threading.RLock()

        self.history = HistoryLedger()
        self.cache = TTLCache(default_ttl_ms=self.config.cache_ttl_ms, clock=clock)

        self.pool_size = self.config.max_workers
        self.executor = ThreadPoolExecutor(
            max_workers=self.pool_size,
            thread_name_prefix="retraining-job"
        )
        self._running = False
        self._destroyed = False
        self._check_pool_size(self.config)

        logger.info(
            f"Initialized RetrainingOrchestrator (max {self.config.max_concurrent_jobs} concurrent jobs, "
            f"enabled={self.config.enabled})"
        )

    # ------------------------------------------------------------------
    # Collaborators and configuration
    # ------------------------------------------------------------------

    def set_trainer(self, trainer: Optional[ModelTrainer]) -> None:
        self.training_stage.trainer = trainer

    def set_performance_source(self, performance_source: Optional[PerformanceSource]) -> None:
        self.validation_stage.performance_source = performance_source

    def set_data_collector(self, data_collector: Optional[DataCollector]) -> None:
        self.data_stage.collector = data_collector

    def set_deployer(self, deployer: Optional[ModelDeployer]) -> None:
        self.deployment_stage.deployer = deployer or SimulatedDeployer(rng=self.rng)

    def get_config(self) -> SchedulerConfig:
        """Return a copy of the current configuration."""
        with self._lock:
            return SchedulerConfig.from_dict(self.config.to_dict())

    def update_config(self, updates: Mapping[str, Any]) -> SchedulerConfig:
        """Merge ``updates`` into the configuration field by field."""
        with self._lock:
            config = self.config.merged(updates)
            self._apply_config(config)
        logger.info(f"Updated scheduler config: {sorted(updates)}")
        return config

    def replace_config(self, config: SchedulerConfig) -> SchedulerConfig:
        """Replace the configuration wholesale."""
        config.validate()
        with self._lock:
            self._apply_config(config)
        logger.info("Replaced scheduler config")
        return config

    def _apply_config(self, config: SchedulerConfig) -> None:
        # Thread-pool size is fixed at construction
        self.config = config
        self.cache.default_ttl_ms = config.cache_ttl_ms
        self.timer_bank.poll_interval_s = config.timer_poll_interval_s
        self._check_pool_size(config)
        if not config.cache_enabled:
            self.cache.clear()

    def _check_pool_size(self, config: SchedulerConfig) -> None:
        if config.max_concurrent_jobs > self.pool_size:
            logger.warning(
                f"max_concurrent_jobs ({config.max_concurrent_jobs}) exceeds the job pool size "
                f"({self.pool_size}); jobs beyond the pool stay PENDING until a worker frees up"
            )

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def create_schedule(
        self,
        model_type: RetrainableModelType,
        schedule_type: ScheduleType,
        interval_ms: Optional[int] = None,
        cron_expression: Optional[str] = None,
        performance_threshold: Optional[float] = None,
        data_volume_threshold: Optional[int] = None,
        enabled: bool = True
    ) -> RetrainingSchedule:
        """Create a schedule. See ``ScheduleStore.create``."""
        schedule = self.schedules.create(
            model_type=model_type,
            schedule_type=schedule_type,
            interval_ms=interval_ms,
            cron_expression=cron_expression,
            performance_threshold=performance_threshold,
            data_volume_threshold=data_volume_threshold,
            enabled=enabled
        )
        self.events.publish(
            EventType.SCHEDULE_CREATED,
            schedule_id=schedule.schedule_id,
            model_type=schedule.model_type,
            schedule_type=schedule.schedule_type
        )
        return schedule

    def update_schedule(self, schedule_id: str, **updates: Any) -> Optional[RetrainingSchedule]:
        """Apply a partial update. Returns None if the schedule does not exist."""
        schedule = self.schedules.update(schedule_id, **updates)
        if schedule is not None:
            self.events.publish(EventType.SCHEDULE_UPDATED, schedule_id=schedule_id, fields=sorted(updates))
        return schedule

    def delete_schedule(self, schedule_id: str) -> bool:
        deleted = self.schedules.delete(schedule_id)
        if deleted:
            self.events.publish(EventType.SCHEDULE_DELETED, schedule_id=schedule_id)
        return deleted

    def get_schedule(self, schedule_id: str) -> Optional[RetrainingSchedule]:
        return self.schedules.get(schedule_id)

    def get_all_schedules(self) -> List[RetrainingSchedule]:
        return self.schedules.list_all()

    def get_schedules_for_model(self, model_type: RetrainableModelType) -> List[RetrainingSchedule]:
        return self.schedules.list_for_model(RetrainableModelType(model_type))

    def _on_timer_fire(self, schedule_id: str) -> None:
        schedule = self.schedules.get(schedule_id)
        if schedule is None or not schedule.enabled:
            return

        if self.should_skip_retraining(schedule.model_type):
            logger.debug(
                f"Skipping scheduled retraining of {schedule.model_type.value}: "
                f"retrained within the last {self.config.min_retraining_interval_ms}ms"
            )
            self.schedules.mark_executed(schedule_id, triggered=False)
            return

        triggered = False
        try:
            self.trigger_retraining(
                schedule.model_type,
                TriggerReason.SCHEDULED,
                schedule_id=schedule_id
            )
            triggered = True
        except RetrainingRejectedError as e:
            logger.warning(f"Scheduled retraining for {schedule_id} rejected: {e}")
            self.events.publish(EventType.ERROR, schedule_id=schedule_id, error=str(e))
        finally:
            self.schedules.mark_executed(schedule_id, triggered=triggered)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def should_skip_retraining(self, model_type: RetrainableModelType) -> bool:
        """True when ``model_type`` completed a retraining within the minimum interval."""
        with self._lock:
            last = self._last_retrained.get(RetrainableModelType(model_type))
            interval = timedelta(milliseconds=self.config.min_retraining_interval_ms)
        return last is not None and self.clock() - last < interval

    def trigger_retraining(
        self,
        model_type: RetrainableModelType,
        reason: TriggerReason = TriggerReason.MANUAL,
        schedule_id: Optional[str] = None,
        priority: int = 1,
        data_collection: Optional[Mapping[str, Any]] = None,
        validation: Optional[Mapping[str, Any]] = None,
        deployment: Optional[Mapping[str, Any]] = None,
        tags: Optional[List[str]] = None
    ) -> RetrainingJob:
        """
        Create a retraining job and start it in the background.

        Per-call policy overrides take precedence over the scheduler
        defaults, which take precedence over the compiled-in defaults.

        Args:
            model_type: Model type to retrain
            reason: Why the job is created
            schedule_id: Schedule that produced the trigger, if any
            priority: Job priority (informational)
            data_collection: Data-collection policy overrides
            validation: Validation policy overrides
            deployment: Deployment policy overrides
            tags: Free-form tags

        Returns:
            The job, in ``PENDING``

        Raises:
            SchedulerDisabledError: If the orchestrator is disabled
            ConcurrencyLimitError: If the concurrency ceiling is reached
        """
        with self._lock:
            job_config = build_job_config(
                model_type=model_type,
                trigger_reason=reason,
                scheduler_config=self.config,
                schedule_id=schedule_id,
                priority=priority,
                data_collection=data_collection,
                validation=validation,
                deployment=deployment,
                tags=tags
            )

            if self._destroyed:
                raise RetrainingRejectedError("Orchestrator has been destroyed")
            if not self.config.enabled:
                raise SchedulerDisabledError()
            if len(self._active) >= self.config.max_concurrent_jobs:
                raise ConcurrencyLimitError(self.config.max_concurrent_jobs)

            job = RetrainingJob(
                job_id=self.generate_id("job"),
                config=job_config,
                created_at=self.clock()
            )
            self._jobs[job.job_id] = job
            self._active.add(job.job_id)

        logger.info(
            f"Created retraining job {job.job_id} for {job_config.model_type.value} "
            f"({job_config.trigger_reason.value}, priority {priority})"
        )
        self.events.publish(
            EventType.JOB_CREATED,
            job_id=job.job_id,
            model_type=job_config.model_type,
            trigger_reason=job_config.trigger_reason
        )

        future = self.executor.submit(self._execute_job, job)
        with self._lock:
            self._futures[job.job_id] = future
        return job

    def get_job(self, job_id: str) -> Optional[RetrainingJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def get_all_jobs(self) -> List[RetrainingJob]:
        with self._lock:
            return list(self._jobs.values())

    def get_active_jobs(self) -> List[RetrainingJob]:
        """Jobs currently counted against the concurrency ceiling."""
        with self._lock:
            return [self._jobs[job_id] for job_id in self._active]

    def get_jobs_by_status(self, status: RetrainingJobStatus) -> List[RetrainingJob]:
        status = RetrainingJobStatus(status)
        with self._lock:
            return [job for job in self._jobs.values() if job.status == status]

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job that has not reached a terminal state.

        A stage that is already executing runs to completion in the
        background, but its results are discarded and the job leaves the
        active set immediately.
        """
        job = self.get_job(job_id)
        if job is None:
            return False
        return self._finish(job, RetrainingJobStatus.CANCELLED, error=CANCELLED_ERROR)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[RetrainingJob]:
        """
        Block until the job's stage sequence has returned.

        Raises:
            concurrent.futures.TimeoutError: If ``timeout`` elapses first
        """
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job(job_id)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _execute_job(self, job: RetrainingJob) -> None:
        config = job.config
        model_type = config.model_type

        try:
            with self._lock:
                self._check_live(job)
                job.started_at = self.clock()
                job.previous_model_id = self.deployment_stage.current_model(model_type)
            self.events.publish(EventType.JOB_STARTED, job_id=job.job_id, model_type=model_type)
            self._advance(job, 5, "Starting retraining job", RetrainingJobStatus.COLLECTING_DATA)

            # Step 1: Collect training data
            self._advance(job, 10, "Collecting training data")
            samples = self.data_stage.collect(model_type, config.data_collection)
            if len(samples) < config.data_collection.min_samples:
                raise InsufficientDataError(len(samples), config.data_collection.min_samples)

            # Step 2: Train model
            self._advance(job, 30, "Training model", RetrainingJobStatus.TRAINING)
            training = self.training_stage.run(samples, previous_model_id=job.previous_model_id)
            with self._lock:
                self._check_live(job)
                job.new_model_id = training.model_id
                job.training_metrics = training.metrics

            # Step 3: Validate model
            self._advance(job, 60, "Validating model", RetrainingJobStatus.VALIDATING)
            validation = self.validation_stage.validate(
                model_type, config.validation, training.metrics, samples
            )
            with self._lock:
                self._check_live(job)
                job.validation_result = validation

            if not validation.passed:
                self.events.publish(
                    EventType.VALIDATION_FAILED,
                    job_id=job.job_id,
                    failure_reason=validation.failure_reason
                )
                self._finish(job, RetrainingJobStatus.ROLLED_BACK, error=validation.failure_reason)
                return

            self.events.publish(
                EventType.VALIDATION_PASSED,
                job_id=job.job_id,
                improvement=validation.improvement
            )

            # Step 4: Deploy model
            self._advance(job, 80, "Deploying model", RetrainingJobStatus.DEPLOYING)
            deployment = self.deployment_stage.deploy(model_type, training.model_id, config.deployment)
            with self._lock:
                self._check_live(job)
                job.deployment_result = deployment

            if not deployment.success:
                if deployment.rolled_back:
                    self._finish(
                        job,
                        RetrainingJobStatus.ROLLED_BACK,
                        error=deployment.rollback_reason or DEFAULT_ROLLBACK_REASON
                    )
                else:
                    self._finish(job, RetrainingJobStatus.FAILED, error=DEPLOYMENT_FAILED_ERROR)
                return

            self._finish(
                job,
                RetrainingJobStatus.COMPLETED,
                progress=100,
                stage_message="Retraining completed successfully"
            )

        except _JobAbandoned:
            logger.debug(f"Job {job.job_id} is no longer active, discarding stage results")
        except Exception as e:
            self._finish(job, RetrainingJobStatus.FAILED, error=str(e) or type(e).__name__)

    def _check_live(self, job: RetrainingJob) -> None:
        # Caller holds the lock
        if job.is_terminal or self._jobs.get(job.job_id) is not job:
            raise _JobAbandoned(job.job_id)

    def _set_status(self, job: RetrainingJob, status: RetrainingJobStatus) -> None:
        if status != RetrainingJobStatus.CANCELLED and status not in ALLOWED_TRANSITIONS.get(job.status, ()):
            raise RuntimeError(f"Illegal job transition {job.status.value} -> {status.value}")
        job.status = status

    def _advance(
        self,
        job: RetrainingJob,
        progress: int,
        stage_message: str,
        status: Optional[RetrainingJobStatus] = None
    ) -> None:
        with self._lock:
            self._check_live(job)
            if status is not None:
                self._set_status(job, status)
            job.progress = progress
            job.stage_message = stage_message

        logger.debug(f"Job {job.job_id}: {progress}% {stage_message}")
        self.events.publish(EventType.JOB_PROGRESS, job_id=job.job_id, progress=progress, stage=stage_message)

    def _finish(
        self,
        job: RetrainingJob,
        status: RetrainingJobStatus,
        error: Optional[str] = None,
        progress: Optional[int] = None,
        stage_message: Optional[str] = None
    ) -> bool:
        """Move ``job`` to a terminal status exactly once. Returns False if it was already final."""
        with self._lock:
            if job.is_terminal or self._jobs.get(job.job_id) is not job:
                return False

            self._set_status(job, status)
            if progress is not None:
                job.progress = progress
            if stage_message is not None:
                job.stage_message = stage_message
            job.error = error
            job.completed_at = self.clock()
            job.duration_ms = (job.completed_at - (job.started_at or job.created_at)).total_seconds() * 1000
            self._active.discard(job.job_id)

            if status == RetrainingJobStatus.COMPLETED:
                self._last_retrained[job.model_type] = job.completed_at

            self.history.append(build_history_entry(job, self.generate_id("history")))

        self._report_outcome(job)
        return True

    def _report_outcome(self, job: RetrainingJob) -> None:
        model_type = job.model_type.value

        if job.status == RetrainingJobStatus.COMPLETED:
            improvement = job.validation_result.improvement if job.validation_result else None
            logger.info(
                f"Retraining job {job.job_id} for {model_type} completed in {job.duration_ms:.0f}ms, "
                f"deployed {job.new_model_id}"
            )
            self.events.publish(
                EventType.JOB_PROGRESS, job_id=job.job_id, progress=job.progress, stage=job.stage_message
            )
            self.events.publish(EventType.MODEL_DEPLOYED, job_id=job.job_id, model_id=job.new_model_id)
            self.events.publish(
                EventType.JOB_COMPLETED,
                job_id=job.job_id,
                model_id=job.new_model_id,
                improvement=improvement
            )
        elif job.status == RetrainingJobStatus.ROLLED_BACK:
            logger.warning(f"Retraining job {job.job_id} for {model_type} rolled back: {job.error}")
            self.events.publish(EventType.JOB_ROLLED_BACK, job_id=job.job_id, reason=job.error)
        elif job.status == RetrainingJobStatus.CANCELLED:
            logger.info(f"Retraining job {job.job_id} for {model_type} cancelled")
            self.events.publish(EventType.JOB_CANCELLED, job_id=job.job_id)
        else:
            logger.error(f"Retraining job {job.job_id} for {model_type} failed: {job.error}")
            self.events.publish(EventType.JOB_FAILED, job_id=job.job_id, error=job.error)

    # ------------------------------------------------------------------
    # Automatic triggers
    # ------------------------------------------------------------------

    def _performance_threshold(self, model_type: RetrainableModelType) -> float:
        for schedule in self.schedules.list_enabled(ScheduleType.PERFORMANCE_TRIGGER):
            if schedule.model_type == model_type:
                return schedule.performance_threshold
        return self.config.performance_drop_threshold

    def check_performance_and_trigger(self) -> Optional[RetrainingJob]:
        """
        Compare each model's production accuracy with its rolling baseline.

        Triggers at most one high-priority ``PERFORMANCE_DROP`` job, for
        the first model type whose accuracy fell more than the drop
        threshold below baseline and was not retrained within the
        minimum interval.

        Returns:
            The triggered job, or None
        """
        if not self.config.auto_performance_retraining:
            return None

        for model_type in RetrainableModelType:
            current = self.validation_stage.current_accuracy(model_type)
            baseline = self.history.baseline_accuracy(
                model_type,
                window=self.config.baseline_window,
                default=self.config.baseline_accuracy
            )
            floor = baseline * (1 - self._performance_threshold(model_type))
            if current >= floor:
                continue

            logger.warning(
                f"Accuracy of {model_type.value} dropped to {current:.4f} "
                f"(baseline {baseline:.4f}, floor {floor:.4f})"
            )
            self.events.publish(
                EventType.PERFORMANCE_TRIGGER,
                model_type=model_type,
                current_accuracy=current,
                baseline_accuracy=baseline,
                threshold=floor
            )

            if self.should_skip_retraining(model_type):
                logger.debug(f"Skipping performance retraining of {model_type.value}: retrained recently")
                continue

            return self.trigger_retraining(
                model_type,
                TriggerReason.PERFORMANCE_DROP,
                priority=PERFORMANCE_TRIGGER_PRIORITY
            )

        return None

    def check_data_volume_and_trigger(self, new_sample_counts: Mapping[Any, int]) -> List[RetrainingJob]:
        """
        Evaluate enabled data-volume schedules against reported sample counts.

        Args:
            new_sample_counts: New samples available per model type

        Returns:
            Jobs triggered, at most one per model type
        """
        counts = {RetrainableModelType(k): v for k, v in new_sample_counts.items()}
        triggered: Dict[RetrainableModelType, RetrainingJob] = {}

        for schedule in self.schedules.list_enabled(ScheduleType.DATA_VOLUME_TRIGGER):
            model_type = schedule.model_type
            available = counts.get(model_type, 0)
            if model_type in triggered or available < schedule.data_volume_threshold:
                continue

            self.events.publish(
                EventType.DATA_VOLUME_TRIGGER,
                schedule_id=schedule.schedule_id,
                model_type=model_type,
                new_samples=available,
                threshold=schedule.data_volume_threshold
            )
            if self.should_skip_retraining(model_type):
                logger.debug(f"Skipping data-volume retraining of {model_type.value}: retrained recently")
                self.schedules.mark_executed(schedule.schedule_id, triggered=False)
                continue

            try:
                triggered[model_type] = self.trigger_retraining(
                    model_type,
                    TriggerReason.NEW_DATA_AVAILABLE,
                    schedule_id=schedule.schedule_id
                )
            except RetrainingRejectedError as e:
                logger.warning(f"Data-volume retraining for {schedule.schedule_id} rejected: {e}")
                self.events.publish(EventType.ERROR, schedule_id=schedule.schedule_id, error=str(e))
            self.schedules.mark_executed(schedule.schedule_id, triggered=model_type in triggered)

        return list(triggered.values())

    # ------------------------------------------------------------------
    # History and statistics
    # ------------------------------------------------------------------

    def get_history(
        self,
        model_type: Optional[RetrainableModelType] = None,
        status: Optional[RetrainingJobStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[HistoryEntry]:
        """Finished jobs, newest first. Filters apply before offset and limit."""
        return self.history.query(
            model_type=RetrainableModelType(model_type) if model_type is not None else None,
            status=RetrainingJobStatus(status) if status is not None else None,
            limit=limit,
            offset=offset
        )

    def get_statistics(self) -> SchedulerStatistics:
        """
        Scheduler statistics.

        Cached for ``cache_ttl_ms`` when caching is enabled; job changes
        do not invalidate the cached value.
        """
        if self.config.cache_enabled:
            cached = self.cache.get(STATISTICS_CACHE_KEY)
            if cached is not None:
                return cached

        active_schedules = len(self.schedules.list_enabled())
        with self._lock:
            stats = compute_statistics(self._jobs.values(), active_schedules, self.clock())

        if self.config.cache_enabled:
            self.cache.set(STATISTICS_CACHE_KEY, stats, self.config.cache_ttl_ms)
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start timers for every enabled interval schedule and the timer loop."""
        if self._destroyed:
            raise RetrainingRejectedError("Orchestrator has been destroyed")
        if self._running:
            return
        started = self.schedules.start_timers()
        self.timer_bank.start()
        self._running = True
        logger.info(f"Retraining orchestrator started with {started} interval timers")

    def stop(self) -> None:
        """Stop every timer. Jobs already running finish in the background."""
        self.timer_bank.stop()
        self.schedules.stop_timers()
        self._running = False
        logger.info("Retraining orchestrator stopped")

    def destroy(self) -> None:
        """Stop all timers and discard all in-memory state."""
        self.stop()
        self.timer_bank.stop_all()
        self.schedules.clear()
        with self._lock:
            self._destroyed = True
            self._jobs.clear()
            self._active.clear()
            self._futures.clear()
            self._last_retrained.clear()
        self.history.clear()
        self.cache.clear()
        self.deployment_stage.reset()
        self.events.clear()
        self.executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Retraining orchestrator destroyed")


def build_orchestrator(raw_config: Optional[Mapping[str, Any]] = None, **collaborators: Any) -> RetrainingOrchestrator:
    """
    Build an orchestrator from a loaded YAML document.

    The ``scheduler`` section maps onto ``SchedulerConfig`` and each entry
    of ``schedules`` is passed to ``create_schedule``. Collaborators are
    forwarded to the constructor.
    """
    raw_config = raw_config or {}
    config = SchedulerConfig.from_dict(raw_config.get('scheduler'))
    orchestrator = RetrainingOrchestrator(config, **collaborators)

    for entry in raw_config.get('schedules') or []:
        orchestrator.create_schedule(**entry)

    return orchestrator
