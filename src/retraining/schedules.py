"""
Schedule Store

CRUD for retraining schedules plus next-execution bookkeeping. The
store owns every ``RetrainingSchedule``; the timer bank only ever sees
schedule ids.

Cron schedules use a placeholder rule: the next execution is the next
whole hour. The expression text is stored but not evaluated.
"""

from typing import Dict, List, Optional, Any, Callable
from datetime import datetime, timedelta
import threading

from loguru import logger

from retraining.timers import TimerBank, TimerCallback
from retraining.types import (
    IdGenerator,
    RetrainableModelType,
    RetrainingSchedule,
    ScheduleType,
)

UPDATABLE_FIELDS = frozenset({
    'enabled',
    'interval_ms',
    'cron_expression',
    'performance_threshold',
    'data_volume_threshold',
})


def next_cron_execution(now: datetime, cron_expression: Optional[str] = None) -> datetime:
    """Advance to the next whole hour. ``cron_expression`` is not parsed."""
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def _check_schedule_values(
    schedule_type: ScheduleType,
    interval_ms: Optional[int],
    cron_expression: Optional[str],
    performance_threshold: float,
    data_volume_threshold: int
) -> None:
    if schedule_type == ScheduleType.INTERVAL and (interval_ms is None or interval_ms <= 0):
        raise ValueError("Interval schedules require a positive interval_ms")
    if schedule_type == ScheduleType.CRON and not cron_expression:
        raise ValueError("Cron schedules require a cron_expression")
    if not 0 < performance_threshold <= 1:
        raise ValueError(f"Invalid performance threshold: {performance_threshold}")
    if data_volume_threshold < 1:
        raise ValueError(f"Invalid data volume threshold: {data_volume_threshold}")


class ScheduleStore:
    """
    Holds schedule definitions and keeps interval timers in step with them.

    Args:
        timer_bank: Timer bank that drives interval schedules
        on_fire: Callback invoked with the schedule id when a timer fires
        clock: Source of the current time
        id_generator: Identifier factory
    """

    def __init__(
        self,
        timer_bank: TimerBank,
        on_fire: TimerCallback,
        clock: Callable[[], datetime] = datetime.now,
        id_generator: Optional[IdGenerator] = None
    ):
        self.timer_bank = timer_bank
        self.on_fire = on_fire
        self.clock = clock
        self.generate_id = id_generator or IdGenerator()
        self._schedules: Dict[str, RetrainingSchedule] = {}
        self._lock = threading.RLock()

    def create(
        self,
        model_type: RetrainableModelType,
        schedule_type: ScheduleType,
        interval_ms: Optional[int] = None,
        cron_expression: Optional[str] = None,
        performance_threshold: Optional[float] = None,
        data_volume_threshold: Optional[int] = None,
        enabled: bool = True
    ) -> RetrainingSchedule:
        """
        Create a schedule.

        Args:
            model_type: Model type the schedule retrains
            schedule_type: Schedule kind
            interval_ms: Interval between runs (INTERVAL)
            cron_expression: Cron text (CRON, stored only)
            performance_threshold: Accuracy drop that qualifies (PERFORMANCE_TRIGGER)
            data_volume_threshold: New-sample count that qualifies (DATA_VOLUME_TRIGGER)
            enabled: Whether the schedule is active

        Returns:
            The created schedule
        """
        model_type = RetrainableModelType(model_type)
        schedule_type = ScheduleType(schedule_type)
        performance_threshold = 0.1 if performance_threshold is None else performance_threshold
        data_volume_threshold = 1000 if data_volume_threshold is None else data_volume_threshold
        _check_schedule_values(
            schedule_type, interval_ms, cron_expression, performance_threshold, data_volume_threshold
        )

        now = self.clock()
        schedule = RetrainingSchedule(
            schedule_id=self.generate_id("schedule"),
            model_type=model_type,
            schedule_type=schedule_type,
            created_at=now,
            updated_at=now,
            interval_ms=interval_ms,
            cron_expression=cron_expression,
            performance_threshold=performance_threshold,
            data_volume_threshold=data_volume_threshold,
            enabled=enabled
        )
        schedule.next_execution_at = self._compute_next_execution(schedule, now)

        with self._lock:
            self._schedules[schedule.schedule_id] = schedule
            if schedule.enabled:
                self._start_timer(schedule)

        logger.info(
            f"Created {schedule_type.value} schedule {schedule.schedule_id} for {model_type.value}"
        )
        return schedule

    def update(self, schedule_id: str, **updates: Any) -> Optional[RetrainingSchedule]:
        """
        Apply a partial update.

        Enabling a disabled schedule (re)starts its timer, disabling
        stops it, and an interval change restarts a running timer.

        Returns:
            The updated schedule, or None if it does not exist
        """
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update schedule fields: {sorted(unknown)}")

        with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                return None

            merged = {name: getattr(schedule, name) for name in UPDATABLE_FIELDS}
            merged.update(updates)
            _check_schedule_values(
                schedule.schedule_type,
                merged['interval_ms'],
                merged['cron_expression'],
                merged['performance_threshold'],
                merged['data_volume_threshold']
            )

            was_enabled = schedule.enabled
            old_interval = schedule.interval_ms
            for name, value in updates.items():
                setattr(schedule, name, value)

            now = self.clock()
            schedule.updated_at = now

            if 'interval_ms' in updates or 'cron_expression' in updates:
                schedule.next_execution_at = self._compute_next_execution(schedule, now)

            if was_enabled and not schedule.enabled:
                self.timer_bank.stop_timer(schedule_id)
            elif schedule.enabled and (not was_enabled or schedule.interval_ms != old_interval):
                self._start_timer(schedule)

        logger.info(f"Updated schedule {schedule_id}: {updates}")
        return schedule

    def delete(self, schedule_id: str) -> bool:
        """Delete a schedule, stopping its timer first."""
        with self._lock:
            if schedule_id not in self._schedules:
                return False
            self.timer_bank.stop_timer(schedule_id)
            del self._schedules[schedule_id]
        logger.info(f"Deleted schedule {schedule_id}")
        return True

    def get(self, schedule_id: str) -> Optional[RetrainingSchedule]:
        with self._lock:
            return self._schedules.get(schedule_id)

    def list_all(self) -> List[RetrainingSchedule]:
        with self._lock:
            return list(self._schedules.values())

    def list_for_model(self, model_type: RetrainableModelType) -> List[RetrainingSchedule]:
        with self._lock:
            return [s for s in self._schedules.values() if s.model_type == model_type]

    def list_enabled(self, schedule_type: Optional[ScheduleType] = None) -> List[RetrainingSchedule]:
        with self._lock:
            return [
                s for s in self._schedules.values()
                if s.enabled and (schedule_type is None or s.schedule_type == schedule_type)
            ]

    def mark_executed(self, schedule_id: str, triggered: bool) -> Optional[RetrainingSchedule]:
        """
        Advance bookkeeping after a timer fire.

        ``next_execution_at`` always moves forward; ``last_executed_at``
        only moves when a job was actually created.
        """
        with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                return None
            now = self.clock()
            if triggered:
                schedule.last_executed_at = now
            schedule.next_execution_at = self._compute_next_execution(schedule, now)
            schedule.updated_at = now
            return schedule

    def start_timers(self) -> int:
        """Start timers for every enabled interval schedule."""
        started = 0
        with self._lock:
            for schedule in self._schedules.values():
                if schedule.enabled and self._start_timer(schedule):
                    started += 1
        return started

    def stop_timers(self) -> None:
        with self._lock:
            for schedule_id in self._schedules:
                self.timer_bank.stop_timer(schedule_id)

    def clear(self) -> None:
        with self._lock:
            self.stop_timers()
            self._schedules.clear()

    def _start_timer(self, schedule: RetrainingSchedule) -> bool:
        if schedule.schedule_type != ScheduleType.INTERVAL or not schedule.interval_ms:
            return False
        self.timer_bank.start_timer(schedule.schedule_id, schedule.interval_ms, self.on_fire)
        return True

    @staticmethod
    def _compute_next_execution(schedule: RetrainingSchedule, now: datetime) -> Optional[datetime]:
        if schedule.schedule_type == ScheduleType.INTERVAL and schedule.interval_ms:
            return now + timedelta(milliseconds=schedule.interval_ms)
        if schedule.schedule_type == ScheduleType.CRON and schedule.cron_expression:
            return next_cron_execution(now, schedule.cron_expression)
        return None
