"""
Retraining History and Statistics

Append-only ledger of finished jobs, the rolling accuracy baseline
derived from it, and scheduler statistics computed from the job table
behind a small TTL cache.
"""

from typing import Dict, List, Optional, Any, Callable, Iterable, Tuple
from datetime import datetime, timedelta
import threading

import numpy as np

from retraining.types import (
    HistoryEntry,
    RetrainableModelType,
    RetrainingJob,
    RetrainingJobStatus,
    SchedulerStatistics,
    TriggerReason,
)

STATISTICS_CACHE_KEY = "scheduler_statistics"


class TTLCache:
    """Time-based cache with TTL support."""

    def __init__(self, default_ttl_ms: int = 5 * 60 * 1000, clock: Callable[[], datetime] = datetime.now):
        self.cache: Dict[str, Tuple[Any, datetime]] = {}
        self.default_ttl_ms = default_ttl_ms
        self.clock = clock
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        with self._lock:
            if key in self.cache:
                value, expiry = self.cache[key]
                if self.clock() < expiry:
                    self.hits += 1
                    return value
                # Expired
                del self.cache[key]

            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Set value in cache with TTL."""
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        with self._lock:
            self.cache[key] = (value, self.clock() + timedelta(milliseconds=ttl))

    def delete(self, key: str) -> None:
        with self._lock:
            self.cache.pop(key, None)

    def clear(self) -> None:
        """Clear cache."""
        with self._lock:
            self.cache.clear()
            self.hits = 0
            self.misses = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0


def build_history_entry(job: RetrainingJob, entry_id: str, notes: Optional[str] = None) -> HistoryEntry:
    """
    Summarize a terminal job.

    New accuracy and improvement are only recorded for completed jobs.
    """
    validation = job.validation_result
    completed = job.status == RetrainingJobStatus.COMPLETED and validation is not None
    return HistoryEntry(
        entry_id=entry_id,
        job_id=job.job_id,
        model_type=job.model_type,
        trigger_reason=job.config.trigger_reason,
        status=job.status,
        previous_accuracy=validation.old_accuracy if validation else 0.0,
        training_samples=job.training_metrics.samples_used if job.training_metrics else 0,
        duration_ms=job.duration_ms or 0.0,
        timestamp=job.completed_at,
        new_accuracy=validation.new_accuracy if completed else None,
        improvement=validation.improvement if completed else None,
        notes=notes if notes is not None else job.error
    )


class HistoryLedger:
    """
    Append-only list of ``HistoryEntry`` records in finalization order.

    Example:
        >>> ledger = HistoryLedger()
        >>> ledger.append(entry)
        >>> ledger.query(model_type=RetrainableModelType.SIGNAL_TRACKER, limit=10)
    """

    def __init__(self):
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def query(
        self,
        model_type: Optional[RetrainableModelType] = None,
        status: Optional[RetrainingJobStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[HistoryEntry]:
        """
        Filter, then sort newest first, then skip ``offset``, then cap at ``limit``.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"Invalid limit: {limit}")
        if offset < 0:
            raise ValueError(f"Invalid offset: {offset}")

        with self._lock:
            entries = list(self._entries)

        if model_type is not None:
            entries = [e for e in entries if e.model_type == model_type]
        if status is not None:
            entries = [e for e in entries if e.status == status]

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        entries = entries[offset:]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def baseline_accuracy(self, model_type: RetrainableModelType, window: int = 5, default: float = 0.8) -> float:
        """Mean new accuracy over the last ``window`` completed retrainings."""
        with self._lock:
            accuracies = [
                e.new_accuracy for e in self._entries
                if e.model_type == model_type
                and e.status == RetrainingJobStatus.COMPLETED
                and e.new_accuracy is not None
            ]
        if not accuracies:
            return default
        return float(np.mean(accuracies[-window:]))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def compute_statistics(jobs: Iterable[RetrainingJob], active_schedules: int, now: datetime) -> SchedulerStatistics:
    """Aggregate scheduler statistics from the job table."""
    jobs = list(jobs)

    def count(status: RetrainingJobStatus) -> int:
        return sum(1 for j in jobs if j.status == status)

    durations = [j.duration_ms for j in jobs if j.duration_ms is not None]
    improvements = [
        j.validation_result.improvement_percent for j in jobs
        if j.status == RetrainingJobStatus.COMPLETED and j.validation_result is not None
    ]

    by_model_type = {model_type: 0 for model_type in RetrainableModelType}
    by_trigger_reason = {reason: 0 for reason in TriggerReason}
    for job in jobs:
        by_model_type[job.model_type] += 1
        by_trigger_reason[job.config.trigger_reason] += 1

    return SchedulerStatistics(
        total_jobs=len(jobs),
        successful_jobs=count(RetrainingJobStatus.COMPLETED),
        failed_jobs=count(RetrainingJobStatus.FAILED),
        rolled_back_jobs=count(RetrainingJobStatus.ROLLED_BACK),
        cancelled_jobs=count(RetrainingJobStatus.CANCELLED),
        avg_training_duration_ms=float(np.mean(durations)) if durations else 0.0,
        avg_improvement_percent=float(np.mean(improvements)) if improvements else 0.0,
        total_samples_used=sum(j.training_metrics.samples_used for j in jobs if j.training_metrics),
        active_schedules=active_schedules,
        jobs_by_model_type=by_model_type,
        jobs_by_trigger_reason=by_trigger_reason,
        last_updated=now
    )
