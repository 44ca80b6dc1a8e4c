"""
Timer Bank

One repeating timer per enabled interval schedule, keyed by schedule
id, on top of a private ``schedule.Scheduler``. The bank only holds
schedule ids; what happens on fire is decided by the callback the
orchestrator registers.
"""

from typing import List, Optional, Callable
from datetime import datetime
import threading

import schedule
from loguru import logger

TimerCallback = Callable[[str], None]


class TimerBank:
    """
    Repeating timers driven by a background polling thread.

    Callbacks run outside the bank's lock so they are free to start or
    stop timers themselves.

    Example:
        >>> bank = TimerBank(poll_interval_s=0.5)
        >>> bank.start_timer("schedule_1", interval_ms=60_000, callback=print)
        >>> bank.start()
        >>> bank.stop()
    """

    def __init__(self, poll_interval_s: float = 1.0):
        self.poll_interval_s = poll_interval_s
        self._scheduler = schedule.Scheduler()
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start_timer(self, schedule_id: str, interval_ms: int, callback: TimerCallback) -> None:
        """Start (or restart) the timer for ``schedule_id``."""
        if not interval_ms or interval_ms <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval_ms}")

        with self._lock:
            # Restart is idempotent: drop any prior timer for this schedule
            self._scheduler.clear(schedule_id)
            self._scheduler.every(interval_ms / 1000.0).seconds.do(callback, schedule_id).tag(schedule_id)

        logger.debug(f"Started timer for {schedule_id} every {interval_ms}ms")

    def stop_timer(self, schedule_id: str) -> bool:
        """Stop the timer for ``schedule_id``. Returns False if none was running."""
        with self._lock:
            if not self._scheduler.get_jobs(schedule_id):
                return False
            self._scheduler.clear(schedule_id)
        logger.debug(f"Stopped timer for {schedule_id}")
        return True

    def stop_all(self) -> None:
        with self._lock:
            self._scheduler.clear()

    def is_running(self, schedule_id: str) -> bool:
        with self._lock:
            return bool(self._scheduler.get_jobs(schedule_id))

    def active_timer_ids(self) -> List[str]:
        with self._lock:
            return sorted({tag for job in self._scheduler.jobs for tag in job.tags})

    def next_run(self, schedule_id: str) -> Optional[datetime]:
        with self._lock:
            jobs = self._scheduler.get_jobs(schedule_id)
            return jobs[0].next_run if jobs else None

    def run_pending(self) -> int:
        """Fire every timer that is due. Returns the number fired."""
        with self._lock:
            due = [job for job in self._scheduler.jobs if job.should_run]
        for job in due:
            job.run()
        return len(due)

    def run_all(self) -> int:
        """Fire every timer now, regardless of when it is due."""
        with self._lock:
            jobs = list(self._scheduler.jobs)
        for job in jobs:
            job.run()
        return len(jobs)

    @property
    def is_started(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_started:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="retraining-timer-bank",
            daemon=True
        )
        self._thread.start()
        logger.info("Started timer loop")

    def stop(self) -> None:
        """Stop the polling thread. Registered timers are kept."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self.poll_interval_s * 2, 1.0))
        self._thread = None
        logger.info("Stopped timer loop")

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval_s):
            try:
                self.run_pending()
            except Exception:
                logger.exception("Timer callback failed")
