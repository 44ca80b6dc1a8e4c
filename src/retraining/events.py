"""
Retraining Notifications

Observer-style notification channel. Listeners register per event type
(or for every event) and receive an ``Event`` carrying identifiers and a
small payload. Events are notifications only: listeners look up full
state through the orchestrator's query methods.
"""

from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import threading

from loguru import logger


class EventType(str, Enum):
    """Observable orchestrator events."""
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_UPDATED = "schedule_updated"
    SCHEDULE_DELETED = "schedule_deleted"
    JOB_CREATED = "job_created"
    JOB_STARTED = "job_started"
    JOB_PROGRESS = "job_progress"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_ROLLED_BACK = "job_rolled_back"
    JOB_CANCELLED = "job_cancelled"
    VALIDATION_PASSED = "validation_passed"
    VALIDATION_FAILED = "validation_failed"
    MODEL_DEPLOYED = "model_deployed"
    PERFORMANCE_TRIGGER = "performance_trigger"
    DATA_VOLUME_TRIGGER = "data_volume_trigger"
    ERROR = "error"


@dataclass(frozen=True)
class Event:
    """A single notification."""
    event_type: EventType
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)


Listener = Callable[[Event], None]


class EventBus:
    """
    Thread-safe callback registry.

    A listener that raises is logged and skipped; it never affects the
    publisher or the other listeners.

    Example:
        >>> bus = EventBus()
        >>> unsubscribe = bus.subscribe(EventType.JOB_COMPLETED, lambda e: print(e.payload))
        >>> _ = bus.publish(EventType.JOB_COMPLETED, job_id="job_1")
        {'job_id': 'job_1'}
        >>> unsubscribe()
    """

    def __init__(self):
        self._listeners: Dict[Optional[EventType], List[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Optional[EventType], listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            event_type: Event type to listen for, or None for all events
            listener: Callable receiving the ``Event``

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)
        return lambda: self.unsubscribe(event_type, listener)

    def unsubscribe(self, event_type: Optional[EventType], listener: Listener) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener not in listeners:
                return False
            listeners.remove(listener)
            return True

    def publish(self, event_type: EventType, **payload: Any) -> Event:
        """Deliver an event to type-specific listeners, then catch-all listeners."""
        event = Event(event_type=event_type, payload=payload)
        with self._lock:
            listeners = list(self._listeners.get(event_type, [])) + list(self._listeners.get(None, []))

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed while handling {event_type.value}")
        return event

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        with self._lock:
            return len(self._listeners.get(event_type, []))

    def clear(self) -> None:
        """Drop every listener."""
        with self._lock:
            self._listeners.clear()
