"""Audit sinks.

The orchestrator records events fire-and-forget through ``safe_record``:
a failing sink is logged and never aborts an execution.
"""

import logging
import threading
from typing import Optional, Protocol, runtime_checkable

from .schemas import AuditEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditRecorder(Protocol):
    """Anything with a ``record(event)`` method."""

    def record(self, event: AuditEvent) -> None: ...


class LoggingAuditRecorder:
    """Writes audit events to a logger."""

    def __init__(self, logger_name: str = "trustflow.audit.trail", level: int = logging.INFO):
        self._logger = logging.getLogger(logger_name)
        self.level = level

    def record(self, event: AuditEvent) -> None:
        step = f" step={event.step_id}" if event.step_id else ""
        status = f" status={event.status}" if event.status else ""
        self._logger.log(
            self.level,
            f"[{event.execution_id}] {event.event_type}{step}{status}"
            + (f": {event.message}" if event.message else ""),
        )


class InMemoryAuditTrail:
    """Keeps events in memory, in arrival order."""

    def __init__(self, max_events: Optional[int] = None):
        self.max_events = max_events
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)
            if self.max_events is not None and len(self._events) > self.max_events:
                del self._events[: len(self._events) - self.max_events]

    def events(
        self,
        execution_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> list[AuditEvent]:
        with self._lock:
            found = list(self._events)
        if execution_id:
            found = [e for e in found if e.execution_id == execution_id]
        if event_type:
            found = [e for e in found if e.event_type == event_type]
        return found

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class CompositeAuditRecorder:
    """Fans each event out to several recorders.

    A failing recorder does not stop the others.
    """

    def __init__(self, recorders: list[AuditRecorder]):
        self.recorders = list(recorders)

    def record(self, event: AuditEvent) -> None:
        for recorder in self.recorders:
            safe_record(recorder, event)


def safe_record(recorder: Optional[AuditRecorder], event: AuditEvent) -> bool:
    """Record an event best-effort. Returns False if the recorder failed."""
    if recorder is None:
        return True
    try:
        recorder.record(event)
        return True
    except Exception as e:
        logger.warning(
            f"Audit record failed for {event.event_type} "
            f"({event.execution_id}) (non-fatal): {e}"
        )
        return False
