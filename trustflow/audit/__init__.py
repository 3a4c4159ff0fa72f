"""Audit collaborator: event schema, sinks, and the field-extractor hook."""

from .schemas import (
    EXECUTION_FINISHED,
    EXECUTION_STARTED,
    STEP_DONE,
    STEP_FAILED,
    STEP_SKIPPED,
    STEP_TIMED_OUT,
    AuditEvent,
)
from .fields import FieldExtractor, FieldExtractorRegistry
from .recorder import (
    AuditRecorder,
    CompositeAuditRecorder,
    InMemoryAuditTrail,
    LoggingAuditRecorder,
    safe_record,
)

__all__ = [
    "EXECUTION_FINISHED",
    "EXECUTION_STARTED",
    "STEP_DONE",
    "STEP_FAILED",
    "STEP_SKIPPED",
    "STEP_TIMED_OUT",
    "AuditEvent",
    "FieldExtractor",
    "FieldExtractorRegistry",
    "AuditRecorder",
    "CompositeAuditRecorder",
    "InMemoryAuditTrail",
    "LoggingAuditRecorder",
    "safe_record",
]
