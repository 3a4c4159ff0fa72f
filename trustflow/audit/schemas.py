"""Audit event schema."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

# Event types emitted by the orchestrator
EXECUTION_STARTED = "execution.started"
EXECUTION_FINISHED = "execution.finished"
STEP_DONE = "step.done"
STEP_FAILED = "step.failed"
STEP_TIMED_OUT = "step.timed-out"
STEP_SKIPPED = "step.skipped"
STEP_RETRYING = "step.retrying"


class AuditEvent(BaseModel):
    """One auditable occurrence during an execution."""

    event_type: str
    execution_id: str
    use_case_id: Optional[str] = None
    step_id: Optional[str] = None
    capability_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    duration_ms: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Custom per-use-case fields added by field extractors",
    )
