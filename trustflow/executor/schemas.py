"""Executor-side schemas for step state, execution state, and results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from trustflow.capabilities.schemas import CapabilityResult
from trustflow.scoring.schemas import AggregatedScore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    """Step lifecycle: pending -> runnable -> running -> terminal."""
    PENDING = "pending"
    RUNNABLE = "runnable"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    SKIPPED = "skipped"


TERMINAL_STEP_STATUSES = frozenset(
    {StepStatus.DONE, StepStatus.FAILED, StepStatus.TIMED_OUT, StepStatus.SKIPPED}
)


class ExecutionStatus(str, Enum):
    """Execution lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


class StepError(BaseModel):
    """A step-local error recorded instead of propagated."""

    step_id: str
    message: str
    kind: str = Field(description="Exception class name, e.g. StepTimeout")
    timestamp: datetime = Field(default_factory=utc_now)


class StepState(BaseModel):
    """Mutable per-step state, owned by one execution."""

    step_id: str
    capability_id: str
    optional: bool = False
    status: StepStatus = StepStatus.PENDING
    attempts: int = Field(default=0, description="Capability invocations so far, retries included")
    result: Optional[CapabilityResult] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at is None or self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)


class ExecutionState(BaseModel):
    """State of one execution while the scheduler runs it."""

    execution_id: str
    use_case_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    steps: dict[str, StepState] = Field(default_factory=dict)
    cancellation_requested: bool = False
    started_at: datetime = Field(default_factory=utc_now)

    def steps_with(self, *statuses: StepStatus) -> list[str]:
        return [sid for sid, s in self.steps.items() if s.status in statuses]


class OrchestrationResult(BaseModel):
    """Outcome of one execution."""

    execution_id: str
    use_case_id: str
    status: ExecutionStatus
    results: dict[str, CapabilityResult] = Field(
        default_factory=dict,
        description="Results of steps that finished as done, in declaration order",
    )
    steps: dict[str, StepState] = Field(default_factory=dict)
    scores: Optional[AggregatedScore] = None
    duration_ms: int = 0
    budget_ms: int = Field(default=0, description="Whole-execution time budget the run was held to")
    errors: list[StepError] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_partial(self) -> bool:
        """True when the run completed but some optional steps did not."""
        if self.status == ExecutionStatus.PARTIAL:
            return True
        return self.status == ExecutionStatus.COMPLETED and bool(self.errors)

    def step_status(self, step_id: str) -> Optional[StepStatus]:
        state = self.steps.get(step_id)
        return state.status if state else None
