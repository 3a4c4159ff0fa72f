"""Workflow execution: dependency-gated scheduling, timeouts, cancellation."""

from .schemas import (
    TERMINAL_STEP_STATUSES,
    ExecutionState,
    ExecutionStatus,
    OrchestrationResult,
    StepError,
    StepState,
    StepStatus,
)
from .cancellation import CancellationRegistry, CancellationToken, get_cancellation_registry
from .step_runner import build_step_payload, coerce_result, invoke_capability
from .workflow_runner import (
    DEFAULT_STEP_TIMEOUT_MS,
    MAX_STEP_CONCURRENCY,
    POLL_INTERVAL_MS,
    WorkflowOrchestrator,
)

__all__ = [
    "TERMINAL_STEP_STATUSES",
    "ExecutionState",
    "ExecutionStatus",
    "OrchestrationResult",
    "StepError",
    "StepState",
    "StepStatus",
    "CancellationRegistry",
    "CancellationToken",
    "get_cancellation_registry",
    "build_step_payload",
    "coerce_result",
    "invoke_capability",
    "DEFAULT_STEP_TIMEOUT_MS",
    "MAX_STEP_CONCURRENCY",
    "POLL_INTERVAL_MS",
    "WorkflowOrchestrator",
]
