"""Workflow definitions: steps, dependencies, and the baseline tier."""

from .schemas import DEFAULT_STEP_TIMEOUT_MS, RetryPolicy, WorkflowDefinition, WorkflowStep
from .dag import (
    BASELINE_CAPABILITIES,
    BASELINE_STEP_IDS,
    baseline_steps,
    execution_budget_ms,
    execution_groups,
    find_cycle,
    is_baseline_capability,
    schedule_steps,
    validate_workflow,
)

__all__ = [
    "DEFAULT_STEP_TIMEOUT_MS",
    "RetryPolicy",
    "WorkflowDefinition",
    "WorkflowStep",
    "BASELINE_CAPABILITIES",
    "BASELINE_STEP_IDS",
    "baseline_steps",
    "execution_budget_ms",
    "execution_groups",
    "find_cycle",
    "is_baseline_capability",
    "schedule_steps",
    "validate_workflow",
]
