"""Single-step execution: payload assembly and capability invocation.

``invoke_capability`` runs on a worker thread. It never catches the
capability's own exceptions; the scheduler settles them on its thread.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from trustflow.binder.schemas import Binding
from trustflow.capabilities.base import Capability
from trustflow.capabilities.schemas import CapabilityResult
from trustflow.errors import StepExecutionError
from trustflow.workflows.schemas import WorkflowStep

from .cancellation import CancellationToken
from .schemas import ExecutionState, StepStatus

logger = logging.getLogger(__name__)


def build_step_payload(
    step: WorkflowStep,
    binding: Binding,
    payload: dict[str, Any],
    state: ExecutionState,
) -> dict[str, Any]:
    """Assemble the payload one capability sees.

    The request payload is passed through, plus the binding context, the
    step's config, and the results of every step finished so far.
    """
    step_payload = dict(payload)
    step_payload.update(
        {
            "execution_id": state.execution_id,
            "step_id": step.id,
            "use_case_id": binding.use_case_id,
            "context": binding.context.model_dump(),
            "config": dict(step.config),
            "previous_results": {
                sid: s.result.model_dump()
                for sid, s in state.steps.items()
                if s.status == StepStatus.DONE and s.result is not None
            },
        }
    )
    return step_payload


def coerce_result(step_id: str, raw: Any) -> CapabilityResult:
    """Validate what a capability returned.

    Raises:
        StepExecutionError: the value is not a result or a dict of one.
    """
    if isinstance(raw, CapabilityResult):
        return raw
    if isinstance(raw, dict):
        try:
            return CapabilityResult.model_validate(raw)
        except ValidationError as e:
            raise StepExecutionError(step_id, f"invalid result: {e.error_count()} validation errors") from e
    raise StepExecutionError(step_id, f"unexpected result type {type(raw).__name__}")


def invoke_capability(
    step_id: str,
    capability: Capability,
    payload: dict[str, Any],
    cancellation: Optional[CancellationToken] = None,
) -> CapabilityResult:
    """Invoke a capability and validate its result (worker-thread side)."""
    if cancellation is not None:
        cancellation.raise_if_cancelled()
    logger.debug(f"Invoking {capability.capability_id} for step {step_id}")
    raw = capability.invoke(payload, cancellation)
    return coerce_result(step_id, raw)
