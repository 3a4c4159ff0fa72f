"""Exception taxonomy shared across the pipeline.

Only binding/setup errors propagate to callers of the orchestrator.
Step-local errors (missing/disabled capability, timeout, execution error)
are caught by the executor and recorded on the step instead.
"""

from typing import Any, Optional


class TrustflowError(Exception):
    """Base class for all trustflow errors."""


class ClassificationAmbiguous(TrustflowError):
    """The classifier could not confidently place the request.

    Non-fatal by default: surfaced as low confidence on the result.
    Raised only when classification is run in strict mode.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class UseCaseNotFound(TrustflowError, LookupError):
    """Use-case resolution produced an id absent from the catalog."""

    def __init__(self, use_case_id: str):
        super().__init__(f"Use case not found: {use_case_id}")
        self.use_case_id = use_case_id


class WorkflowValidationError(TrustflowError, ValueError):
    """A workflow is not a valid dependency DAG."""


class CapabilityNotFound(TrustflowError, LookupError):
    """No capability is registered under the requested id."""

    def __init__(self, capability_id: str):
        super().__init__(f"Capability {capability_id} not found")
        self.capability_id = capability_id


class CapabilityDisabled(TrustflowError):
    """The capability exists but is currently disabled."""

    def __init__(self, capability_id: str):
        super().__init__(f"Capability {capability_id} is disabled")
        self.capability_id = capability_id


class StepTimeout(TrustflowError, TimeoutError):
    """A step did not respond within its time budget."""

    def __init__(self, step_id: str, timeout_ms: int, budget_exhausted: bool = False):
        if budget_exhausted:
            message = f"Step {step_id} exceeded the remaining execution budget ({timeout_ms}ms)"
        else:
            message = f"Step {step_id} timed out after {timeout_ms}ms"
        super().__init__(message)
        self.step_id = step_id
        self.timeout_ms = timeout_ms


class StepExecutionError(TrustflowError):
    """A capability raised or returned an unusable result."""

    def __init__(self, step_id: str, message: str):
        super().__init__(f"Step {step_id} failed: {message}")
        self.step_id = step_id


class ExecutionCancelled(TrustflowError, InterruptedError):
    """Cancellation was requested for the execution.

    Subclasses InterruptedError, the executor's cancellation signal.
    """

    def __init__(self, execution_id: str, result: Optional[Any] = None):
        super().__init__(f"Execution {execution_id} cancelled")
        self.execution_id = execution_id
        self.result = result


class DuplicateExecution(TrustflowError):
    """An execution with the same id is already running."""

    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} is already running")
        self.execution_id = execution_id
