"""Workflow schemas for capability execution graphs.

A workflow is a list of steps. Each step invokes one capability and may
declare dependencies on other steps; together the steps form a DAG.
Ordering comes only from the dependencies, never from list position.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

# Default per-step timeout when a step declares none
DEFAULT_STEP_TIMEOUT_MS = 30_000


class RetryPolicy(BaseModel):
    """How often a failed step is re-run, and how long to wait in between.

    The wait before retry ``n`` (1-based) is
    ``initial_delay_ms * backoff_multiplier ** (n - 1)``, capped at
    ``max_delay_ms``.
    """

    max_retries: int = Field(default=0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=60_000, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        if isinstance(data, dict):
            renames = {
                "attempts": "max_retries",
                "maxRetries": "max_retries",
                "backoffMultiplier": "backoff_multiplier",
                "delay": "initial_delay_ms",
                "maxDelay": "max_delay_ms",
            }
            for old_key, new_key in renames.items():
                if old_key in data and new_key not in data:
                    data[new_key] = data.pop(old_key)
        return data

    def delay_ms(self, retry: int) -> int:
        """Wait before the given retry (1 for the first retry)."""
        delay = self.initial_delay_ms * self.backoff_multiplier ** (retry - 1)
        return int(min(delay, self.max_delay_ms))


class WorkflowStep(BaseModel):
    """A single scheduled capability invocation."""

    id: str = Field(..., description="Unique step id within the workflow")
    name: str = Field(..., description="Human-readable name for this step")
    capability_id: str = Field(..., description="Capability invoked by this step")
    dependencies: list[str] = Field(
        default_factory=list,
        description="Step ids that must be terminal before this step may start",
    )
    optional: bool = Field(
        default=False,
        description="Optional steps may fail without failing the execution",
    )
    timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Per-step timeout; falls back to the executor default",
    )
    config: dict[str, Any] = Field(
        default_factory=dict,
        description="Step-level configuration merged into the capability payload",
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        """Accept camelCase keys used by exported workflow definitions."""
        if isinstance(data, dict):
            renames = {
                "agentId": "capability_id",
                "capabilityId": "capability_id",
                "timeout": "timeout_ms",
                "timeoutMs": "timeout_ms",
            }
            for old_key, new_key in renames.items():
                if old_key in data and new_key not in data:
                    data[new_key] = data.pop(old_key)
        return data

    @property
    def required(self) -> bool:
        return not self.optional


class WorkflowDefinition(BaseModel):
    """An executable workflow: steps plus an overall time budget."""

    steps: list[WorkflowStep] = Field(
        default_factory=list,
        description="Steps in declaration order (order breaks ties among ready steps)",
    )
    timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Whole-execution budget; defaults to the sum of per-step budgets",
    )
    timeout_multiplier: float = Field(
        default=1.0,
        gt=0,
        description="Scales the whole-execution budget, whichever way it is derived",
    )
    retry_policy: Optional[RetryPolicy] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if "timeout" in data and "timeout_ms" not in data:
                data["timeout_ms"] = data.pop("timeout")
            if "timeoutMultiplier" in data and "timeout_multiplier" not in data:
                data["timeout_multiplier"] = data.pop("timeoutMultiplier")
            if "retryPolicy" in data and "retry_policy" not in data:
                data["retry_policy"] = data.pop("retryPolicy")
        return data

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]

    def capability_ids(self) -> list[str]:
        return [s.capability_id for s in self.steps]
