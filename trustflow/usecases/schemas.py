"""Use-case schemas.

A use case is a named, pre-configured analysis scenario within a vertical.
It carries the base workflow that the binder customizes per request, plus
the regulatory context and numeric thresholds handed to capabilities.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from trustflow.workflows.schemas import WorkflowDefinition


class Threshold(BaseModel):
    """Inclusive bounds for a numeric metric. Either side may be open."""

    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class BaselineScores(BaseModel):
    """Declared starting point for SIA score aggregation."""

    security: float = Field(default=75, ge=0, le=100)
    integrity: float = Field(default=75, ge=0, le=100)
    accuracy: float = Field(default=75, ge=0, le=100)


class UseCaseDefinition(BaseModel):
    """Definition of a use case as loaded from the catalog."""

    id: str = Field(..., description="Unique use-case id (kebab-case)")
    name: str = Field(..., description="Human-readable name")
    description: str = Field(default="", description="What this use case reviews")
    vertical: str = Field(..., description="Industry vertical this use case belongs to")
    workflow: WorkflowDefinition = Field(
        default_factory=WorkflowDefinition,
        description="Base workflow; never mutated at runtime",
    )
    required_capabilities: list[str] = Field(default_factory=list)
    regulations: list[str] = Field(default_factory=list)
    thresholds: dict[str, Threshold] = Field(default_factory=dict)
    baseline_scores: BaselineScores = Field(default_factory=BaselineScores)
    domain_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Static domain context copied into every binding",
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        if isinstance(data, dict):
            renames = {
                "requiredAgents": "required_capabilities",
                "requiredCapabilities": "required_capabilities",
                "siaScores": "baseline_scores",
                "baseWorkflow": "workflow",
            }
            for old_key, new_key in renames.items():
                if old_key in data and new_key not in data:
                    data[new_key] = data.pop(old_key)
        return data

    def name_tokens(self) -> list[str]:
        """Lower-cased whitespace tokens of the name, for keyword matching."""
        return self.name.lower().split()


class UseCaseSummary(BaseModel):
    """Lightweight use-case info for listings."""

    id: str
    name: str
    vertical: str
    step_count: int
    regulations: list[str]
