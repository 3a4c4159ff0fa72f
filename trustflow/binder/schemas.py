"""Binding schemas: a classified request attached to a concrete workflow."""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from trustflow.classifier.schemas import ClassificationResult
from trustflow.usecases.schemas import Threshold
from trustflow.workflows.schemas import WorkflowDefinition


class BindingContext(BaseModel):
    """Use-case context handed to every capability in the execution."""

    model_config = ConfigDict(frozen=True)

    vertical: str
    use_case: str
    regulations: list[str] = Field(default_factory=list)
    thresholds: dict[str, Threshold] = Field(default_factory=dict)
    domain_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Use-case domain data plus entities extracted from the request",
    )


class Binding(BaseModel):
    """Result of binding a classification to a use case.

    Frozen at the top level only: ``frozen`` does not reach into the nested
    ``workflow`` model, which stays mutable. ``workflow`` is the
    customized per-request copy (the catalog's base workflow is left
    untouched); treat it as read-only once bound. The executor schedules
    from deep copies of its steps and never writes back to it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"bind-{uuid.uuid4().hex[:12]}")
    use_case_id: str
    classification: ClassificationResult
    workflow: WorkflowDefinition
    context: BindingContext
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
