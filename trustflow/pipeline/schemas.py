"""Request/response schemas for the end-to-end analysis pipeline."""

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from trustflow.classifier.schemas import ClassificationResult
from trustflow.executor.schemas import OrchestrationResult

PipelineStatus = Literal["success", "partial", "failed", "cancelled"]
SessionStatus = Literal["active", "completed", "partial", "failed", "cancelled"]

STAGE_CLASSIFICATION = "classification"
STAGE_BINDING = "binding"
STAGE_EXECUTION = "execution"
STAGE_REPORT = "report"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisRequest(BaseModel):
    """A request to analyze one prompt end to end."""

    prompt: str = Field(..., description="Free-text request to classify and analyze")
    use_case_id: Optional[str] = Field(
        default=None,
        description="Explicit use case; skips use-case inference when set",
    )
    session_id: Optional[str] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Document metadata (source, hash, uploaded_by, ...)",
    )
    metrics: dict[str, float] = Field(
        default_factory=dict,
        description="Numeric facts checked against the use case's thresholds",
    )
    strict: bool = Field(
        default=False,
        description="Fail the request when classification is ambiguous",
    )
    generate_report: bool = True


class StageError(BaseModel):
    stage: str
    error: str
    kind: str


class AnalysisResponse(BaseModel):
    """Outcome of one pipeline run."""

    session_id: str
    status: PipelineStatus
    classification: Optional[ClassificationResult] = None
    binding_id: Optional[str] = None
    use_case_id: Optional[str] = None
    execution: Optional[OrchestrationResult] = None
    report: Optional[dict[str, Any]] = None
    errors: list[StageError] = Field(default_factory=list)
    stages_completed: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utc_now)
    finished_at: Optional[datetime] = None
    processing_time_ms: int = 0


class PipelineSession(BaseModel):
    """Tracked state of one pipeline request."""

    id: str = Field(default_factory=lambda: f"session-{uuid.uuid4().hex[:12]}")
    status: SessionStatus = "active"
    request: AnalysisRequest
    execution_id: Optional[str] = None
    response: Optional[AnalysisResponse] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
