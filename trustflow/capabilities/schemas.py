"""Capability result and rule schemas."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Severity = Literal["low", "medium", "high", "critical"]

# Result types that feed the SIA score dimensions
SCORED_TYPES = ("security", "integrity", "accuracy")


class Flag(BaseModel):
    """An issue raised by a capability."""

    severity: Severity = "medium"
    category: str = Field(default="general", description="Score dimension or topic the flag concerns")
    message: Optional[str] = None


class CapabilityResult(BaseModel):
    """What a capability returns for one step.

    Only ``score``, ``confidence``, ``type`` and ``flags`` are read by the
    score aggregator. Extra keys are kept as-is for reporting.
    """

    model_config = ConfigDict(extra="allow")

    score: Optional[float] = Field(default=None, ge=0, le=100)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    type: Optional[str] = Field(default=None, description="security, integrity, accuracy, or domain")
    flags: list[Flag] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    processing_time_ms: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        if isinstance(data, dict) and "processingTime" in data and "processing_time_ms" not in data:
            data = dict(data)
            data["processing_time_ms"] = data.pop("processingTime")
        return data

    def critical_flags(self) -> list[Flag]:
        return [f for f in self.flags if f.severity == "critical"]


class CapabilityRule(BaseModel):
    """One scoring rule of a built-in capability.

    kinds:
    - pattern: regex searched in the request text
    - missing_field: dotted payload path that must be present; a nested
      path is only checked when its parent exists
    - thresholds: payload metrics checked against the use-case thresholds,
      one penalty per metric out of range
    - arithmetic: ``a op b = c`` statements in the text that do not hold
    """

    kind: Literal["pattern", "missing_field", "thresholds", "arithmetic"]
    pattern: Optional[str] = None
    field: Optional[str] = None
    penalty: float = Field(default=10, ge=0)
    severity: Severity = "medium"
    category: Optional[str] = Field(default=None, description="Defaults to the capability type")
    message: str = ""


class BuiltinCapabilitySpec(BaseModel):
    """Definition of a rule-based capability as stored in builtin.yaml."""

    id: str
    name: str
    type: str = "domain"
    description: str = ""
    base_score: float = Field(default=100, ge=0, le=100)
    base_confidence: float = Field(default=0.9, ge=0, le=1)
    enabled: bool = True
    rules: list[CapabilityRule] = Field(default_factory=list)
    recommendation: Optional[str] = Field(
        default=None,
        description="Advice attached when the score falls below recommend_below",
    )
    recommend_below: float = 80
