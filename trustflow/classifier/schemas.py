"""Schemas for prompt classification and its routing tables."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A typed span extracted from the request text."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="date, money, percentage, organization, or location")
    value: str


class ClassificationResult(BaseModel):
    """Outcome of classifying one request. Produced once, never mutated."""

    model_config = ConfigDict(frozen=True)

    vertical: Optional[str] = Field(default=None, description="Detected vertical, None if no keyword matched")
    use_case: Optional[str] = Field(default=None, description="First matching use-case pattern")
    keywords: list[str] = Field(
        default_factory=list,
        description="Distinct keywords in first-seen order (set semantics)",
    )
    entities: list[Entity] = Field(default_factory=list)
    intent: str = "general-analysis"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    suggested_capabilities: list[str] = Field(
        default_factory=list,
        description="Capabilities the binder may add to the workflow",
    )
    ambiguous: bool = Field(
        default=False,
        description="True when confidence is below the routing table's threshold",
    )


class VerticalProfile(BaseModel):
    """Keyword profile for one vertical."""

    key: str
    keywords: list[str] = Field(default_factory=list)
    domain_capability: Optional[str] = None


class UseCasePattern(BaseModel):
    """Ordered regex patterns that identify a use case."""

    id: str
    vertical: str
    patterns: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(
        default_factory=list,
        description="Use-case specific capabilities suggested to the binder",
    )


class RoutingConfig(BaseModel):
    """Full routing table as stored in routing.yaml."""

    min_confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    general_capability: str = "general-domain-agent"
    stopwords: list[str] = Field(default_factory=list)
    phrases: list[str] = Field(default_factory=list)
    verticals: list[VerticalProfile] = Field(default_factory=list)
    use_cases: list[UseCasePattern] = Field(default_factory=list)
