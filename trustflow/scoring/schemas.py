"""Score schemas."""

from pydantic import BaseModel, ConfigDict, Field

SIA_DIMENSIONS = ("security", "integrity", "accuracy")


class AggregatedScore(BaseModel):
    """Security/Integrity/Accuracy scores for one execution, each in [0, 100]."""

    model_config = ConfigDict(frozen=True)

    security: int = Field(..., ge=0, le=100)
    integrity: int = Field(..., ge=0, le=100)
    accuracy: int = Field(..., ge=0, le=100)

    @property
    def overall(self) -> int:
        return round((self.security + self.integrity + self.accuracy) / 3)

    def lowest(self) -> tuple[str, int]:
        """Weakest dimension, first in SIA order on ties."""
        return min(((d, getattr(self, d)) for d in SIA_DIMENSIONS), key=lambda item: item[1])
