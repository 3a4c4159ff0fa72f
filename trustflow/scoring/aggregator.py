"""SIA score aggregation.

Starting from a use case's baseline scores, each step result typed as
security, integrity or accuracy is blended into its dimension:

    new = old * (1 - c) + score * c

where ``c`` is the result's confidence (0.5 when absent) clamped to [0, 1].
After all blending, every critical flag costs 5 points in the dimension
named by its category. Dimensions are then rounded and clamped to [0, 100].
"""

from collections.abc import Iterable, Mapping
from typing import Any, Union

from trustflow.capabilities.schemas import CapabilityResult

from .schemas import SIA_DIMENSIONS, AggregatedScore

DEFAULT_CONFIDENCE = 0.5
CRITICAL_FLAG_PENALTY = 5

ResultLike = Union[CapabilityResult, Mapping[str, Any]]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _base_value(base_scores: Any, dimension: str) -> float:
    if isinstance(base_scores, Mapping):
        return float(base_scores.get(dimension, 0))
    return float(getattr(base_scores, dimension))


def aggregate(base_scores: Any, step_results: Iterable[ResultLike]) -> AggregatedScore:
    """Aggregate step results into SIA scores.

    Args:
        base_scores: ``BaselineScores`` or a mapping with security, integrity
            and accuracy keys.
        step_results: Results in a stable order; blending is order-sensitive.
    """
    scores = {d: _base_value(base_scores, d) for d in SIA_DIMENSIONS}
    results = [
        r if isinstance(r, CapabilityResult) else CapabilityResult.model_validate(dict(r))
        for r in step_results
    ]

    for result in results:
        if result.type not in SIA_DIMENSIONS or result.score is None:
            continue
        confidence = DEFAULT_CONFIDENCE if result.confidence is None else result.confidence
        c = _clamp(confidence, 0.0, 1.0)
        scores[result.type] = scores[result.type] * (1 - c) + result.score * c

    for result in results:
        for flag in result.critical_flags():
            if flag.category in scores:
                scores[flag.category] -= CRITICAL_FLAG_PENALTY

    return AggregatedScore(
        **{d: int(_clamp(round(v), 0, 100)) for d, v in scores.items()}
    )
