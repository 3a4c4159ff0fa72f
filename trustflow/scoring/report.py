"""Report payload built from an orchestration result.

The payload is the input handed to the report trigger: scores, critical
issues, recommendations, per-step results, and execution metrics.
"""

from typing import TYPE_CHECKING, Any

from .schemas import SIA_DIMENSIONS

if TYPE_CHECKING:
    from trustflow.executor.schemas import OrchestrationResult

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Advice attached when a dimension scores below RECOMMENDATION_THRESHOLD
SCORE_RECOMMENDATIONS = {
    "security": "Enhance security measures to improve protection against threats",
    "integrity": "Implement additional data validation and integrity checks",
    "accuracy": "Review and optimize AI model accuracy parameters",
}
RECOMMENDATION_THRESHOLD = 80


def build_report_payload(result: "OrchestrationResult") -> dict[str, Any]:
    """Build the report trigger's input from an orchestration result."""
    flags: list[dict[str, Any]] = []
    for step_id, step_result in result.results.items():
        for flag in step_result.flags:
            flags.append({"step_id": step_id, **flag.model_dump()})
    # sort is stable, so flags keep step order within a severity
    flags.sort(key=lambda f: SEVERITY_ORDER.get(f["severity"], len(SEVERITY_ORDER)))

    recommendations: list[str] = []
    if result.scores is not None:
        for dimension in SIA_DIMENSIONS:
            if getattr(result.scores, dimension) < RECOMMENDATION_THRESHOLD:
                recommendations.append(SCORE_RECOMMENDATIONS[dimension])
    for step_result in result.results.values():
        recommendations.extend(step_result.recommendations)
    recommendations = list(dict.fromkeys(recommendations))

    per_step_results = {}
    for step_id, state in result.steps.items():
        step_result = result.results.get(step_id)
        per_step_results[step_id] = {
            "capability_id": state.capability_id,
            "status": state.status.value,
            "type": step_result.type if step_result else None,
            "score": step_result.score if step_result else None,
            "confidence": step_result.confidence if step_result else None,
            "flag_count": len(step_result.flags) if step_result else 0,
            "error": state.error,
            "attempts": state.attempts,
            "duration_ms": state.duration_ms,
        }

    critical_issues = [f for f in flags if f["severity"] == "critical"]

    return {
        "execution_id": result.execution_id,
        "use_case_id": result.use_case_id,
        "status": result.status.value,
        "scores": result.scores.model_dump() if result.scores else None,
        "critical_issues": critical_issues,
        "flags": flags,
        "recommendations": recommendations,
        "per_step_results": per_step_results,
        "errors": [e.model_dump(mode="json") for e in result.errors],
        "metrics": {
            "total_steps": len(result.steps),
            "steps_executed": len(result.results),
            "total_flags": len(flags),
            "critical_flags": len(critical_issues),
            "processing_time_ms": {
                step_id: state.duration_ms for step_id, state in result.steps.items()
            },
            "duration_ms": result.duration_ms,
            "budget_ms": result.budget_ms,
        },
    }
