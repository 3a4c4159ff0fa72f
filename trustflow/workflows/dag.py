"""Dependency-graph helpers for workflows.

Three baseline capabilities run before every workflow, in fixed order:
security-sentinel -> integrity-auditor -> accuracy-engine. They are not
part of any use-case workflow; the executor prepends them and makes every
workflow step depend on the last one.
"""

import logging

from trustflow.errors import WorkflowValidationError
from trustflow.workflows.schemas import (
    DEFAULT_STEP_TIMEOUT_MS,
    WorkflowDefinition,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

BASELINE_CAPABILITIES: tuple[str, ...] = (
    "security-sentinel",
    "integrity-auditor",
    "accuracy-engine",
)

BASELINE_STEP_IDS: dict[str, str] = {
    "security-sentinel": "security-check",
    "integrity-auditor": "integrity-check",
    "accuracy-engine": "accuracy-check",
}

_BASELINE_STEP_NAMES: dict[str, str] = {
    "security-sentinel": "Security Validation",
    "integrity-auditor": "Integrity Verification",
    "accuracy-engine": "Accuracy Validation",
}


def is_baseline_capability(capability_id: str) -> bool:
    return capability_id in BASELINE_CAPABILITIES


def baseline_steps() -> list[WorkflowStep]:
    """Build the required baseline steps, chained in fixed order."""
    steps: list[WorkflowStep] = []
    previous: str | None = None
    for capability_id in BASELINE_CAPABILITIES:
        step_id = BASELINE_STEP_IDS[capability_id]
        steps.append(
            WorkflowStep(
                id=step_id,
                name=_BASELINE_STEP_NAMES[capability_id],
                capability_id=capability_id,
                dependencies=[previous] if previous else [],
                optional=False,
            )
        )
        previous = step_id
    return steps


def validate_workflow(workflow: WorkflowDefinition) -> None:
    """Check that a workflow is a well-formed DAG.

    Raises:
        WorkflowValidationError: on duplicate or reserved step ids, baseline
            capabilities inside the workflow, unknown or self dependencies,
            or a dependency cycle.
    """
    baseline_ids = set(BASELINE_STEP_IDS.values())
    seen: set[str] = set()

    for step in workflow.steps:
        if step.id in seen:
            raise WorkflowValidationError(f"Duplicate step id: {step.id}")
        if step.id in baseline_ids:
            raise WorkflowValidationError(
                f"Step id {step.id} is reserved for a baseline step"
            )
        if is_baseline_capability(step.capability_id):
            raise WorkflowValidationError(
                f"Step {step.id} uses baseline capability {step.capability_id}; "
                f"baseline capabilities are scheduled ahead of every workflow"
            )
        seen.add(step.id)

    known = seen | baseline_ids
    for step in workflow.steps:
        for dep in step.dependencies:
            if dep == step.id:
                raise WorkflowValidationError(f"Step {step.id} depends on itself")
            if dep not in known:
                raise WorkflowValidationError(
                    f"Step {step.id} depends on unknown step {dep}"
                )

    cycle = find_cycle(workflow.steps)
    if cycle:
        raise WorkflowValidationError(
            f"Dependency cycle detected: {' -> '.join(cycle)}"
        )


def find_cycle(steps: list[WorkflowStep]) -> list[str]:
    """Return one dependency cycle as a list of step ids, or [] if acyclic.

    Dependencies outside ``steps`` are ignored.
    """
    deps = {s.id: [d for d in s.dependencies] for s in steps}
    white, grey, black = 0, 1, 2
    color = {step_id: white for step_id in deps}
    parent: dict[str, str] = {}

    for root in deps:
        if color[root] != white:
            continue
        stack = [(root, iter(deps[root]))]
        color[root] = grey
        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if child not in color:
                    continue
                if color[child] == grey:
                    # Walk back from node to child to recover the cycle
                    cycle = [child, node]
                    cursor = node
                    while cursor != child:
                        cursor = parent[cursor]
                        cycle.append(cursor)
                    cycle.reverse()
                    return cycle
                if color[child] == white:
                    parent[child] = node
                    color[child] = grey
                    stack.append((child, iter(deps[child])))
                    advanced = True
                    break
            if not advanced:
                color[node] = black
                stack.pop()
    return []


def schedule_steps(workflow: WorkflowDefinition) -> list[WorkflowStep]:
    """Full step list for execution: baseline steps, then workflow steps.

    Every workflow step gains an implicit dependency on the last baseline
    step, so no vertical-specific or dynamic step starts before the baseline
    tier has finished.
    """
    baseline = baseline_steps()
    gate = baseline[-1].id
    scheduled = list(baseline)
    for step in workflow.steps:
        deps = list(step.dependencies)
        if gate not in deps:
            deps.append(gate)
        scheduled.append(step.model_copy(update={"dependencies": deps}, deep=True))
    return scheduled


def execution_groups(steps: list[WorkflowStep]) -> list[list[WorkflowStep]]:
    """Group steps into dependency tiers (Kahn's algorithm).

    Steps within a group have all dependencies in earlier groups and could
    run in parallel. Declaration order is kept inside each group.

    Example for a lease review:
    - Group 1: [security-check]
    - Group 2: [integrity-check]
    - Group 3: [accuracy-check]
    - Group 4: [domain-analysis]
    - Group 5: [lease-validation, dynamic-mineral-rights-analyzer]
    """
    lookup = {s.id: s for s in steps}
    deps = {s.id: set(s.dependencies) & lookup.keys() for s in steps}
    remaining = [s.id for s in steps]
    groups: list[list[WorkflowStep]] = []

    while remaining:
        pending = set(remaining)
        ready = [sid for sid in remaining if not (deps[sid] & pending)]
        if not ready:
            raise WorkflowValidationError(
                f"Could not resolve dependencies for steps: {remaining}"
            )
        groups.append([lookup[sid] for sid in ready])
        remaining = [sid for sid in remaining if sid not in ready]

    return groups


def execution_budget_ms(
    workflow: WorkflowDefinition,
    default_step_timeout_ms: int = DEFAULT_STEP_TIMEOUT_MS,
) -> int:
    """Whole-execution time budget for a workflow.

    Uses the workflow's explicit timeout when set, otherwise the sum of the
    per-step budgets of every scheduled step (baseline included). Either
    way the result is scaled by ``workflow.timeout_multiplier``.
    """
    if workflow.timeout_ms is not None:
        budget = workflow.timeout_ms
    else:
        budget = sum(
            s.timeout_ms or default_step_timeout_ms for s in schedule_steps(workflow)
        )
    return int(budget * workflow.timeout_multiplier)
