"""Tests for workflow validation and dependency scheduling."""

import pytest

from trustflow.errors import WorkflowValidationError
from trustflow.workflows import (
    BASELINE_STEP_IDS,
    RetryPolicy,
    WorkflowDefinition,
    WorkflowStep,
    baseline_steps,
    execution_budget_ms,
    execution_groups,
    find_cycle,
    schedule_steps,
    validate_workflow,
)


def _workflow(*steps: dict, timeout_ms=None) -> WorkflowDefinition:
    return WorkflowDefinition(steps=[WorkflowStep(**s) for s in steps], timeout_ms=timeout_ms)


def _step(step_id: str, deps=(), capability_id=None, **extra) -> dict:
    return {
        "id": step_id,
        "name": step_id.title(),
        "capability_id": capability_id or f"{step_id}-agent",
        "dependencies": list(deps),
        **extra,
    }


def test_valid_workflow_passes():
    validate_workflow(_workflow(_step("a"), _step("b", ["a"]), _step("c", ["a", "b"])))


def test_cycle_is_rejected_with_path():
    workflow = _workflow(_step("a", ["c"]), _step("b", ["a"]), _step("c", ["b"]))

    with pytest.raises(WorkflowValidationError, match="cycle"):
        validate_workflow(workflow)

    cycle = find_cycle(workflow.steps)
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}


def test_self_dependency_is_rejected():
    with pytest.raises(WorkflowValidationError, match="itself"):
        validate_workflow(_workflow(_step("a", ["a"])))


def test_unknown_dependency_is_rejected():
    with pytest.raises(WorkflowValidationError, match="unknown step"):
        validate_workflow(_workflow(_step("a", ["missing"])))


def test_duplicate_step_ids_are_rejected():
    with pytest.raises(WorkflowValidationError, match="Duplicate"):
        validate_workflow(_workflow(_step("a"), _step("a")))


def test_baseline_capability_inside_workflow_is_rejected():
    with pytest.raises(WorkflowValidationError, match="baseline"):
        validate_workflow(_workflow(_step("scan", capability_id="security-sentinel")))


def test_reserved_baseline_step_id_is_rejected():
    with pytest.raises(WorkflowValidationError, match="reserved"):
        validate_workflow(_workflow(_step("security-check")))


def test_baseline_step_ids_are_valid_dependencies():
    validate_workflow(_workflow(_step("a", ["integrity-check"])))


def test_baseline_steps_are_chained_and_required():
    steps = baseline_steps()

    assert [s.id for s in steps] == list(BASELINE_STEP_IDS.values())
    assert steps[0].dependencies == []
    assert steps[1].dependencies == [steps[0].id]
    assert steps[2].dependencies == [steps[1].id]
    assert all(s.required for s in steps)


def test_schedule_steps_gates_workflow_on_baseline():
    workflow = _workflow(_step("a"), _step("b", ["a"]))
    scheduled = schedule_steps(workflow)

    assert [s.id for s in scheduled] == [
        "security-check", "integrity-check", "accuracy-check", "a", "b",
    ]
    assert scheduled[3].dependencies == ["accuracy-check"]
    assert scheduled[4].dependencies == ["a", "accuracy-check"]
    # the definition itself is not touched
    assert workflow.steps[0].dependencies == []


def test_execution_groups_follow_dependency_tiers():
    steps = schedule_steps(
        _workflow(_step("domain"), _step("lease", ["domain"]), _step("rights", ["domain"]))
    )
    groups = [[s.id for s in g] for g in execution_groups(steps)]

    assert groups == [
        ["security-check"],
        ["integrity-check"],
        ["accuracy-check"],
        ["domain"],
        ["lease", "rights"],
    ]


def test_execution_groups_reject_unresolvable_steps():
    workflow = _workflow(_step("a", ["b"]), _step("b", ["a"]))

    with pytest.raises(WorkflowValidationError):
        execution_groups(workflow.steps)


def test_execution_budget_uses_explicit_timeout():
    assert execution_budget_ms(_workflow(_step("a"), timeout_ms=5000)) == 5000


def test_execution_budget_sums_step_budgets_including_baseline():
    workflow = _workflow(_step("a", timeout_ms=1000), _step("b"))

    # three baseline steps and "b" use the default
    assert execution_budget_ms(workflow, default_step_timeout_ms=2000) == 4 * 2000 + 1000


def test_camel_case_step_keys_are_accepted():
    step = WorkflowStep.model_validate(
        {"id": "a", "name": "A", "agentId": "energy-domain-agent", "timeout": 1500}
    )

    assert step.capability_id == "energy-domain-agent"
    assert step.timeout_ms == 1500


def test_timeout_multiplier_scales_the_derived_budget():
    workflow = _workflow(_step("a"))
    workflow.timeout_multiplier = 1.5

    # scaled after summing with the caller's step default, not the built-in one
    assert execution_budget_ms(workflow, default_step_timeout_ms=60_000) == int(4 * 60_000 * 1.5)


def test_timeout_multiplier_scales_an_explicit_timeout():
    workflow = _workflow(_step("a"), timeout_ms=10_000)
    workflow.timeout_multiplier = 1.5

    assert execution_budget_ms(workflow, default_step_timeout_ms=60_000) == 15_000


def test_retry_delays_back_off_up_to_the_cap():
    policy = RetryPolicy(max_retries=5, initial_delay_ms=100, backoff_multiplier=3, max_delay_ms=1000)

    assert [policy.delay_ms(n) for n in range(1, 5)] == [100, 300, 900, 1000]


def test_camel_case_retry_policy_is_accepted():
    workflow = WorkflowDefinition.model_validate(
        {"retryPolicy": {"attempts": 2, "delay": 250, "backoffMultiplier": 2, "maxDelay": 400}}
    )

    policy = workflow.retry_policy
    assert (policy.max_retries, policy.initial_delay_ms, policy.max_delay_ms) == (2, 250, 400)
    assert policy.delay_ms(2) == 400
