"""Tests for use-case resolution and workflow customization."""

import logging

import pytest

from trustflow.binder import UseCaseBinder, missing_required_capabilities
from trustflow.classifier import PromptClassifier, RoutingTable
from trustflow.errors import UseCaseNotFound, WorkflowValidationError
from trustflow.usecases import UseCaseCatalog
from trustflow.workflows import execution_budget_ms

from conftest import make_classification, make_use_case

LEASE_PROMPT = "Review this oil and gas lease agreement for mineral rights compliance"


@pytest.fixture
def default_catalog() -> UseCaseCatalog:
    return UseCaseCatalog()


def test_lease_prompt_binds_with_dynamic_steps(default_catalog):
    classification = PromptClassifier(RoutingTable()).classify(LEASE_PROMPT)
    binding = UseCaseBinder(default_catalog).bind(classification)

    assert binding.use_case_id == "energy-oil-gas-lease"
    assert binding.context.vertical == "energy"
    assert "EPA" in binding.context.regulations
    assert binding.context.thresholds["royalty-rate"].max == 0.25

    step_ids = [s.id for s in binding.workflow.steps]
    assert step_ids == ["domain-analysis", "lease-validation", "dynamic-mineral-rights-analyzer"]
    dynamic = binding.workflow.get_step("dynamic-mineral-rights-analyzer")
    assert dynamic.optional
    assert dynamic.dependencies == ["lease-validation"]


def test_catalog_workflow_is_not_mutated(default_catalog):
    classification = PromptClassifier(RoutingTable()).classify(LEASE_PROMPT)
    UseCaseBinder(default_catalog).bind(classification)

    base = default_catalog.get("energy-oil-gas-lease").workflow
    assert [s.id for s in base.steps] == ["domain-analysis", "lease-validation"]


def test_explicit_use_case_wins(default_catalog):
    binding = UseCaseBinder(default_catalog).bind(
        make_classification(use_case="energy-oil-gas-lease"),
        explicit_use_case_id="government-led",
    )

    assert binding.use_case_id == "government-led"


def test_unknown_use_case_raises(default_catalog):
    with pytest.raises(UseCaseNotFound):
        UseCaseBinder(default_catalog).bind(make_classification(), explicit_use_case_id="nope")


def test_single_use_case_for_vertical_is_inferred(default_catalog):
    binding = UseCaseBinder(default_catalog).bind(make_classification(vertical="insurance"))

    assert binding.use_case_id == "insurance-continental"


def test_no_vertical_falls_back_to_general_analysis(default_catalog):
    binding = UseCaseBinder(default_catalog).bind(make_classification(vertical=None))

    assert binding.use_case_id == "general-analysis"


def test_vertical_without_entries_falls_back_to_general_analysis(default_catalog):
    binding = UseCaseBinder(default_catalog).bind(make_classification(vertical="agriculture"))

    assert binding.use_case_id == "general-analysis"


def test_name_token_overlap_picks_best_entry(catalog):
    catalog.register(make_use_case("energy-pipeline", name="Pipeline Safety Review"))
    catalog.register(make_use_case("energy-lease", name="Land Lease Review"))

    binding = UseCaseBinder(catalog).bind(make_classification(keywords=["lease", "land"]))

    assert binding.use_case_id == "energy-lease"


def test_no_overlap_picks_first_entry_for_vertical(catalog):
    catalog.register(make_use_case("energy-pipeline", name="Pipeline Safety Review"))
    catalog.register(make_use_case("energy-lease", name="Land Lease Review"))

    binding = UseCaseBinder(catalog).bind(make_classification(keywords=["turbine"]))

    assert binding.use_case_id == "energy-pipeline"


def test_low_confidence_scales_budget_at_execution_time(default_catalog):
    binder = UseCaseBinder(default_catalog)
    binding = binder.bind(make_classification(vertical=None, confidence=0.2))

    base = default_catalog.get("general-analysis").workflow
    assert base.timeout_multiplier == 1.0
    assert binding.workflow.timeout_ms is None
    assert binding.workflow.timeout_multiplier == 1.5
    # one workflow step plus three baseline steps at the executor's 60s default
    assert execution_budget_ms(binding.workflow, default_step_timeout_ms=60_000) == 360_000


def test_confident_binding_keeps_budget(default_catalog):
    binding = UseCaseBinder(default_catalog).bind(make_classification(vertical="insurance"))

    assert binding.workflow.timeout_ms == 300000
    assert binding.workflow.timeout_multiplier == 1.0


def test_cyclic_workflow_is_rejected_at_bind_time(catalog):
    use_case = make_use_case(
        steps=[
            {"id": "a", "name": "A", "capability_id": "x", "dependencies": ["b"]},
            {"id": "b", "name": "B", "capability_id": "y", "dependencies": ["a"]},
        ]
    )
    catalog.register(use_case)

    with pytest.raises(WorkflowValidationError):
        UseCaseBinder(catalog).bind(make_classification(), explicit_use_case_id=use_case.id)


def test_baseline_suggestions_are_not_added_as_steps(catalog):
    catalog.register(make_use_case())
    binding = UseCaseBinder(catalog).bind(
        make_classification(suggested_capabilities=["security-sentinel", "extra-agent"]),
        explicit_use_case_id="test-case",
    )

    assert [s.id for s in binding.workflow.steps] == ["dynamic-extra-agent"]
    assert binding.workflow.steps[0].dependencies == []


def test_vertical_mismatch_is_logged(default_catalog, caplog):
    with caplog.at_level(logging.WARNING, logger="trustflow.binder.binder"):
        UseCaseBinder(default_catalog).bind(
            make_classification(vertical="energy"), explicit_use_case_id="government-led"
        )

    assert "Vertical mismatch" in caplog.text


def test_context_carries_domain_data_and_entities(default_catalog):
    classification = PromptClassifier(RoutingTable()).classify(
        "Review the oil and gas lease signed 2024-01-31"
    )
    binding = UseCaseBinder(default_catalog).bind(classification)

    domain_data = binding.context.domain_data
    assert domain_data["lease_type"] == "oil-gas"
    assert {"type": "date", "value": "2024-01-31"} in domain_data["entities"]
    # the catalog copy is left alone
    assert "entities" not in default_catalog.get("energy-oil-gas-lease").domain_data


def test_duplicate_registration_is_refused(catalog):
    catalog.register(make_use_case())

    with pytest.raises(ValueError):
        catalog.register(make_use_case())


def test_uncovered_required_capabilities_are_logged(catalog, caplog):
    catalog.register(
        make_use_case(
            steps=[{"id": "a", "name": "A", "capability_id": "a-agent"}],
            required_capabilities=["a-agent", "security-sentinel", "royalty-auditor"],
        )
    )

    with caplog.at_level(logging.WARNING, logger="trustflow.binder.binder"):
        UseCaseBinder(catalog).bind(make_classification(), explicit_use_case_id="test-case")

    assert "royalty-auditor (non-fatal)" in caplog.text
    assert "security-sentinel" not in caplog.text


def test_default_catalog_covers_its_required_capabilities(default_catalog):
    for use_case in default_catalog.list_all():
        assert missing_required_capabilities(use_case, use_case.workflow) == []
