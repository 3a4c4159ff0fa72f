"""Tests for built-in capabilities and the capability registry."""

import pytest

from trustflow.capabilities import (
    CapabilityRegistry,
    CapabilityResult,
    build_default_registry,
)
from trustflow.classifier import RoutingTable
from trustflow.errors import CapabilityDisabled, CapabilityNotFound, ExecutionCancelled
from trustflow.executor import CancellationToken
from trustflow.usecases import UseCaseCatalog
from trustflow.workflows import BASELINE_CAPABILITIES

from conftest import FakeCapability

FULL_METADATA = {"source": "upload", "hash": "abc123"}


@pytest.fixture(scope="module")
def builtins() -> CapabilityRegistry:
    return build_default_registry()


def _run(registry, capability_id, **payload) -> CapabilityResult:
    return registry.resolve(capability_id).invoke(payload)


def test_default_registry_covers_baseline_and_catalog(builtins):
    for capability_id in BASELINE_CAPABILITIES:
        assert capability_id in builtins
    for use_case in UseCaseCatalog().list_all():
        for step in use_case.workflow.steps:
            assert step.capability_id in builtins, step.capability_id


def test_default_registry_covers_routing_suggestions(builtins):
    table = RoutingTable()
    assert table.general_capability in builtins
    for vertical in table.verticals():
        assert vertical.domain_capability in builtins
    for pattern in table.use_cases():
        for capability_id in pattern.capabilities:
            assert capability_id in builtins, capability_id


def test_security_sentinel_clean_document(builtins):
    result = _run(builtins, "security-sentinel", text="Lease for 40 acres", metadata=FULL_METADATA)

    assert result.type == "security"
    assert result.score == 100
    assert result.flags == []
    assert result.confidence == pytest.approx(0.9)
    assert result.capability_id == "security-sentinel"


def test_security_sentinel_flags_tampering(builtins):
    result = _run(
        builtins, "security-sentinel", text="The forged signature page", metadata=FULL_METADATA
    )

    assert result.score == 80
    assert [f.severity for f in result.flags] == ["high"]
    assert result.confidence == pytest.approx(0.75)


def test_security_sentinel_missing_metadata_checks_only_parent(builtins):
    result = _run(builtins, "security-sentinel", text="Lease")

    assert result.score == 75
    assert [f.message for f in result.flags] == ["No document metadata provided"]
    assert result.recommendations == [
        "Enhance security measures to improve protection against threats"
    ]


def test_security_sentinel_missing_hash(builtins):
    result = _run(builtins, "security-sentinel", text="Lease", metadata={"source": "upload"})

    assert result.score == 85
    assert [f.message for f in result.flags] == ["Missing document hash for integrity verification"]


def test_security_sentinel_critical_language(builtins):
    result = _run(
        builtins, "security-sentinel", text="Possible fraudulent transfer", metadata=FULL_METADATA
    )

    assert result.critical_flags()[0].category == "security"


def test_integrity_auditor_empty_text_is_critical(builtins):
    result = _run(builtins, "integrity-auditor", text="")

    assert result.score == 60
    assert result.critical_flags()


def test_integrity_auditor_markers_and_truncation(builtins):
    result = _run(builtins, "integrity-auditor", text="Royalty rate: TBD and the rest...")

    assert result.score == 55
    assert len(result.flags) == 2


def test_integrity_auditor_checks_thresholds(builtins):
    result = _run(
        builtins,
        "integrity-auditor",
        text="Lease terms attached",
        context={"thresholds": {"royalty-rate": {"min": 0.125, "max": 0.25}}},
        metrics={"royalty-rate": 0.3},
    )

    assert result.score == 85
    assert "royalty-rate=0.3" in result.flags[0].message


def test_accuracy_engine_checks_arithmetic(builtins):
    assert _run(builtins, "accuracy-engine", text="2 + 2 = 4").flags == []

    result = _run(builtins, "accuracy-engine", text="Total: 2 + 2 = 5")
    assert result.score == 85
    assert "2 + 2 = 5" in result.flags[0].message


def test_accuracy_engine_flags_invalid_dates(builtins):
    result = _run(builtins, "accuracy-engine", text="Signed 13/45/2024")

    assert result.score == 90
    assert result.flags[0].message == "Invalid calendar date detected"


def test_long_clean_text_gets_confidence_bonus(builtins):
    text = "The lessee shall pay royalties monthly. " * 4

    result = _run(builtins, "accuracy-engine", text=text)

    assert result.confidence == pytest.approx(0.95)


def test_domain_capability_reports_step_focus(builtins):
    result = _run(builtins, "energy-domain-agent", text="Lease", config={"focus": ["royalty"]})

    assert result.type == "domain"
    assert result.details["focus"] == ["royalty"]


def test_builtin_capability_observes_cancellation(builtins):
    token = CancellationToken("exec-1")
    token.cancel()

    with pytest.raises(ExecutionCancelled):
        builtins.resolve("security-sentinel").invoke({"text": "x"}, token)


def test_processing_time_accepts_camel_case():
    result = CapabilityResult.model_validate({"score": 50, "processingTime": 12, "extra": "kept"})

    assert result.processing_time_ms == 12
    assert result.extra == "kept"


def test_registry_resolve_and_enable_disable():
    registry = CapabilityRegistry()
    registry.register(FakeCapability("agent"))

    assert registry.resolve("agent").capability_id == "agent"

    registry.disable("agent")
    assert not registry.is_enabled("agent")
    assert registry.list_enabled() == []
    with pytest.raises(CapabilityDisabled):
        registry.resolve("agent")

    registry.enable("agent")
    assert registry.resolve("agent").is_enabled()


def test_registry_unknown_capability():
    registry = CapabilityRegistry()

    with pytest.raises(CapabilityNotFound):
        registry.resolve("missing")
    with pytest.raises(CapabilityNotFound):
        registry.disable("missing")


def test_registry_refuses_duplicates_unless_replacing():
    registry = CapabilityRegistry()
    registry.register(FakeCapability("agent"))

    with pytest.raises(ValueError):
        registry.register(FakeCapability("agent"))

    replacement = FakeCapability("agent")
    registry.register(replacement, replace=True)
    assert registry.get("agent") is replacement
    assert registry.unregister("agent")
    assert "agent" not in registry
