"""Tests for the rule-based prompt classifier."""

import pytest

from trustflow.classifier import PromptClassifier, RoutingTable
from trustflow.errors import ClassificationAmbiguous
from trustflow.workflows import BASELINE_CAPABILITIES

LEASE_PROMPT = "Review this oil and gas lease agreement for mineral rights compliance"


@pytest.fixture
def classifier() -> PromptClassifier:
    return PromptClassifier(RoutingTable())


def test_lease_review_routes_to_energy_use_case(classifier):
    result = classifier.classify(LEASE_PROMPT)

    assert result.vertical == "energy"
    assert result.use_case == "energy-oil-gas-lease"
    assert result.confidence >= 0.8
    assert result.intent == "review"
    assert not result.ambiguous
    assert "mineral rights" in result.keywords
    assert "lease" in result.keywords


def test_classification_is_deterministic(classifier):
    assert classifier.classify(LEASE_PROMPT) == classifier.classify(LEASE_PROMPT)


def test_default_routing_table_reads_stopwords_as_text():
    stopwords = RoutingTable().stopwords

    assert all(isinstance(word, str) for word in stopwords)
    assert {"on", "the", "they"} <= stopwords


def test_keywords_are_distinct_and_in_first_seen_order(classifier):
    result = classifier.classify("Review the lease, the LEASE and the royalties.")

    assert result.keywords == ["review", "lease", "royalties"]


def test_entities_are_extracted(classifier):
    text = "Acme Energy Inc signed on 03/15/2024 in Midland, TX for $1,250,000.00 at 12.5% royalty"
    found = {(e.type, e.value) for e in classifier.classify(text).entities}

    assert ("date", "03/15/2024") in found
    assert ("money", "$1,250,000.00") in found
    assert ("percentage", "12.5%") in found
    assert ("organization", "Acme Energy Inc") in found
    assert ("location", "Midland, TX") in found


def test_iso_dates_are_extracted(classifier):
    result = classifier.classify("Lease effective 2024-01-31")

    assert [e.value for e in result.entities if e.type == "date"] == ["2024-01-31"]


def test_no_match_is_capped_and_ambiguous(classifier):
    result = classifier.classify("Hello there, what is up")

    assert result.vertical is None
    assert result.use_case is None
    assert result.confidence <= 0.3
    assert result.ambiguous
    assert result.intent == "general-analysis"
    assert result.suggested_capabilities == [*BASELINE_CAPABILITIES, "general-domain-agent"]


def test_strict_mode_raises_on_ambiguous_result(classifier):
    with pytest.raises(ClassificationAmbiguous) as exc_info:
        classifier.classify("Hello there, what is up", strict=True)

    assert exc_info.value.result is not None
    assert exc_info.value.result.confidence <= 0.3


def test_use_case_without_vertical_keywords_infers_vertical(classifier):
    result = classifier.classify("Prepare the regulatory filing")

    assert result.use_case == "finance-regulatory"
    assert result.vertical == "finance"
    assert result.confidence == pytest.approx(0.8)
    assert result.suggested_capabilities == [
        *BASELINE_CAPABILITIES,
        "finance-domain-agent",
        "sox-validator",
        "financial-auditor",
    ]


def test_vertical_ties_go_to_table_order(classifier):
    # "oil" (energy) and "contract" (government) both score 1.5
    result = classifier.classify("oil contract")

    assert result.vertical == "energy"
    assert result.use_case is None


def test_vertical_only_gets_floor_confidence(classifier):
    result = classifier.classify("Summarize the patient intake notes")

    assert result.vertical == "healthcare"
    assert result.use_case is None
    assert result.confidence == pytest.approx(0.5)


def test_suggested_capabilities_include_use_case_extras(classifier):
    result = classifier.classify(LEASE_PROMPT)

    assert result.suggested_capabilities == [
        *BASELINE_CAPABILITIES,
        "energy-domain-agent",
        "lease-validator",
        "mineral-rights-analyzer",
    ]


@pytest.mark.parametrize(
    "text,intent",
    [
        ("Please verify these numbers", "validation"),
        ("Calculate the royalty owed", "calculation"),
        ("Compare the two bids", "comparison"),
        ("Assess the threat landscape", "risk-assessment"),
        ("Quarterly audit summary", "audit"),
        ("Draft the monthly report", "reporting"),
        ("Summarize this contract", "contract-review"),
    ],
)
def test_intent_detection(classifier, text, intent):
    assert classifier.classify(text).intent == intent


def test_routing_table_can_be_extended():
    table = RoutingTable()
    table.add_vertical_keywords("energy", ["solar", "turbine"])
    table.add_use_case_pattern("energy-solar-farm", r"solar\s+farm", "energy", ["solar-analyzer"])
    classifier = PromptClassifier(table)

    result = classifier.classify("Evaluate the solar farm turbine output")

    assert result.vertical == "energy"
    assert result.use_case == "energy-solar-farm"
    assert "solar-analyzer" in result.suggested_capabilities
