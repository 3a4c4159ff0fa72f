"""Pytest configuration and shared fixtures."""

import sys
import threading
import time
from pathlib import Path
from typing import Any, Optional

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from trustflow.audit import InMemoryAuditTrail
from trustflow.binder import UseCaseBinder
from trustflow.capabilities import BaseCapability, CapabilityRegistry
from trustflow.classifier import ClassificationResult
from trustflow.executor import CancellationRegistry, WorkflowOrchestrator
from trustflow.usecases import UseCaseCatalog, UseCaseDefinition
from trustflow.workflows import BASELINE_CAPABILITIES, WorkflowDefinition, WorkflowStep


class ExecutionLog:
    """Thread-safe record of when each step started and finished."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started: dict[str, float] = {}
        self.finished: dict[str, float] = {}
        self.order: list[str] = []
        self._active = 0
        self.peak_concurrency = 0

    def start(self, step_id: str) -> None:
        with self._lock:
            self.started[step_id] = time.monotonic()
            self.order.append(step_id)
            self._active += 1
            self.peak_concurrency = max(self.peak_concurrency, self._active)

    def finish(self, step_id: str) -> None:
        with self._lock:
            self.finished[step_id] = time.monotonic()
            self._active -= 1


class FakeCapability(BaseCapability):
    """Configurable capability for orchestration tests."""

    def __init__(
        self,
        capability_id: str,
        result: Optional[dict[str, Any]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        block_until_cancelled: bool = False,
        log: Optional[ExecutionLog] = None,
    ):
        super().__init__(capability_id)
        self.result = result
        self.delay = delay
        self.error = error
        self.block_until_cancelled = block_until_cancelled
        self.log = log
        self.calls = 0
        self.payloads: list[dict[str, Any]] = []
        self._calls_lock = threading.Lock()

    def invoke(self, payload, cancellation=None):
        step_id = payload.get("step_id", self.capability_id)
        with self._calls_lock:
            self.calls += 1
            self.payloads.append(payload)
        if self.log is not None:
            self.log.start(step_id)
        try:
            if self.block_until_cancelled and cancellation is not None:
                cancellation.wait(5)
                cancellation.raise_if_cancelled()
            elif self.delay:
                if cancellation is not None:
                    cancellation.wait(self.delay)
                else:
                    time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if self.result is not None:
                return dict(self.result)
            return {"score": 90, "confidence": 0.8, "type": "domain"}
        finally:
            if self.log is not None:
                self.log.finish(step_id)


class FailingAuditRecorder:
    """Audit sink that always raises."""

    def __init__(self) -> None:
        self.attempts = 0

    def record(self, event) -> None:
        self.attempts += 1
        raise RuntimeError("audit store unavailable")


def make_use_case(
    use_case_id: str = "test-case",
    steps: Optional[list[dict[str, Any]]] = None,
    vertical: str = "energy",
    timeout_ms: Optional[int] = None,
    baseline_scores: Optional[dict[str, float]] = None,
    name: str = "Test Case",
    required_capabilities: Optional[list[str]] = None,
    retry_policy: Optional[dict[str, Any]] = None,
) -> UseCaseDefinition:
    return UseCaseDefinition(
        id=use_case_id,
        name=name,
        vertical=vertical,
        required_capabilities=required_capabilities or [],
        workflow=WorkflowDefinition(
            steps=[WorkflowStep(**s) for s in (steps or [])],
            timeout_ms=timeout_ms,
            retry_policy=retry_policy,
        ),
        baseline_scores=baseline_scores or {"security": 80, "integrity": 80, "accuracy": 80},
    )


def make_classification(**overrides: Any) -> ClassificationResult:
    data: dict[str, Any] = {"vertical": "energy", "confidence": 0.9}
    data.update(overrides)
    return ClassificationResult(**data)


@pytest.fixture
def execution_log() -> ExecutionLog:
    return ExecutionLog()


@pytest.fixture
def capabilities(execution_log) -> CapabilityRegistry:
    """Registry with passing baseline capabilities."""
    registry = CapabilityRegistry()
    for capability_id in BASELINE_CAPABILITIES:
        kind = capability_id.split("-")[0]
        registry.register(
            FakeCapability(
                capability_id,
                result={"score": 80, "confidence": 1.0, "type": kind},
                log=execution_log,
            )
        )
    return registry


@pytest.fixture
def catalog() -> UseCaseCatalog:
    return UseCaseCatalog(load_defaults=False)


@pytest.fixture
def audit_trail() -> InMemoryAuditTrail:
    return InMemoryAuditTrail()


@pytest.fixture
def orchestrator(capabilities, catalog, audit_trail) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        capabilities=capabilities,
        catalog=catalog,
        audit=audit_trail,
        cancellations=CancellationRegistry(),
        poll_interval_ms=10,
    )


@pytest.fixture
def bind(catalog):
    """Register a use case and bind a confident classification to it."""

    def _bind(use_case: UseCaseDefinition, **classification: Any):
        catalog.register(use_case)
        return UseCaseBinder(catalog).bind(
            make_classification(**classification), explicit_use_case_id=use_case.id
        )

    return _bind
