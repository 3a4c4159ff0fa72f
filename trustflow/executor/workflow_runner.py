"""Workflow orchestrator: runs a binding's steps in dependency order.

For each execution the orchestrator:

1. Prepends the baseline tier (security -> integrity -> accuracy) and gates
   every workflow step on it
2. Dispatches each step once all of its dependencies are done, in
   declaration order, up to ``max_concurrency`` at a time
3. Races every in-flight step against its deadline and the execution's
   cancellation token
4. Re-runs failed steps under the workflow's retry policy, with
   exponential backoff, while the execution budget allows
5. Skips the dependents of failed, timed-out or skipped steps
6. Halts on a required-step failure, carries on past optional ones
7. Aggregates SIA scores from the finished steps
8. Records every step outcome on the audit collaborator (best-effort)

The scheduler loop runs on the caller's thread; capabilities run on a
per-execution thread pool that is shut down without waiting, so calls
abandoned on timeout or cancellation never block the result.
"""

import logging
import os
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from trustflow.audit.fields import FieldExtractorRegistry
from trustflow.audit.recorder import AuditRecorder, safe_record
from trustflow.audit.schemas import (
    EXECUTION_FINISHED,
    EXECUTION_STARTED,
    STEP_DONE,
    STEP_FAILED,
    STEP_RETRYING,
    STEP_SKIPPED,
    STEP_TIMED_OUT,
    AuditEvent,
)
from trustflow.binder.schemas import Binding
from trustflow.capabilities.registry import CapabilityRegistry, get_capability_registry
from trustflow.capabilities.schemas import CapabilityResult
from trustflow.errors import (
    CapabilityDisabled,
    CapabilityNotFound,
    ExecutionCancelled,
    StepExecutionError,
    StepTimeout,
    TrustflowError,
    UseCaseNotFound,
)
from trustflow.scoring.aggregator import aggregate
from trustflow.usecases.registry import UseCaseCatalog, get_use_case_catalog
from trustflow.usecases.schemas import UseCaseDefinition
from trustflow.workflows.dag import (
    execution_budget_ms,
    execution_groups,
    schedule_steps,
    validate_workflow,
)
from trustflow.workflows.schemas import DEFAULT_STEP_TIMEOUT_MS as WORKFLOW_STEP_TIMEOUT_MS
from trustflow.workflows.schemas import WorkflowStep

from .cancellation import CancellationRegistry, CancellationToken, get_cancellation_registry
from .schemas import (
    ExecutionState,
    ExecutionStatus,
    OrchestrationResult,
    StepError,
    StepState,
    StepStatus,
    utc_now,
)
from .step_runner import build_step_payload, invoke_capability

logger = logging.getLogger(__name__)

DEFAULT_STEP_TIMEOUT_MS = int(
    os.environ.get("TRUSTFLOW_STEP_TIMEOUT_MS", str(WORKFLOW_STEP_TIMEOUT_MS))
)
# Max concurrent steps within one execution
MAX_STEP_CONCURRENCY = int(os.environ.get("TRUSTFLOW_MAX_STEP_CONCURRENCY", "4"))
# How often the scheduler re-checks the cancellation token while waiting
POLL_INTERVAL_MS = int(os.environ.get("TRUSTFLOW_POLL_INTERVAL_MS", "50"))

_UNSUCCESSFUL = frozenset({StepStatus.FAILED, StepStatus.TIMED_OUT, StepStatus.SKIPPED})


@dataclass
class _InFlight:
    step: WorkflowStep
    deadline: float
    timeout_ms: int
    budget_bound: bool


class WorkflowOrchestrator:
    """Executes bindings against a capability registry."""

    def __init__(
        self,
        capabilities: Optional[CapabilityRegistry] = None,
        catalog: Optional[UseCaseCatalog] = None,
        audit: Optional[AuditRecorder] = None,
        cancellations: Optional[CancellationRegistry] = None,
        field_extractors: Optional[FieldExtractorRegistry] = None,
        max_concurrency: Optional[int] = None,
        default_step_timeout_ms: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
    ):
        self.capabilities = capabilities or get_capability_registry()
        self.catalog = catalog or get_use_case_catalog()
        self.audit = audit
        self.cancellations = cancellations or get_cancellation_registry()
        self.field_extractors = field_extractors
        self.max_concurrency = max(1, max_concurrency or MAX_STEP_CONCURRENCY)
        self.default_step_timeout_ms = default_step_timeout_ms or DEFAULT_STEP_TIMEOUT_MS
        self.poll_interval = (poll_interval_ms or POLL_INTERVAL_MS) / 1000

    def prepare(self, execution_id: Optional[str] = None) -> str:
        """Reserve an execution id so it can be cancelled before it starts."""
        execution_id = execution_id or _new_execution_id()
        self.cancellations.token_for(execution_id)
        return execution_id

    def cancel(self, execution_id: str) -> bool:
        """Request cancellation. Returns False for unknown executions."""
        return self.cancellations.request_cancellation(execution_id)

    def execute(
        self,
        binding: Binding,
        payload: Optional[dict[str, Any]] = None,
        execution_id: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> OrchestrationResult:
        """Run a binding to completion, failure, or cancellation.

        Step failures never raise; they are recorded on the result.

        Raises:
            UseCaseNotFound: the binding's use case is not in the catalog.
            WorkflowValidationError: the bound workflow is not a valid DAG.
            DuplicateExecution: the execution id is already running.
            ExecutionCancelled: cancellation was requested before the
                execution started. The cancelled result is on ``.result``.
        """
        execution_id = execution_id or _new_execution_id()
        try:
            use_case = self.catalog.get(binding.use_case_id)
            if use_case is None:
                raise UseCaseNotFound(binding.use_case_id)
            validate_workflow(binding.workflow)
        except TrustflowError:
            # Drop a token reserved by prepare(); a running execution keeps its own
            if not self.cancellations.is_active(execution_id):
                self.cancellations.release(execution_id)
            raise

        token = self.cancellations.activate(execution_id, cancellation)
        run = _ExecutionRun(self, binding, use_case, payload or {}, execution_id, token)
        try:
            if token.is_cancelled():
                logger.info(f"Execution {execution_id} cancelled before start")
                raise ExecutionCancelled(execution_id, result=run.cancel_before_start())
            return run.run()
        finally:
            self.cancellations.release(execution_id)


def _new_execution_id() -> str:
    return f"exec-{uuid.uuid4().hex[:12]}"


class _ExecutionRun:
    """State and scheduling for a single execution."""

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        binding: Binding,
        use_case: UseCaseDefinition,
        payload: dict[str, Any],
        execution_id: str,
        token: CancellationToken,
    ):
        self.orchestrator = orchestrator
        self.binding = binding
        self.use_case = use_case
        self.payload = payload
        self.token = token
        self.steps = schedule_steps(binding.workflow)
        self.order = {s.id: i for i, s in enumerate(self.steps)}
        self.state = ExecutionState(
            execution_id=execution_id,
            use_case_id=binding.use_case_id,
            steps={
                s.id: StepState(step_id=s.id, capability_id=s.capability_id, optional=s.optional)
                for s in self.steps
            },
        )
        self.errors: list[StepError] = []
        self.in_flight: dict[Future, _InFlight] = {}
        self.retry_policy = binding.workflow.retry_policy
        # step id -> monotonic time its next attempt may start
        self.retry_at: dict[str, float] = {}
        self.halted = False
        self.cancelled = False

        self.budget_ms = execution_budget_ms(
            binding.workflow, orchestrator.default_step_timeout_ms
        )
        self._started = time.monotonic()
        self._deadline = self._started + self.budget_ms / 1000

    @property
    def execution_id(self) -> str:
        return self.state.execution_id

    # -- lifecycle ---------------------------------------------------------

    def run(self) -> OrchestrationResult:
        self.state.status = ExecutionStatus.RUNNING
        logger.info(
            f"[{self.execution_id}] Starting {self.binding.use_case_id}: "
            f"{len(self.steps)} steps in {len(execution_groups(self.steps))} tiers, "
            f"budget {self.budget_ms}ms"
        )
        self._emit(EXECUTION_STARTED, message=f"{len(self.steps)} steps")

        pool = ThreadPoolExecutor(
            max_workers=len(self.steps) or 1,
            thread_name_prefix=f"trustflow-{self.execution_id}",
        )
        try:
            self._schedule(pool)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return self._finish()

    def cancel_before_start(self) -> OrchestrationResult:
        self._cancel_all()
        return self._finish()

    def _schedule(self, pool: ThreadPoolExecutor) -> None:
        while True:
            if self.token.is_cancelled():
                self._cancel_all()
                return
            self._propagate_skips()
            if not self.halted:
                self._dispatch_ready(pool)
            if self.in_flight:
                self._wait_and_settle()
            elif self.retry_at and not self.halted:
                self._wait_for_retry()
            elif not self.token.is_cancelled():
                return

    def _finish(self) -> OrchestrationResult:
        self._propagate_skips()
        reason = "execution halted" if self.halted else "not reached"
        for step in self.steps:
            if not self.state.steps[step.id].is_terminal:
                self._skip(step, reason, counts_as_failure=False)

        if self.cancelled:
            status = ExecutionStatus.CANCELLED
        elif any(
            self.state.steps[s.id].status != StepStatus.DONE for s in self.steps if s.required
        ):
            status = ExecutionStatus.FAILED
        else:
            status = ExecutionStatus.COMPLETED
        self.state.status = status

        results: dict[str, CapabilityResult] = {
            s.id: self.state.steps[s.id].result
            for s in self.steps
            if self.state.steps[s.id].status == StepStatus.DONE
            and self.state.steps[s.id].result is not None
        }
        scores = aggregate(self.use_case.baseline_scores, results.values())
        duration_ms = int((time.monotonic() - self._started) * 1000)

        result = OrchestrationResult(
            execution_id=self.execution_id,
            use_case_id=self.binding.use_case_id,
            status=status,
            results=results,
            steps=self.state.steps,
            scores=scores,
            duration_ms=duration_ms,
            budget_ms=self.budget_ms,
            errors=list(self.errors),
            started_at=self.state.started_at,
            finished_at=utc_now(),
        )

        logger.info(
            f"[{self.execution_id}] Finished with status {status.value} in {duration_ms}ms: "
            f"{len(results)}/{len(self.steps)} steps done, {len(self.errors)} errors, "
            f"scores S={scores.security} I={scores.integrity} A={scores.accuracy}"
        )
        self._emit(
            EXECUTION_FINISHED,
            status=status.value,
            duration_ms=duration_ms,
            message=f"{len(results)} done, {len(self.errors)} errors",
        )
        return result

    # -- scheduling --------------------------------------------------------

    def _propagate_skips(self) -> None:
        """Skip every not-yet-started step with an unsuccessful dependency."""
        changed = True
        while changed:
            changed = False
            for step in self.steps:
                if self.state.steps[step.id].status not in (StepStatus.PENDING, StepStatus.RUNNABLE):
                    continue
                blocked = [
                    d for d in step.dependencies
                    if self.state.steps[d].status in _UNSUCCESSFUL
                ]
                if blocked:
                    dep = blocked[0]
                    self._skip(
                        step,
                        f"dependency {dep} {self.state.steps[dep].status.value}",
                        counts_as_failure=True,
                    )
                    changed = True

    def _dispatch_ready(self, pool: ThreadPoolExecutor) -> None:
        for step in self.steps:
            if self.halted or self.token.is_cancelled():
                return
            if len(self.in_flight) >= self.orchestrator.max_concurrency:
                return
            step_state = self.state.steps[step.id]
            if step_state.status != StepStatus.PENDING:
                continue
            if time.monotonic() < self.retry_at.get(step.id, 0.0):
                continue
            if all(self.state.steps[d].status == StepStatus.DONE for d in step.dependencies):
                step_state.status = StepStatus.RUNNABLE
                self._dispatch(pool, step)

    def _dispatch(self, pool: ThreadPoolExecutor, step: WorkflowStep) -> None:
        self.retry_at.pop(step.id, None)
        try:
            capability = self.orchestrator.capabilities.resolve(step.capability_id)
        except (CapabilityNotFound, CapabilityDisabled) as e:
            self._fail(step, StepStatus.FAILED, e)
            return

        now = time.monotonic()
        remaining_ms = int((self._deadline - now) * 1000)
        if remaining_ms <= 0:
            self._fail(step, StepStatus.TIMED_OUT, StepTimeout(step.id, 0, budget_exhausted=True))
            return
        step_timeout_ms = step.timeout_ms or self.orchestrator.default_step_timeout_ms
        timeout_ms = min(step_timeout_ms, remaining_ms)

        step_payload = build_step_payload(step, self.binding, self.payload, self.state)
        step_state = self.state.steps[step.id]
        step_state.status = StepStatus.RUNNING
        step_state.attempts += 1
        if step_state.started_at is None:
            step_state.started_at = utc_now()

        future = pool.submit(invoke_capability, step.id, capability, step_payload, self.token)
        self.in_flight[future] = _InFlight(
            step=step,
            deadline=now + timeout_ms / 1000,
            timeout_ms=timeout_ms,
            budget_bound=timeout_ms < step_timeout_ms,
        )
        logger.debug(
            f"[{self.execution_id}] Dispatched {step.id} ({step.capability_id}), "
            f"attempt {step_state.attempts}, timeout {timeout_ms}ms"
        )

    def _wait_for_retry(self) -> None:
        """Sleep until the next retry is due, waking early on cancellation."""
        delay = min(self.retry_at.values()) - time.monotonic()
        if delay > 0:
            self.token.wait(min(delay, self.orchestrator.poll_interval))

    def _wait_and_settle(self) -> None:
        now = time.monotonic()
        # Due retries held back by the concurrency cap wait for a free slot
        nearest = min(
            [f.deadline for f in self.in_flight.values()]
            + [t for t in self.retry_at.values() if t > now]
        )
        timeout = max(0.0, min(self.orchestrator.poll_interval, nearest - now))
        done, _ = wait(list(self.in_flight), timeout=timeout, return_when=FIRST_COMPLETED)

        for future in self._in_declaration_order(done):
            self._settle(self.in_flight.pop(future), future)

        now = time.monotonic()
        for future in self._in_declaration_order(list(self.in_flight)):
            flight = self.in_flight[future]
            if now < flight.deadline:
                continue
            del self.in_flight[future]
            if future.done():
                self._settle(flight, future)
                continue
            future.cancel()
            self._fail(
                flight.step,
                StepStatus.TIMED_OUT,
                StepTimeout(flight.step.id, flight.timeout_ms, budget_exhausted=flight.budget_bound),
            )

    def _settle(self, flight: _InFlight, future: Future) -> None:
        step = flight.step
        try:
            result = future.result()
        except InterruptedError as e:
            error = e if isinstance(e, ExecutionCancelled) else ExecutionCancelled(self.execution_id)
            self._fail(step, StepStatus.FAILED, error)
        except TimeoutError as e:
            self._fail(step, StepStatus.TIMED_OUT, e)
        except TrustflowError as e:
            self._retry_or_fail(step, e)
        except Exception as e:
            logger.error(
                f"[{self.execution_id}] Capability {step.capability_id} raised in step {step.id}: {e}",
                exc_info=True,
            )
            self._retry_or_fail(step, StepExecutionError(step.id, f"{type(e).__name__}: {e}"))
        else:
            self._complete(step, result)

    def _retry_or_fail(self, step: WorkflowStep, error: Exception) -> None:
        """Schedule another attempt of a failed step, or fail it for good.

        Timeouts and cancellations never get here. A retry is only scheduled
        while the policy has retries left, nothing has halted or cancelled
        the execution, and the backoff ends before the execution deadline.
        """
        policy = self.retry_policy
        step_state = self.state.steps[step.id]
        retry = step_state.attempts
        if (
            policy is None
            or retry > policy.max_retries
            or self.halted
            or self.token.is_cancelled()
        ):
            self._fail(step, StepStatus.FAILED, error)
            return

        delay_ms = policy.delay_ms(retry)
        retry_at = time.monotonic() + delay_ms / 1000
        if retry_at >= self._deadline:
            logger.info(
                f"[{self.execution_id}] Not retrying {step.id}: "
                f"{delay_ms}ms backoff would overrun the execution budget"
            )
            self._fail(step, StepStatus.FAILED, error)
            return

        step_state.status = StepStatus.PENDING
        step_state.error = str(error)
        self.retry_at[step.id] = retry_at
        logger.warning(
            f"[{self.execution_id}] Step {step.id} failed, retry {retry}/{policy.max_retries} "
            f"in {delay_ms}ms: {error}"
        )
        self._emit(
            STEP_RETRYING,
            step=step,
            status=StepStatus.FAILED.value,
            message=f"attempt {retry} failed: {error}",
        )

    def _cancel_all(self) -> None:
        """Fail in-flight steps as cancelled and skip everything not started."""
        if not self.cancelled:
            logger.info(f"[{self.execution_id}] Cancellation observed, stopping dispatch")
        self.cancelled = True
        self.state.cancellation_requested = True

        for future in self._in_declaration_order(list(self.in_flight)):
            flight = self.in_flight.pop(future)
            if future.done():
                self._settle(flight, future)
                continue
            future.cancel()
            self._fail(flight.step, StepStatus.FAILED, ExecutionCancelled(self.execution_id))

        for step in self.steps:
            if self.state.steps[step.id].status in (StepStatus.PENDING, StepStatus.RUNNABLE):
                self._skip(step, "execution cancelled", counts_as_failure=False)

    def _in_declaration_order(self, futures: Iterable[Future]) -> list[Future]:
        return sorted(futures, key=lambda f: self.order[self.in_flight[f].step.id])

    # -- step outcomes -----------------------------------------------------

    def _complete(self, step: WorkflowStep, result: CapabilityResult) -> None:
        step_state = self.state.steps[step.id]
        step_state.status = StepStatus.DONE
        step_state.result = result
        step_state.error = None
        step_state.finished_at = utc_now()
        logger.info(
            f"[{self.execution_id}] Step {step.id} done in {step_state.duration_ms}ms"
            + (f" (score {result.score})" if result.score is not None else "")
        )
        self._emit(
            STEP_DONE,
            step=step,
            status=StepStatus.DONE.value,
            duration_ms=step_state.duration_ms,
        )

    def _fail(self, step: WorkflowStep, status: StepStatus, error: Exception) -> None:
        step_state = self.state.steps[step.id]
        step_state.status = status
        step_state.error = str(error)
        step_state.finished_at = utc_now()
        self.errors.append(
            StepError(step_id=step.id, message=str(error), kind=type(error).__name__)
        )
        logger.error(f"[{self.execution_id}] Step {step.id} {status.value}: {error}")
        self._emit(
            STEP_TIMED_OUT if status == StepStatus.TIMED_OUT else STEP_FAILED,
            step=step,
            status=status.value,
            message=str(error),
            duration_ms=step_state.duration_ms,
        )
        if step.required and not self.cancelled:
            self._halt(step)

    def _skip(self, step: WorkflowStep, reason: str, counts_as_failure: bool) -> None:
        step_state = self.state.steps[step.id]
        step_state.status = StepStatus.SKIPPED
        step_state.error = reason
        step_state.finished_at = utc_now()
        logger.info(f"[{self.execution_id}] Step {step.id} skipped: {reason}")
        self._emit(STEP_SKIPPED, step=step, status=StepStatus.SKIPPED.value, message=reason)
        if counts_as_failure and step.required and not self.cancelled:
            self.errors.append(
                StepError(
                    step_id=step.id,
                    message=f"Required step skipped: {reason}",
                    kind="DependencyFailed",
                )
            )
            self._halt(step)

    def _halt(self, step: WorkflowStep) -> None:
        if not self.halted:
            logger.warning(
                f"[{self.execution_id}] Required step {step.id} did not complete, "
                f"halting execution"
            )
        self.halted = True

    def _emit(
        self,
        event_type: str,
        step: Optional[WorkflowStep] = None,
        status: Optional[str] = None,
        message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        event = AuditEvent(
            event_type=event_type,
            execution_id=self.execution_id,
            use_case_id=self.binding.use_case_id,
            step_id=step.id if step else None,
            capability_id=step.capability_id if step else None,
            status=status,
            message=message,
            duration_ms=duration_ms,
        )
        extractors = self.orchestrator.field_extractors
        if extractors is not None:
            event = extractors.enrich(
                event,
                {"binding": self.binding, "payload": self.payload, "state": self.state},
            )
        safe_record(self.orchestrator.audit, event)
