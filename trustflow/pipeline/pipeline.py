"""End-to-end analysis pipeline: prompt -> classification -> binding ->
execution -> report payload.

Every request is tracked as a session so it can be looked up or cancelled
while it runs. Stage failures are collected rather than raised:

- classification or binding failure -> ``failed``
- execution failed -> ``failed``; cancelled -> ``cancelled``
- execution completed with optional-step errors, or the report stage
  failed -> ``partial``
- otherwise -> ``success``
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from trustflow.binder.binder import UseCaseBinder
from trustflow.classifier.classifier import PromptClassifier
from trustflow.errors import ExecutionCancelled, TrustflowError
from trustflow.executor.schemas import ExecutionStatus, OrchestrationResult
from trustflow.executor.workflow_runner import WorkflowOrchestrator
from trustflow.scoring.report import build_report_payload

from .schemas import (
    STAGE_BINDING,
    STAGE_CLASSIFICATION,
    STAGE_EXECUTION,
    STAGE_REPORT,
    AnalysisRequest,
    AnalysisResponse,
    PipelineSession,
    StageError,
)

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """Facade chaining classifier, binder, orchestrator, and report payload."""

    def __init__(
        self,
        classifier: Optional[PromptClassifier] = None,
        binder: Optional[UseCaseBinder] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
    ):
        self.classifier = classifier or PromptClassifier()
        self.binder = binder or UseCaseBinder()
        self.orchestrator = orchestrator or WorkflowOrchestrator(catalog=self.binder.catalog)
        self._sessions: dict[str, PipelineSession] = {}
        self._lock = threading.Lock()

    def run(self, request: AnalysisRequest) -> AnalysisResponse:
        """Run one request through every stage and return the response."""
        session = self._open_session(request)
        start = time.time()
        response = AnalysisResponse(session_id=session.id, status="failed")
        logger.info(f"[{session.id}] Starting analysis ({len(request.prompt)} chars)")

        try:
            self._run_stages(session, request, response)
        except Exception as e:
            logger.error(f"[{session.id}] Pipeline failed unexpectedly: {e}", exc_info=True)
            response.errors.append(
                StageError(stage="pipeline", error=str(e), kind=type(e).__name__)
            )

        response.status = self._final_status(response)
        response.finished_at = datetime.now(timezone.utc)
        response.processing_time_ms = int((time.time() - start) * 1000)
        self._close_session(session, response)

        logger.info(
            f"[{session.id}] Analysis {response.status} in {response.processing_time_ms}ms "
            f"(stages: {', '.join(response.stages_completed) or 'none'}, "
            f"{len(response.errors)} errors)"
        )
        return response

    def _run_stages(
        self,
        session: PipelineSession,
        request: AnalysisRequest,
        response: AnalysisResponse,
    ) -> None:
        try:
            classification = self.classifier.classify(request.prompt, strict=request.strict)
        except TrustflowError as e:
            self._stage_failed(session, response, STAGE_CLASSIFICATION, e)
            return
        response.classification = classification
        response.stages_completed.append(STAGE_CLASSIFICATION)

        try:
            binding = self.binder.bind(classification, request.use_case_id)
        except TrustflowError as e:
            self._stage_failed(session, response, STAGE_BINDING, e)
            return
        response.binding_id = binding.id
        response.use_case_id = binding.use_case_id
        response.stages_completed.append(STAGE_BINDING)

        payload = {
            "text": request.prompt,
            "metadata": dict(request.metadata),
            "metrics": dict(request.metrics),
        }
        try:
            result = self.orchestrator.execute(binding, payload, execution_id=session.execution_id)
        except ExecutionCancelled as e:
            response.execution = e.result
            return
        except TrustflowError as e:
            self._stage_failed(session, response, STAGE_EXECUTION, e)
            return
        response.execution = result
        if result.status in (ExecutionStatus.COMPLETED, ExecutionStatus.PARTIAL):
            response.stages_completed.append(STAGE_EXECUTION)

        if request.generate_report and result.status != ExecutionStatus.CANCELLED:
            self._build_report(session, response, result)

    def _build_report(
        self,
        session: PipelineSession,
        response: AnalysisResponse,
        result: OrchestrationResult,
    ) -> None:
        try:
            response.report = build_report_payload(result)
            response.stages_completed.append(STAGE_REPORT)
        except Exception as e:
            logger.warning(f"[{session.id}] Report payload failed (non-fatal): {e}")
            response.errors.append(
                StageError(stage=STAGE_REPORT, error=str(e), kind=type(e).__name__)
            )

    @staticmethod
    def _stage_failed(
        session: PipelineSession,
        response: AnalysisResponse,
        stage: str,
        error: Exception,
    ) -> None:
        logger.error(f"[{session.id}] Stage {stage} failed: {error}")
        response.errors.append(StageError(stage=stage, error=str(error), kind=type(error).__name__))

    @staticmethod
    def _final_status(response: AnalysisResponse) -> str:
        execution = response.execution
        if execution is not None and execution.status == ExecutionStatus.CANCELLED:
            return "cancelled"
        if execution is None or execution.status == ExecutionStatus.FAILED:
            return "failed"
        if response.errors or execution.is_partial:
            return "partial"
        return "success"

    # -- sessions ----------------------------------------------------------

    def _open_session(self, request: AnalysisRequest) -> PipelineSession:
        session = PipelineSession(request=request)
        if request.session_id:
            session.id = request.session_id
        with self._lock:
            existing = self._sessions.get(session.id)
            if existing is not None and existing.status == "active":
                raise ValueError(f"Session {session.id} is already active")
            session.execution_id = self.orchestrator.prepare()
            self._sessions[session.id] = session
        return session

    def _close_session(self, session: PipelineSession, response: AnalysisResponse) -> None:
        if session.execution_id:
            # drops the reserved token when execution never started
            self.orchestrator.cancellations.release(session.execution_id)
        with self._lock:
            session.response = response
            session.status = "completed" if response.status == "success" else response.status
            session.updated_at = datetime.now(timezone.utc)

    def get_session(self, session_id: str) -> Optional[PipelineSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self, status: Optional[str] = None) -> list[PipelineSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        if status:
            sessions = [s for s in sessions if s.status == status]
        return sessions

    def cancel(self, session_id: str) -> bool:
        """Cancel an active session's execution."""
        session = self.get_session(session_id)
        if session is None or session.status != "active" or not session.execution_id:
            return False
        return self.orchestrator.cancel(session.execution_id)

    def cleanup_sessions(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """Drop finished sessions last updated more than ``max_age`` ago."""
        cutoff = datetime.now(timezone.utc) - max_age
        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.status != "active" and s.updated_at < cutoff
            ]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info(f"Cleaned up {len(stale)} pipeline sessions")
        return len(stale)
