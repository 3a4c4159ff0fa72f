"""Use-case binder.

Resolves a classified request to a use case and produces a ``Binding``
with a per-request copy of the use case's workflow. Resolution order:

1. explicit use-case id from the caller
2. the use case matched by the classifier
3. inference from the vertical:
   a. the only catalog entry for the vertical
   b. the entry whose name shares the most tokens with the request keywords
   c. the first entry for the vertical
   d. the generic ``general-analysis`` use case
"""

import copy
import logging
from typing import Optional

from trustflow.classifier.schemas import ClassificationResult
from trustflow.errors import UseCaseNotFound
from trustflow.usecases.registry import UseCaseCatalog, get_use_case_catalog
from trustflow.usecases.schemas import UseCaseDefinition
from trustflow.workflows.dag import is_baseline_capability, validate_workflow
from trustflow.workflows.schemas import WorkflowDefinition, WorkflowStep

from .schemas import Binding, BindingContext

logger = logging.getLogger(__name__)

DEFAULT_USE_CASE_ID = "general-analysis"
DEFAULT_VERTICAL = "general"

# Below this classification confidence the execution budget is stretched
LOW_CONFIDENCE_THRESHOLD = 0.5
LOW_CONFIDENCE_TIMEOUT_MULTIPLIER = 1.5


def missing_required_capabilities(
    use_case: UseCaseDefinition,
    workflow: WorkflowDefinition,
) -> list[str]:
    """Required capabilities that neither the workflow nor the baseline tier runs."""
    present = set(workflow.capability_ids())
    return [
        c for c in use_case.required_capabilities
        if c not in present and not is_baseline_capability(c)
    ]


class UseCaseBinder:
    """Binds classification results to use cases from a catalog."""

    def __init__(self, catalog: Optional[UseCaseCatalog] = None):
        self.catalog = catalog or get_use_case_catalog()

    def bind(
        self,
        classification: ClassificationResult,
        explicit_use_case_id: Optional[str] = None,
    ) -> Binding:
        """Bind a classification to a use case.

        Raises:
            UseCaseNotFound: the resolved id is not in the catalog.
            WorkflowValidationError: the customized workflow is not a valid DAG.
        """
        use_case_id = self.resolve_use_case_id(classification, explicit_use_case_id)
        use_case = self.catalog.get(use_case_id)
        if use_case is None:
            raise UseCaseNotFound(use_case_id)

        vertical = classification.vertical or use_case.vertical
        if classification.vertical and classification.vertical != use_case.vertical:
            logger.warning(
                f"Vertical mismatch: classified as {classification.vertical}, "
                f"use case {use_case.id} belongs to {use_case.vertical}"
            )

        workflow = self.customize_workflow(use_case.workflow, classification)
        validate_workflow(workflow)

        uncovered = missing_required_capabilities(use_case, workflow)
        if uncovered:
            logger.warning(
                f"Use case {use_case.id} requires capabilities with no workflow step: "
                f"{', '.join(uncovered)} (non-fatal)"
            )

        binding = Binding(
            use_case_id=use_case.id,
            classification=classification,
            workflow=workflow,
            context=self._build_context(use_case, classification, vertical),
        )
        logger.info(
            f"Bound request to {use_case.id} ({len(workflow.steps)} workflow steps, "
            f"confidence {classification.confidence:.2f})"
        )
        return binding

    def resolve_use_case_id(
        self,
        classification: ClassificationResult,
        explicit_use_case_id: Optional[str] = None,
    ) -> str:
        if explicit_use_case_id:
            return explicit_use_case_id
        if classification.use_case:
            return classification.use_case
        return self.infer_use_case_id(
            classification.vertical or DEFAULT_VERTICAL,
            classification.keywords,
        )

    def infer_use_case_id(self, vertical: str, keywords: list[str]) -> str:
        candidates = self.catalog.list_by_vertical(vertical)
        if len(candidates) == 1:
            return candidates[0].id
        if not candidates:
            logger.info(f"No use cases for vertical {vertical}, using {DEFAULT_USE_CASE_ID}")
            return DEFAULT_USE_CASE_ID

        keyword_set = {k.lower() for k in keywords}
        best: Optional[UseCaseDefinition] = None
        best_score = 0
        for candidate in candidates:
            score = sum(1 for token in candidate.name_tokens() if token in keyword_set)
            if score > best_score:
                best, best_score = candidate, score

        if best is not None:
            return best.id
        return candidates[0].id

    def customize_workflow(
        self,
        base: WorkflowDefinition,
        classification: ClassificationResult,
    ) -> WorkflowDefinition:
        """Per-request copy of ``base`` with dynamic steps and adjusted budget.

        Each suggested capability missing from the workflow becomes an
        optional ``dynamic-<capability>`` step chained after the current
        last step. Baseline capabilities are never added.
        """
        workflow = base.model_copy(deep=True)
        present = set(workflow.capability_ids())

        for capability_id in classification.suggested_capabilities:
            if capability_id in present or is_baseline_capability(capability_id):
                continue
            last = workflow.steps[-1].id if workflow.steps else None
            workflow.steps.append(
                WorkflowStep(
                    id=f"dynamic-{capability_id}",
                    name=f"Dynamic {capability_id}",
                    capability_id=capability_id,
                    dependencies=[last] if last else [],
                    optional=True,
                )
            )
            present.add(capability_id)
            logger.debug(f"Added dynamic step for {capability_id}")

        if classification.confidence < LOW_CONFIDENCE_THRESHOLD:
            # Applied when the executor derives the budget, with its own step default
            workflow.timeout_multiplier *= LOW_CONFIDENCE_TIMEOUT_MULTIPLIER
            logger.info(
                f"Low confidence {classification.confidence:.2f}: "
                f"execution budget scaled by {workflow.timeout_multiplier:g}"
            )

        return workflow

    @staticmethod
    def _build_context(
        use_case: UseCaseDefinition,
        classification: ClassificationResult,
        vertical: str,
    ) -> BindingContext:
        domain_data = copy.deepcopy(use_case.domain_data)
        domain_data["entities"] = [e.model_dump() for e in classification.entities]
        domain_data["keywords"] = list(classification.keywords)
        domain_data["intent"] = classification.intent
        return BindingContext(
            vertical=vertical,
            use_case=use_case.id,
            regulations=list(use_case.regulations),
            thresholds={k: v.model_copy() for k, v in use_case.thresholds.items()},
            domain_data=domain_data,
        )
