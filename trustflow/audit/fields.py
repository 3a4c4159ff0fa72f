"""Per-use-case audit field extraction hook.

Extractors are plain callables ``(event, context) -> dict`` registered for a
use-case id, or for ``"*"`` to run on every use case. Their output is merged
into ``AuditEvent.fields``. A failing extractor is logged and skipped.
"""

import logging
import threading
from typing import Any, Callable, Optional

from .schemas import AuditEvent

logger = logging.getLogger(__name__)

FieldExtractor = Callable[[AuditEvent, dict[str, Any]], dict[str, Any]]

ALL_USE_CASES = "*"


class FieldExtractorRegistry:
    """Registry of audit field extractors keyed by use-case id."""

    def __init__(self) -> None:
        self._extractors: dict[str, list[FieldExtractor]] = {}
        self._lock = threading.Lock()

    def register(self, use_case_id: str, extractor: FieldExtractor) -> None:
        with self._lock:
            self._extractors.setdefault(use_case_id, []).append(extractor)

    def extractors_for(self, use_case_id: Optional[str]) -> list[FieldExtractor]:
        with self._lock:
            found = list(self._extractors.get(ALL_USE_CASES, []))
            if use_case_id and use_case_id != ALL_USE_CASES:
                found.extend(self._extractors.get(use_case_id, []))
        return found

    def extract(self, event: AuditEvent, context: dict[str, Any]) -> dict[str, Any]:
        """Run every matching extractor and merge their fields."""
        fields: dict[str, Any] = {}
        for extractor in self.extractors_for(event.use_case_id):
            try:
                fields.update(extractor(event, context) or {})
            except Exception as e:
                logger.warning(
                    f"Audit field extractor failed for {event.use_case_id} (non-fatal): {e}"
                )
        return fields

    def enrich(self, event: AuditEvent, context: dict[str, Any]) -> AuditEvent:
        """Return a copy of ``event`` with extracted fields merged in."""
        extracted = self.extract(event, context)
        if not extracted:
            return event
        return event.model_copy(update={"fields": {**event.fields, **extracted}})
