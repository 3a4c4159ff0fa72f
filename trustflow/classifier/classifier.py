"""Rule-based prompt classifier.

Maps free text to a vertical, a use case, extracted entities, an intent,
and a confidence in [0, 1]. Classification is deterministic: the same text
against the same routing table always yields the same result.
"""

import logging
import re
import string
from typing import Optional

from trustflow.errors import ClassificationAmbiguous
from trustflow.workflows.dag import BASELINE_CAPABILITIES

from .registry import RoutingTable, get_routing_table
from .schemas import ClassificationResult, Entity, UseCasePattern

logger = logging.getLogger(__name__)

ENTITY_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("date", re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2})\b")),
    ("money", re.compile(r"\$[\d,]+(?:\.\d{2})?")),
    ("percentage", re.compile(r"\d+(?:\.\d+)?%")),
    (
        "organization",
        re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Inc|LLC|Corp|Company|Corporation)\b"),
    ),
    ("location", re.compile(r"\b(?:[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*,\s*[A-Z]{2})\b")),
]

# Verb cues, checked in order
INTENT_CUES: list[tuple[tuple[str, ...], str]] = [
    (("review", "analyze", "evaluate"), "review"),
    (("validate", "verify", "check"), "validation"),
    (("comply", "compliance", "regulation"), "compliance"),
    (("calculate", "compute", "determine"), "calculation"),
    (("compare", "contrast", "versus"), "comparison"),
    (("risk", "threat", "vulnerability"), "risk-assessment"),
]

# Keyword fallbacks when no verb cue matched
INTENT_KEYWORDS: list[tuple[str, str]] = [
    ("audit", "audit"),
    ("report", "reporting"),
    ("contract", "contract-review"),
]

DEFAULT_INTENT = "general-analysis"

# Keyword-score divisor: five matching keywords give full vertical confidence
VERTICAL_SCORE_SCALE = 5.0
USE_CASE_CONFIDENCE = 0.8
BOTH_FOUND_FLOOR = 0.7
ONE_FOUND_FLOOR = 0.5
NONE_FOUND_CAP = 0.3


class PromptClassifier:
    """Classifies request text against a routing table."""

    def __init__(self, routing_table: Optional[RoutingTable] = None):
        self.routing = routing_table or get_routing_table()

    def classify(self, text: str, strict: bool = False) -> ClassificationResult:
        """Classify a request.

        Args:
            text: Free-text request.
            strict: Raise instead of warning when the result is ambiguous.

        Raises:
            ClassificationAmbiguous: in strict mode, when confidence is below
                the routing table's minimum.
        """
        lowered = text.lower()

        keywords = self.extract_keywords(text)
        vertical, vertical_score = self._score_verticals(text, lowered)
        confidence = min(vertical_score / VERTICAL_SCORE_SCALE, 1.0) if vertical else 0.0

        use_case_entry = self.routing.match_use_case(text)
        use_case = use_case_entry.id if use_case_entry else None
        if use_case_entry is not None:
            confidence = max(confidence, USE_CASE_CONFIDENCE)

        if vertical and use_case:
            confidence = max(confidence, BOTH_FOUND_FLOOR)
        elif vertical or use_case:
            confidence = max(confidence, ONE_FOUND_FLOOR)
        else:
            confidence = min(confidence, NONE_FOUND_CAP)

        if vertical is None and use_case_entry is not None:
            vertical = use_case_entry.vertical

        confidence = max(0.0, min(1.0, confidence))
        result = ClassificationResult(
            vertical=vertical,
            use_case=use_case,
            keywords=keywords,
            entities=self.extract_entities(text),
            intent=self.detect_intent(lowered),
            confidence=confidence,
            suggested_capabilities=self._suggest_capabilities(vertical, use_case_entry),
            ambiguous=confidence < self.routing.min_confidence_threshold,
        )

        logger.info(
            f"Classified request: vertical={result.vertical} use_case={result.use_case} "
            f"intent={result.intent} confidence={result.confidence:.2f}"
        )

        if result.ambiguous:
            message = (
                f"Low classification confidence {result.confidence:.2f} "
                f"(threshold {self.routing.min_confidence_threshold})"
            )
            if strict:
                raise ClassificationAmbiguous(message, result=result)
            logger.warning(message)

        return result

    def extract_keywords(self, text: str) -> list[str]:
        """Distinct lower-cased keywords in first-seen order, then phrases."""
        stopwords = self.routing.stopwords
        lowered = text.lower()
        seen: dict[str, None] = {}

        for token in lowered.split():
            word = token.strip(string.punctuation)
            if len(word) > 3 and word not in stopwords:
                seen.setdefault(word, None)

        for phrase in self.routing.phrases:
            if phrase.lower() in lowered:
                seen.setdefault(phrase.lower(), None)

        return list(seen)

    def extract_entities(self, text: str) -> list[Entity]:
        entities: list[Entity] = []
        for entity_type, pattern in ENTITY_PATTERNS:
            for match in pattern.finditer(text):
                entities.append(Entity(type=entity_type, value=match.group(0)))
        return entities

    @staticmethod
    def detect_intent(lowered: str) -> str:
        for cues, intent in INTENT_CUES:
            if any(cue in lowered for cue in cues):
                return intent
        for keyword, intent in INTENT_KEYWORDS:
            if keyword in lowered:
                return intent
        return DEFAULT_INTENT

    def _score_verticals(self, text: str, lowered: str) -> tuple[Optional[str], float]:
        """Return the best-scoring vertical and its score.

        +1 per keyword found as a substring, +0.5 more when it also matches
        as a whole word. Ties keep the earlier vertical in table order.
        """
        best: Optional[str] = None
        best_score = 0.0
        for profile in self.routing.verticals():
            score = 0.0
            for keyword in profile.keywords:
                kw = keyword.lower()
                if kw in lowered:
                    score += 1
                    if re.search(rf"\b{re.escape(kw)}\b", text, re.IGNORECASE):
                        score += 0.5
            if score > best_score:
                best, best_score = profile.key, score
        return best, best_score

    def _suggest_capabilities(
        self,
        vertical: Optional[str],
        use_case_entry: Optional[UseCasePattern],
    ) -> list[str]:
        suggested: list[str] = list(BASELINE_CAPABILITIES)

        domain_capability = self.routing.general_capability
        if vertical:
            profile = self.routing.get_vertical(vertical)
            if profile and profile.domain_capability:
                domain_capability = profile.domain_capability
            else:
                domain_capability = f"{vertical}-domain-agent"
        suggested.append(domain_capability)

        if use_case_entry is not None:
            suggested.extend(use_case_entry.capabilities)

        return list(dict.fromkeys(suggested))
