"""Built-in rule-based capabilities.

Each built-in capability is a ``RuleBasedCapability`` configured from
``definitions/builtin.yaml``: it starts from a base score, subtracts a
penalty for every rule that fires, and raises one flag per hit.
"""

import logging
import re
import time
from pathlib import Path
from typing import Any, Optional

import yaml

from .base import BaseCapability
from .schemas import BuiltinCapabilitySpec, CapabilityResult, CapabilityRule, Flag

logger = logging.getLogger(__name__)

DEFINITIONS_FILE = Path(__file__).parent / "definitions" / "builtin.yaml"

# Confidence lost per flag, by severity
SEVERITY_CONFIDENCE_COST = {
    "low": 0.05,
    "medium": 0.1,
    "high": 0.15,
    "critical": 0.25,
}

ARITHMETIC_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*([+\-*/])\s*(\d+(?:\.\d+)?)\s*=\s*(\d+(?:\.\d+)?)"
)
ARITHMETIC_TOLERANCE = 0.01


def _lookup(data: dict[str, Any], dotted: str) -> tuple[bool, bool]:
    """Return (parent_present, value_present) for a dotted path."""
    parts = dotted.split(".")
    current: Any = data
    for i, part in enumerate(parts):
        if not isinstance(current, dict) or not current.get(part):
            return i == len(parts) - 1, False
        current = current[part]
    return True, True


def _arithmetic_holds(left: float, op: str, right: float, expected: float) -> bool:
    if op == "+":
        actual = left + right
    elif op == "-":
        actual = left - right
    elif op == "*":
        actual = left * right
    else:
        if right == 0:
            return False
        actual = left / right
    return abs(actual - expected) <= ARITHMETIC_TOLERANCE


class RuleBasedCapability(BaseCapability):
    """Capability that scores the request text and payload with fixed rules."""

    def __init__(self, spec: BuiltinCapabilitySpec):
        super().__init__(spec.id, name=spec.name, enabled=spec.enabled)
        self.spec = spec
        self._patterns: dict[int, re.Pattern] = {
            i: re.compile(rule.pattern, re.IGNORECASE)
            for i, rule in enumerate(spec.rules)
            if rule.kind == "pattern" and rule.pattern
        }

    def invoke(
        self,
        payload: dict[str, Any],
        cancellation: Optional[Any] = None,
    ) -> CapabilityResult:
        start = time.time()
        text = payload.get("text") or ""
        flags: list[Flag] = []
        score = self.spec.base_score

        for i, rule in enumerate(self.spec.rules):
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            for message in self._evaluate(i, rule, text, payload):
                score -= rule.penalty
                flags.append(
                    Flag(
                        severity=rule.severity,
                        category=rule.category or self.spec.type,
                        message=message,
                    )
                )

        score = max(0.0, min(100.0, score))
        confidence = self.spec.base_confidence - sum(
            SEVERITY_CONFIDENCE_COST[f.severity] for f in flags
        )
        if not flags and len(text) > 100:
            confidence += 0.05
        confidence = max(0.1, min(1.0, confidence))

        recommendations = []
        if self.spec.recommendation and score < self.spec.recommend_below:
            recommendations.append(self.spec.recommendation)

        return CapabilityResult(
            score=score,
            confidence=round(confidence, 4),
            type=self.spec.type,
            flags=flags,
            recommendations=recommendations,
            processing_time_ms=int((time.time() - start) * 1000),
            capability_id=self.capability_id,
            details={
                "rules_checked": len(self.spec.rules),
                "issues": len(flags),
                "focus": payload.get("config", {}).get("focus", []),
            },
        )

    def _evaluate(
        self,
        index: int,
        rule: CapabilityRule,
        text: str,
        payload: dict[str, Any],
    ) -> list[str]:
        """Return one message per hit of ``rule``."""
        if rule.kind == "pattern":
            pattern = self._patterns.get(index)
            if pattern is not None and pattern.search(text):
                return [rule.message or f"Pattern matched: {pattern.pattern}"]
            return []

        if rule.kind == "missing_field":
            if not rule.field:
                return []
            parent_present, value_present = _lookup(payload, rule.field)
            if parent_present and not value_present:
                return [rule.message or f"Missing {rule.field}"]
            return []

        if rule.kind == "thresholds":
            thresholds = payload.get("context", {}).get("thresholds", {})
            metrics = payload.get("metrics", {})
            hits = []
            for metric, bounds in thresholds.items():
                value = metrics.get(metric)
                if not isinstance(value, (int, float)):
                    continue
                low, high = bounds.get("min"), bounds.get("max")
                if (low is not None and value < low) or (high is not None and value > high):
                    hits.append(f"{metric}={value} outside allowed range [{low}, {high}]")
            return hits

        if rule.kind == "arithmetic":
            hits = []
            for match in ARITHMETIC_PATTERN.finditer(text):
                left, op, right, expected = match.groups()
                if not _arithmetic_holds(float(left), op, float(right), float(expected)):
                    hits.append(rule.message or f"Calculation does not hold: {match.group(0)}")
            return hits

        return []


def load_builtin_capabilities(definitions_file: Optional[Path] = None) -> list[RuleBasedCapability]:
    """Load built-in capability definitions from YAML."""
    path = definitions_file or DEFINITIONS_FILE
    if not path.exists():
        logger.warning(f"Built-in capability definitions not found: {path}")
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    capabilities: list[RuleBasedCapability] = []
    for entry in data.get("capabilities", []):
        try:
            spec = BuiltinCapabilitySpec.model_validate(entry)
            capabilities.append(RuleBasedCapability(spec))
            logger.debug(f"Loaded built-in capability: {spec.id}")
        except Exception as e:
            logger.error(f"Failed to load built-in capability: {e}")

    logger.info(f"Loaded {len(capabilities)} built-in capabilities")
    return capabilities
