"""Routing table registry.

Loads vertical keywords, stopwords, phrases, and the ordered use-case
pattern table from YAML. Patterns are compiled once on load. The table can
be extended at runtime (tests, extensions) with ``add_vertical_keywords``
and ``add_use_case_pattern``.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Optional

import yaml

from .schemas import RoutingConfig, UseCasePattern, VerticalProfile

logger = logging.getLogger(__name__)

DEFINITIONS_DIR = Path(__file__).parent / "definitions"


class RoutingTable:
    """Static routing data used by the prompt classifier."""

    def __init__(self, routing_file: Optional[Path] = None):
        self.routing_file = routing_file or (DEFINITIONS_DIR / "routing.yaml")
        self._config = RoutingConfig()
        self._compiled: dict[str, list[re.Pattern]] = {}
        self._lock = threading.Lock()
        self._loaded = False

    def load(self) -> None:
        """Load the routing table from YAML (once)."""
        with self._lock:
            if self._loaded:
                return

            if not self.routing_file.exists():
                logger.warning(f"Routing file not found: {self.routing_file}")
                self._loaded = True
                return

            with open(self.routing_file) as f:
                data = yaml.safe_load(f) or {}

            self._config = RoutingConfig.model_validate(data)
            for entry in self._config.use_cases:
                self._compiled[entry.id] = [
                    re.compile(p, re.IGNORECASE) for p in entry.patterns
                ]

            self._loaded = True
            logger.info(
                f"Loaded routing table: {len(self._config.verticals)} verticals, "
                f"{len(self._config.use_cases)} use-case patterns"
            )

    @property
    def min_confidence_threshold(self) -> float:
        self.load()
        return self._config.min_confidence_threshold

    @property
    def general_capability(self) -> str:
        self.load()
        return self._config.general_capability

    @property
    def stopwords(self) -> frozenset[str]:
        self.load()
        return frozenset(self._config.stopwords)

    @property
    def phrases(self) -> list[str]:
        self.load()
        return list(self._config.phrases)

    def verticals(self) -> list[VerticalProfile]:
        """Vertical profiles in table order."""
        self.load()
        return list(self._config.verticals)

    def get_vertical(self, key: str) -> Optional[VerticalProfile]:
        self.load()
        for profile in self._config.verticals:
            if profile.key == key:
                return profile
        return None

    def use_cases(self) -> list[UseCasePattern]:
        """Use-case pattern entries in match order."""
        self.load()
        return list(self._config.use_cases)

    def get_use_case(self, use_case_id: str) -> Optional[UseCasePattern]:
        self.load()
        for entry in self._config.use_cases:
            if entry.id == use_case_id:
                return entry
        return None

    def match_use_case(self, text: str) -> Optional[UseCasePattern]:
        """Return the first use-case entry with a pattern matching ``text``."""
        self.load()
        for entry in self._config.use_cases:
            for pattern in self._compiled.get(entry.id, []):
                if pattern.search(text):
                    return entry
        return None

    def add_vertical_keywords(self, vertical: str, keywords: list[str]) -> None:
        """Add keywords to a vertical, creating the vertical if needed."""
        self.load()
        lowered = [k.lower() for k in keywords]
        with self._lock:
            profile = next((v for v in self._config.verticals if v.key == vertical), None)
            if profile is None:
                self._config.verticals.append(
                    VerticalProfile(key=vertical, keywords=lowered)
                )
            else:
                profile.keywords.extend(k for k in lowered if k not in profile.keywords)
        logger.info(f"Added {len(lowered)} keywords to vertical {vertical}")

    def add_use_case_pattern(
        self,
        use_case: str,
        pattern: str,
        vertical: str,
        capabilities: Optional[list[str]] = None,
    ) -> None:
        """Append a pattern for a use case.

        New use cases go to the end of the match order, so existing entries
        keep precedence.
        """
        self.load()
        compiled = re.compile(pattern, re.IGNORECASE)
        with self._lock:
            entry = next((u for u in self._config.use_cases if u.id == use_case), None)
            if entry is None:
                entry = UseCasePattern(
                    id=use_case,
                    vertical=vertical,
                    capabilities=list(capabilities or []),
                )
                self._config.use_cases.append(entry)
            entry.patterns.append(pattern)
            self._compiled.setdefault(use_case, []).append(compiled)
        logger.info(f"Added pattern for use case {use_case}: {pattern}")


# Global routing table instance
_routing_table: Optional[RoutingTable] = None


def get_routing_table() -> RoutingTable:
    """Get the default routing table."""
    global _routing_table
    if _routing_table is None:
        _routing_table = RoutingTable()
    return _routing_table
