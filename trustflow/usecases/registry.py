"""Use-case catalog: loads and serves use-case definitions.

Definitions are loaded once from JSON files in the definitions directory.
After loading the catalog is append-only: ``register`` adds new entries
but never replaces an existing one.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from .schemas import UseCaseDefinition, UseCaseSummary

logger = logging.getLogger(__name__)


class UseCaseCatalog:
    """Registry of use-case definitions.

    Insertion order is preserved and is the catalog order used for
    tie-breaks during use-case inference. Files are loaded in name order.
    """

    def __init__(self, definitions_dir: Optional[Path] = None, load_defaults: bool = True):
        self.definitions_dir = definitions_dir or (Path(__file__).parent / "definitions")
        self._use_cases: dict[str, UseCaseDefinition] = {}
        self._lock = threading.Lock()
        # An empty catalog (load_defaults=False) is treated as already loaded
        self._loaded = not load_defaults

    def load(self) -> None:
        """Load all use-case definitions from JSON files (once)."""
        with self._lock:
            if self._loaded:
                return

            if not self.definitions_dir.exists():
                logger.warning(f"Use-case definitions directory not found: {self.definitions_dir}")
                self._loaded = True
                return

            for json_file in sorted(self.definitions_dir.glob("*.json")):
                try:
                    with open(json_file, "r") as f:
                        data = json.load(f)
                    use_case = UseCaseDefinition.model_validate(data)
                except Exception as e:
                    logger.error(f"Failed to load use case {json_file}: {e}")
                    continue
                if use_case.id in self._use_cases:
                    logger.error(f"Duplicate use case {use_case.id} in {json_file}, ignoring")
                    continue
                self._use_cases[use_case.id] = use_case
                logger.debug(f"Loaded use case: {use_case.id}")

            self._loaded = True
            logger.info(f"Loaded {len(self._use_cases)} use cases")

    def register(self, use_case: UseCaseDefinition) -> None:
        """Add a use case to the catalog.

        Raises:
            ValueError: if a use case with the same id is already registered.
        """
        self.load()
        with self._lock:
            if use_case.id in self._use_cases:
                raise ValueError(f"Use case already registered: {use_case.id}")
            self._use_cases[use_case.id] = use_case
        logger.info(f"Registered use case: {use_case.name} ({use_case.id})")

    def get(self, use_case_id: str) -> Optional[UseCaseDefinition]:
        """Get a use-case definition by id."""
        self.load()
        return self._use_cases.get(use_case_id)

    def list_all(self) -> list[UseCaseDefinition]:
        self.load()
        return list(self._use_cases.values())

    def list_by_vertical(self, vertical: str) -> list[UseCaseDefinition]:
        """List use cases for a vertical, in catalog order."""
        self.load()
        return [uc for uc in self._use_cases.values() if uc.vertical == vertical]

    def list_summaries(self) -> list[UseCaseSummary]:
        self.load()
        return [
            UseCaseSummary(
                id=uc.id,
                name=uc.name,
                vertical=uc.vertical,
                step_count=len(uc.workflow.steps),
                regulations=uc.regulations,
            )
            for uc in self._use_cases.values()
        ]

    def verticals(self) -> list[str]:
        self.load()
        return list(dict.fromkeys(uc.vertical for uc in self._use_cases.values()))

    def count(self) -> int:
        self.load()
        return len(self._use_cases)


# Global catalog instance
_catalog: Optional[UseCaseCatalog] = None


def get_use_case_catalog() -> UseCaseCatalog:
    """Get the default process-wide use-case catalog."""
    global _catalog
    if _catalog is None:
        _catalog = UseCaseCatalog()
    return _catalog
