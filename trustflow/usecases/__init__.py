"""Use-case catalog: id -> vertical, base workflow, regulations, thresholds."""

from .schemas import BaselineScores, Threshold, UseCaseDefinition, UseCaseSummary
from .registry import UseCaseCatalog, get_use_case_catalog

__all__ = [
    "BaselineScores",
    "Threshold",
    "UseCaseDefinition",
    "UseCaseSummary",
    "UseCaseCatalog",
    "get_use_case_catalog",
]
