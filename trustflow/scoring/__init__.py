"""SIA score aggregation and report payloads."""

from .schemas import SIA_DIMENSIONS, AggregatedScore
from .aggregator import CRITICAL_FLAG_PENALTY, DEFAULT_CONFIDENCE, aggregate
from .report import build_report_payload

__all__ = [
    "SIA_DIMENSIONS",
    "AggregatedScore",
    "CRITICAL_FLAG_PENALTY",
    "DEFAULT_CONFIDENCE",
    "aggregate",
    "build_report_payload",
]
