"""End-to-end analysis pipeline with session tracking."""

from .schemas import AnalysisRequest, AnalysisResponse, PipelineSession, StageError
from .pipeline import AnalysisPipeline

__all__ = [
    "AnalysisRequest",
    "AnalysisResponse",
    "PipelineSession",
    "StageError",
    "AnalysisPipeline",
]
