"""Prompt classification: vertical, use case, entities, intent, confidence."""

from .schemas import ClassificationResult, Entity, RoutingConfig, UseCasePattern, VerticalProfile
from .registry import RoutingTable, get_routing_table
from .classifier import PromptClassifier

__all__ = [
    "ClassificationResult",
    "Entity",
    "RoutingConfig",
    "UseCasePattern",
    "VerticalProfile",
    "RoutingTable",
    "get_routing_table",
    "PromptClassifier",
]
