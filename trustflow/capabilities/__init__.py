"""Capabilities: the analysis units invoked by workflow steps."""

from .schemas import SCORED_TYPES, BuiltinCapabilitySpec, CapabilityResult, CapabilityRule, Flag
from .base import BaseCapability, Capability
from .builtin import RuleBasedCapability, load_builtin_capabilities
from .registry import CapabilityRegistry, build_default_registry, get_capability_registry

__all__ = [
    "SCORED_TYPES",
    "BuiltinCapabilitySpec",
    "CapabilityResult",
    "CapabilityRule",
    "Flag",
    "BaseCapability",
    "Capability",
    "RuleBasedCapability",
    "load_builtin_capabilities",
    "CapabilityRegistry",
    "build_default_registry",
    "get_capability_registry",
]
