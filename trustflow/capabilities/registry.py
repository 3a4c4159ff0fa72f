"""Capability registry: id -> capability, with enable/disable.

Reads are lock-free lookups; registration and enable/disable take the lock.
The default registry is populated with the built-in rule-based
capabilities from ``definitions/builtin.yaml``.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from trustflow.errors import CapabilityDisabled, CapabilityNotFound

from .base import Capability
from .builtin import load_builtin_capabilities

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Registry of named capabilities."""

    def __init__(self) -> None:
        self._capabilities: dict[str, Capability] = {}
        self._disabled: set[str] = set()
        self._lock = threading.Lock()

    def register(self, capability: Capability, replace: bool = False) -> None:
        """Register a capability under its ``capability_id``.

        Raises:
            ValueError: if the id is taken and ``replace`` is False.
        """
        capability_id = capability.capability_id
        with self._lock:
            if capability_id in self._capabilities and not replace:
                raise ValueError(f"Capability already registered: {capability_id}")
            self._capabilities[capability_id] = capability
            self._disabled.discard(capability_id)
        logger.debug(f"Registered capability: {capability_id}")

    def unregister(self, capability_id: str) -> bool:
        with self._lock:
            self._disabled.discard(capability_id)
            return self._capabilities.pop(capability_id, None) is not None

    def get(self, capability_id: str) -> Optional[Capability]:
        return self._capabilities.get(capability_id)

    def is_enabled(self, capability_id: str) -> bool:
        capability = self._capabilities.get(capability_id)
        if capability is None or capability_id in self._disabled:
            return False
        return capability.is_enabled()

    def resolve(self, capability_id: str) -> Capability:
        """Return an enabled capability.

        Raises:
            CapabilityNotFound: nothing registered under the id.
            CapabilityDisabled: registered but disabled.
        """
        capability = self._capabilities.get(capability_id)
        if capability is None:
            raise CapabilityNotFound(capability_id)
        if not self.is_enabled(capability_id):
            raise CapabilityDisabled(capability_id)
        return capability

    def enable(self, capability_id: str) -> None:
        self._set_enabled(capability_id, True)

    def disable(self, capability_id: str) -> None:
        self._set_enabled(capability_id, False)

    def _set_enabled(self, capability_id: str, enabled: bool) -> None:
        with self._lock:
            capability = self._capabilities.get(capability_id)
            if capability is None:
                raise CapabilityNotFound(capability_id)
            if enabled:
                self._disabled.discard(capability_id)
            else:
                self._disabled.add(capability_id)
            set_enabled = getattr(capability, "set_enabled", None)
            if callable(set_enabled):
                set_enabled(enabled)
        logger.info(f"Capability {capability_id} {'enabled' if enabled else 'disabled'}")

    def list_ids(self) -> list[str]:
        return list(self._capabilities)

    def list_enabled(self) -> list[str]:
        return [cid for cid in self._capabilities if self.is_enabled(cid)]

    def __contains__(self, capability_id: str) -> bool:
        return capability_id in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)


def build_default_registry(definitions_file: Optional[Path] = None) -> CapabilityRegistry:
    """Create a registry holding every built-in capability."""
    registry = CapabilityRegistry()
    for capability in load_builtin_capabilities(definitions_file):
        registry.register(capability)
    logger.info(f"Built capability registry with {len(registry)} capabilities")
    return registry


# Global registry instance
_registry: Optional[CapabilityRegistry] = None


def get_capability_registry() -> CapabilityRegistry:
    """Get the default registry, populated with built-in capabilities."""
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry
