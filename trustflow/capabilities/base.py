"""Capability contract.

A capability is an independent analysis unit invoked by one workflow step.
It receives the step payload and an optional cancellation token it may poll
during long work, and returns a ``CapabilityResult`` (or a plain dict with
the same shape).
"""

import threading
from typing import Any, Optional, Protocol, Union, runtime_checkable

from .schemas import CapabilityResult


@runtime_checkable
class Capability(Protocol):
    """Protocol every registered capability satisfies."""

    @property
    def capability_id(self) -> str: ...

    def is_enabled(self) -> bool: ...

    def invoke(
        self,
        payload: dict[str, Any],
        cancellation: Optional[Any] = None,
    ) -> Union[CapabilityResult, dict[str, Any]]: ...


class BaseCapability:
    """Convenience base with enable/disable state.

    Subclasses implement ``invoke``.
    """

    def __init__(self, capability_id: str, name: Optional[str] = None, enabled: bool = True):
        self._capability_id = capability_id
        self.name = name or capability_id
        self._enabled = enabled
        self._state_lock = threading.Lock()

    @property
    def capability_id(self) -> str:
        return self._capability_id

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._state_lock:
            self._enabled = enabled

    def invoke(
        self,
        payload: dict[str, Any],
        cancellation: Optional[Any] = None,
    ) -> Union[CapabilityResult, dict[str, Any]]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.capability_id!r}, enabled={self._enabled})"
