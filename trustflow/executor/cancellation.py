"""Cooperative cancellation for executions.

Each execution owns a ``CancellationToken``. The registry maps execution ids
to tokens and is the only state shared across executions, so it is guarded
by a lock. Cancellation is level-triggered: once set, a token stays set.

A token can be created ahead of the execution (``token_for``) so that a
cancel request can land before the scheduler starts.
"""

import logging
import threading
from typing import Optional

from trustflow.errors import DuplicateExecution, ExecutionCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Level-triggered cancellation flag handed to running capabilities."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``ExecutionCancelled`` if cancellation was requested."""
        if self._event.is_set():
            raise ExecutionCancelled(self.execution_id)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass. Returns the flag."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken({self.execution_id!r}, cancelled={self.is_cancelled()})"


class CancellationRegistry:
    """Execution id -> token table with a duplicate-execution guard."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}
        self._active: set[str] = set()
        self._lock = threading.Lock()

    def token_for(self, execution_id: str) -> CancellationToken:
        """Get or create the token for an execution."""
        with self._lock:
            token = self._tokens.get(execution_id)
            if token is None:
                token = CancellationToken(execution_id)
                self._tokens[execution_id] = token
            return token

    def activate(
        self,
        execution_id: str,
        token: Optional[CancellationToken] = None,
    ) -> CancellationToken:
        """Mark an execution as running and return its token.

        A caller-supplied token replaces any pending one; a pending
        cancellation is carried over.

        Raises:
            DuplicateExecution: the execution id is already running.
        """
        with self._lock:
            if execution_id in self._active:
                logger.warning(f"Duplicate execution blocked: {execution_id} is already running")
                raise DuplicateExecution(execution_id)
            existing = self._tokens.get(execution_id)
            if token is None:
                token = existing or CancellationToken(execution_id)
            elif existing is not None and existing.is_cancelled():
                token.cancel()
            self._tokens[execution_id] = token
            self._active.add(execution_id)
            return token

    def request_cancellation(self, execution_id: str) -> bool:
        """Set the token for a known execution.

        Returns True if the execution was pending or running.
        """
        with self._lock:
            token = self._tokens.get(execution_id)
        if token is None:
            logger.warning(f"Cannot cancel execution {execution_id}: not found")
            return False
        token.cancel()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    def is_cancelled(self, execution_id: str) -> bool:
        with self._lock:
            token = self._tokens.get(execution_id)
        return token is not None and token.is_cancelled()

    def is_active(self, execution_id: str) -> bool:
        with self._lock:
            return execution_id in self._active

    def active_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._active)

    def release(self, execution_id: str) -> None:
        """Forget an execution once it has finished."""
        with self._lock:
            self._active.discard(execution_id)
            self._tokens.pop(execution_id, None)


# Global registry instance
_registry: Optional[CancellationRegistry] = None


def get_cancellation_registry() -> CancellationRegistry:
    global _registry
    if _registry is None:
        _registry = CancellationRegistry()
    return _registry
