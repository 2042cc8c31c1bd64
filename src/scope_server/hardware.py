"""Result-typed access to the acquisition backend.

Every backend call made by the control plane goes through :class:`HardwareLink`,
which turns :class:`~scope_server.backends.base.BackendError` into a
:class:`HardwareResult`, logs the failure, and records it as a fault on the
instrument state. What happens next is decided by the failure policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .backends.base import BackendError, InstrumentBackend
from .state import HardwareFault

LOGGER = logging.getLogger(__name__)


class FailurePolicy(Enum):
    """How a failed backend call affects the command that issued it."""

    # Log and carry on as if the call had succeeded
    LOG = "log"
    # Abort the command: no software state update, no re-arm
    ABORT = "abort"


@dataclass(slots=True)
class HardwareResult:
    operation: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


class HardwareAbort(RuntimeError):
    """Raised under :attr:`FailurePolicy.ABORT` when a backend call fails."""

    def __init__(self, result: HardwareResult) -> None:
        super().__init__(f"{result.operation} failed: {result.error}")
        self.result = result


class HardwareLink:
    """Wrap a backend so that each call yields a :class:`HardwareResult`."""

    def __init__(
        self,
        backend: InstrumentBackend,
        policy: FailurePolicy = FailurePolicy.LOG,
        on_fault: Optional[Callable[[HardwareFault], None]] = None,
    ) -> None:
        self.backend = backend
        self.policy = policy
        self._on_fault = on_fault

    def call(self, operation: str, *args: Any) -> HardwareResult:
        method = getattr(self.backend, operation)
        try:
            value = method(*args)
        except BackendError as exc:
            LOGGER.error("%s%r failed on %s: %s", operation, args, self.backend.name, exc)
            if self._on_fault is not None:
                self._on_fault(HardwareFault(operation=operation, message=str(exc)))
            result = HardwareResult(operation=operation, ok=False, error=str(exc))
            if self.policy is FailurePolicy.ABORT:
                raise HardwareAbort(result) from exc
            return result
        return HardwareResult(operation=operation, ok=True, value=value)
