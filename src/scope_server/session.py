"""Session-owned aggregate of state, lifecycle and backend access."""

from __future__ import annotations

import logging
import threading

from .backends.base import InstrumentBackend
from .config import InstrumentSettings
from .hardware import FailurePolicy, HardwareAbort, HardwareLink
from .lifecycle import AcquisitionController
from .state import HardwareFault, InstrumentState

LOGGER = logging.getLogger(__name__)


class InstrumentSession:
    """Everything a command may touch, guarded by a single lock.

    The lock serialises command handling against the companion data-plane
    task; hold it via :meth:`exclusive` for the whole of one command.
    """

    def __init__(
        self,
        backend: InstrumentBackend,
        settings: InstrumentSettings,
    ) -> None:
        self.settings = settings
        self.backend = backend
        self.state = InstrumentState(
            num_channels=settings.channels,
            mem_depth=settings.memory_depth,
            sample_rate_hz=settings.sample_rate,
        )
        self.hardware = HardwareLink(
            backend,
            policy=FailurePolicy(settings.hardware_failure_policy),
            on_fault=self._record_fault,
        )
        self.lifecycle = AcquisitionController(self.state, self.hardware)
        self._lock = threading.Lock()

    def _record_fault(self, fault: HardwareFault) -> None:
        self.state.record_fault(fault)

    def exclusive(self) -> threading.Lock:
        return self._lock

    def reset(self) -> None:
        """Reset the hardware and return the software state to defaults."""

        with self._lock:
            try:
                self.hardware.call("reset")
            except HardwareAbort:
                LOGGER.warning("Hardware reset failed; continuing with default software state")
            self.state.reset()
