"""Base abstractions for the acquisition front end driven by the control plane."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Tuple


class BackendError(RuntimeError):
    """Raised when the acquisition hardware rejects or fails a call."""


class TriggerSlope(Enum):
    """Edge direction the trigger comparator reacts to."""

    RISING = "rising"
    FALLING = "falling"
    EITHER = "either"


class TriggerType(Enum):
    EDGE = "edge"


class AcquisitionMode(Enum):
    SINGLE = "single"


class InstrumentBackend(ABC):
    """Common interface implemented by every acquisition front end.

    Every call either completes or raises :class:`BackendError`. Callers are
    expected to serialise access; backends are not required to be thread safe.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def open(self) -> None:
        """Open the underlying device handle."""

    def close(self) -> None:
        """Release the underlying device handle."""

    @abstractmethod
    def reset(self) -> None:
        """Return the front end to its power-on configuration."""

    # Channel configuration ---------------------------------------------

    @abstractmethod
    def set_channel_enabled(self, channel: int, enabled: bool) -> None:
        ...

    @abstractmethod
    def set_offset(self, channel: int, volts: float) -> None:
        ...

    @abstractmethod
    def set_attenuation(self, channel: int, factor: float) -> None:
        ...

    @abstractmethod
    def set_range(self, channel: int, volts: float) -> None:
        ...

    # Timebase ------------------------------------------------------------

    @abstractmethod
    def set_frequency(self, hz: int) -> None:
        ...

    @abstractmethod
    def get_frequency_range(self) -> Tuple[float, float]:
        """Return the ``(min, max)`` sample frequency supported, in Hz."""

    @abstractmethod
    def set_buffer_size(self, samples: int) -> None:
        ...

    # Trigger -------------------------------------------------------------

    @abstractmethod
    def set_trigger_type(self, trigger_type: TriggerType) -> None:
        ...

    @abstractmethod
    def set_trigger_condition(self, slope: TriggerSlope) -> None:
        ...

    @abstractmethod
    def set_trigger_level(self, volts: float) -> None:
        ...

    @abstractmethod
    def set_trigger_source(self, channel: int) -> None:
        ...

    @abstractmethod
    def set_trigger_auto_timeout(self, seconds: float) -> None:
        ...

    @abstractmethod
    def set_trigger_position(self, seconds: float) -> None:
        """Request a trigger position measured from the buffer midpoint."""

    @abstractmethod
    def get_trigger_position(self) -> float:
        """Return the trigger position actually applied (may be rounded)."""

    # Acquisition ---------------------------------------------------------

    @abstractmethod
    def set_acquisition_mode(self, mode: AcquisitionMode) -> None:
        ...

    @abstractmethod
    def configure(self, auto_start: bool, start: bool) -> None:
        """Apply pending configuration and optionally start acquiring."""

    @abstractmethod
    def force_trigger(self) -> None:
        """Issue a software trigger to the running acquisition."""

    @abstractmethod
    def acquisition_done(self) -> bool:
        """Return ``True`` once a triggered capture has completed."""

    @abstractmethod
    def read_samples(self, channel: int, count: int) -> List[float]:
        """Read *count* samples of the last capture for *channel*, in volts."""
