"""In-process simulated acquisition front end.

Useful for exercising the control plane without hardware attached. The most recent
calls are recorded in :attr:`SimulatedBackend.calls` so tests can assert on the
exact sequence issued by the server.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from .base import AcquisitionMode, BackendError, InstrumentBackend, TriggerSlope, TriggerType


_LOG = logging.getLogger(__name__)


class SimulatedBackend(InstrumentBackend):
    """Backend that emulates an edge-triggered single-shot digitiser.

    Settings supported (``backend`` section of the configuration):
      - min_frequency (float, default 1.0)
      - max_frequency (float, default 100e6)
      - position_quantum (float seconds, default 1 / max_frequency)
      - auto_trigger (bool, default False)
      - fail_operations (list of operation names that raise BackendError)
      - signal_frequency (float Hz, default 1e6)
      - signal_amplitude (float volts, default 1.0)
      - call_history (int, default 1024; most recent calls kept in :attr:`calls`)
    """

    def __init__(self, name: str, **settings: Any) -> None:
        super().__init__(name)
        self.min_frequency = float(settings.get("min_frequency", 1.0))
        self.max_frequency = float(settings.get("max_frequency", 100e6))
        if self.min_frequency <= 0 or self.max_frequency < self.min_frequency:
            raise BackendError("simulated backend requires 0 < min_frequency <= max_frequency")
        quantum = settings.get("position_quantum")
        self.position_quantum = float(quantum) if quantum is not None else 1.0 / self.max_frequency
        self.auto_trigger = bool(settings.get("auto_trigger", False))
        self.fail_operations = set(settings.get("fail_operations", []) or [])
        self.signal_frequency = float(settings.get("signal_frequency", 1e6))
        self.signal_amplitude = float(settings.get("signal_amplitude", 1.0))

        history = int(settings.get("call_history", 1024))
        if history <= 0:
            raise BackendError("simulated backend requires call_history > 0")
        self.calls: Deque[Tuple[str, Tuple[Any, ...]]] = deque(maxlen=history)
        self.is_open = False
        self._reset_registers()

    def _reset_registers(self) -> None:
        self.enabled: Dict[int, bool] = {}
        self.offsets: Dict[int, float] = {}
        self.attenuation: Dict[int, float] = {}
        self.ranges: Dict[int, float] = {}
        self.frequency: float = self.max_frequency
        self.buffer_size = 8192
        self.trigger_type = TriggerType.EDGE
        self.trigger_slope = TriggerSlope.RISING
        self.trigger_level = 0.0
        self.trigger_source = 0
        self.trigger_auto_timeout: Optional[float] = None
        self.trigger_position = 0.0
        self.acquisition_mode: Optional[AcquisitionMode] = None
        self.running = False
        self.triggered = False
        self.completed = False

    # Test helpers --------------------------------------------------------

    def fail(self, *operations: str) -> None:
        """Make subsequent calls to *operations* raise :class:`BackendError`."""

        self.fail_operations.update(operations)

    def heal(self, operations: Optional[Iterable[str]] = None) -> None:
        if operations is None:
            self.fail_operations.clear()
        else:
            self.fail_operations.difference_update(operations)

    def fire_trigger(self) -> None:
        """Simulate the trigger condition being met on the running acquisition."""

        if self.running:
            self.triggered = True

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if operation in self.fail_operations:
            raise BackendError(f"{operation} failed (simulated)")

    # InstrumentBackend ---------------------------------------------------

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def reset(self) -> None:
        self._record("reset")
        self._reset_registers()

    def set_channel_enabled(self, channel: int, enabled: bool) -> None:
        self._record("set_channel_enabled", channel, enabled)
        self.enabled[channel] = enabled

    def set_offset(self, channel: int, volts: float) -> None:
        self._record("set_offset", channel, volts)
        self.offsets[channel] = volts

    def set_attenuation(self, channel: int, factor: float) -> None:
        self._record("set_attenuation", channel, factor)
        self.attenuation[channel] = factor

    def set_range(self, channel: int, volts: float) -> None:
        self._record("set_range", channel, volts)
        self.ranges[channel] = volts

    def set_frequency(self, hz: int) -> None:
        self._record("set_frequency", hz)
        if hz > self.max_frequency:
            raise BackendError(f"frequency {hz} Hz exceeds {self.max_frequency} Hz")
        self.frequency = float(hz)

    def get_frequency_range(self) -> Tuple[float, float]:
        self._record("get_frequency_range")
        return self.min_frequency, self.max_frequency

    def set_buffer_size(self, samples: int) -> None:
        self._record("set_buffer_size", samples)
        self.buffer_size = samples

    def set_trigger_type(self, trigger_type: TriggerType) -> None:
        self._record("set_trigger_type", trigger_type)
        self.trigger_type = trigger_type

    def set_trigger_condition(self, slope: TriggerSlope) -> None:
        self._record("set_trigger_condition", slope)
        self.trigger_slope = slope

    def set_trigger_level(self, volts: float) -> None:
        self._record("set_trigger_level", volts)
        self.trigger_level = volts

    def set_trigger_source(self, channel: int) -> None:
        self._record("set_trigger_source", channel)
        self.trigger_source = channel

    def set_trigger_auto_timeout(self, seconds: float) -> None:
        self._record("set_trigger_auto_timeout", seconds)
        self.trigger_auto_timeout = seconds

    def set_trigger_position(self, seconds: float) -> None:
        self._record("set_trigger_position", seconds)
        if self.position_quantum > 0:
            seconds = round(seconds / self.position_quantum) * self.position_quantum
        self.trigger_position = seconds

    def get_trigger_position(self) -> float:
        self._record("get_trigger_position")
        return self.trigger_position

    def set_acquisition_mode(self, mode: AcquisitionMode) -> None:
        self._record("set_acquisition_mode", mode)
        self.acquisition_mode = mode

    def configure(self, auto_start: bool, start: bool) -> None:
        self._record("configure", auto_start, start)
        self.running = start
        self.triggered = start and self.auto_trigger
        self.completed = False

    def force_trigger(self) -> None:
        self._record("force_trigger")
        self.fire_trigger()

    def acquisition_done(self) -> bool:
        self._record("acquisition_done")
        if self.running and self.triggered:
            self.running = False
            self.triggered = False
            self.completed = True
        return self.completed

    def read_samples(self, channel: int, count: int) -> List[float]:
        self._record("read_samples", channel, count)
        if not self.completed:
            raise BackendError("no completed capture to read")
        dt = 1.0 / self.frequency if self.frequency else 0.0
        offset = self.offsets.get(channel, 0.0)
        phase = channel * math.pi / 2
        omega = 2 * math.pi * self.signal_frequency
        _LOG.debug("Synthesising %s samples for channel %s", count, channel)
        return [
            self.signal_amplitude * math.sin(omega * i * dt + phase) + offset
            for i in range(count)
        ]
