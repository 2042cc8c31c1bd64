"""Mutable instrument configuration and the snapshot frozen at arm time."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .backends.base import TriggerSlope

LOGGER = logging.getLogger(__name__)

FS_PER_SECOND = 10**15

_CHANNEL_RE = re.compile(r"^C(\d+)", re.IGNORECASE)


class ChannelAddressError(ValueError):
    """Raised when text cannot be interpreted as a ``C<n>`` channel reference."""


def resolve_channel(text: str, num_channels: int) -> int:
    """Map a 1-based ``C<n>`` reference onto a zero-based channel index.

    Out-of-range references are clamped into ``[0, num_channels - 1]`` rather
    than rejected; a warning is logged whenever clamping changes the index.
    """

    match = _CHANNEL_RE.match(text.strip())
    if match is None:
        raise ChannelAddressError(f"Not a channel reference: {text!r}")
    requested = int(match.group(1)) - 1
    index = min(max(requested, 0), num_channels - 1)
    if index != requested:
        LOGGER.warning(
            "Channel %s out of range (1..%s), using C%s", text, num_channels, index + 1
        )
    return index


@dataclass(slots=True)
class ChannelState:
    index: int
    enabled: bool = False
    offset_volts: float = 0.0
    attenuation: float = 1.0
    range_volts: Optional[float] = None


@dataclass(slots=True)
class TriggerConfig:
    """Edge trigger parameters plus values derived when arming."""

    source: int = 0
    level_volts: float = 0.0
    slope: TriggerSlope = TriggerSlope.RISING
    mode: str = "EDGE"
    delay_fs: int = 0
    auto_timeout_s: Optional[float] = None
    sample_index: int = 0
    position_error_s: float = 0.0


@dataclass(frozen=True)
class ArmSnapshot:
    """Configuration that was live when the acquisition was last armed."""

    channels: Tuple[bool, ...]
    mem_depth: int
    sample_interval_fs: int
    trigger_sample_index: int = 0
    trigger_position_error_s: float = 0.0

    def enabled_channels(self) -> List[int]:
        return [index for index, enabled in enumerate(self.channels) if enabled]


@dataclass(slots=True)
class AcquisitionState:
    mem_depth: int
    sample_interval_fs: int
    armed: bool = False
    one_shot: bool = False
    buffers_dirty: bool = False
    captures: int = 0
    snapshot: Optional[ArmSnapshot] = None


@dataclass(slots=True)
class HardwareFault:
    """A backend call that reported failure."""

    operation: str
    message: str
    timestamp: float = field(default_factory=time.time)


class InstrumentState:
    """Live configuration of the instrument.

    Mutated only while the owning session's lock is held.
    """

    def __init__(self, num_channels: int, mem_depth: int, sample_rate_hz: int) -> None:
        if num_channels < 1:
            raise ValueError("an instrument needs at least one channel")
        if mem_depth <= 0 or sample_rate_hz <= 0:
            raise ValueError("memory depth and sample rate must be positive")
        self.num_channels = num_channels
        self._default_mem_depth = mem_depth
        self._default_interval_fs = FS_PER_SECOND // sample_rate_hz
        self.channels: List[ChannelState] = []
        self.trigger = TriggerConfig()
        self.acquisition = AcquisitionState(mem_depth, self._default_interval_fs)
        self.faults: List[HardwareFault] = []
        self.reset()

    def reset(self) -> None:
        """Return every field to its power-on default."""

        self.channels = [ChannelState(index) for index in range(self.num_channels)]
        self.trigger = TriggerConfig()
        self.acquisition = AcquisitionState(
            mem_depth=self._default_mem_depth,
            sample_interval_fs=self._default_interval_fs,
        )
        self.faults = []

    @property
    def degraded(self) -> bool:
        return bool(self.faults)

    def record_fault(self, fault: HardwareFault) -> None:
        self.faults.append(fault)

    def resolve_channel(self, text: str) -> int:
        return resolve_channel(text, self.num_channels)

    def any_channel_enabled(self) -> bool:
        return any(channel.enabled for channel in self.channels)

    def live_snapshot(self) -> ArmSnapshot:
        return ArmSnapshot(
            channels=tuple(channel.enabled for channel in self.channels),
            mem_depth=self.acquisition.mem_depth,
            sample_interval_fs=self.acquisition.sample_interval_fs,
            trigger_sample_index=self.trigger.delay_fs // self.acquisition.sample_interval_fs,
            trigger_position_error_s=self.trigger.position_error_s,
        )

    def describe(self) -> Dict[str, Any]:
        """Return a JSON-friendly view of the state."""

        trigger = asdict(self.trigger)
        trigger["slope"] = self.trigger.slope.value
        acquisition = asdict(self.acquisition)
        snapshot = self.acquisition.snapshot
        acquisition["snapshot"] = (
            None
            if snapshot is None
            else {
                "channels": list(snapshot.channels),
                "mem_depth": snapshot.mem_depth,
                "sample_interval_fs": snapshot.sample_interval_fs,
                "trigger_sample_index": snapshot.trigger_sample_index,
                "trigger_position_error_s": snapshot.trigger_position_error_s,
            }
        )
        return {
            "channels": [asdict(channel) for channel in self.channels],
            "trigger": trigger,
            "acquisition": acquisition,
            "degraded": self.degraded,
            "faults": [asdict(fault) for fault in self.faults],
        }
