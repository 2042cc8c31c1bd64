"""Map decoded commands onto state mutations, lifecycle transitions and hardware calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .backends.base import TriggerType
from .commands import (
    CONFIG_COMMANDS,
    QUERY_COMMANDS,
    ChannelAttenuation,
    ChannelCountQuery,
    ChannelEnable,
    ChannelOffset,
    ChannelRange,
    Command,
    CommandError,
    DepthsQuery,
    ExitSession,
    ForceTrigger,
    IdentityQuery,
    RatesQuery,
    SetMemoryDepth,
    SetSampleRate,
    StartAcquisition,
    StopAcquisition,
    TriggerDelay,
    TriggerEdge,
    TriggerLevel,
    TriggerMode,
    TriggerSource,
    Unrecognized,
    decode_command,
)
from .hardware import HardwareAbort
from .parser import parse_line
from .session import InstrumentSession
from .state import FS_PER_SECOND

LOGGER = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    reply: Optional[str] = None
    exit: bool = False


def sample_rate_ladder(min_hz: float, max_hz: float, floor_hz: float = 1000.0) -> List[float]:
    """Walk down from *max_hz* in 1-2-5 steps per decade.

    The walk stops once the decade start drops below ``max(min_hz, floor_hz)``.
    """

    lowest = max(min_hz, floor_hz)
    rates: List[float] = []
    freq = max_hz
    while freq >= lowest:
        rates.extend((freq, freq / 2, freq / 5))
        freq /= 10
    return rates


def rates_reply(min_hz: float, max_hz: float, floor_hz: float = 1000.0) -> str:
    intervals = [round(FS_PER_SECOND / freq) for freq in sample_rate_ladder(min_hz, max_hz, floor_hz)]
    return "".join(f"{interval}," for interval in intervals)


def trigger_position_seconds(mem_depth: int, sample_interval_fs: int, delay_fs: int) -> float:
    """Convert a delay from buffer start into a position relative to the buffer midpoint."""

    offset_samples = mem_depth // 2
    offset_fs = offset_samples * sample_interval_fs
    position_fs = offset_fs - delay_fs
    return position_fs / FS_PER_SECOND


class CommandDispatcher:
    """Execute commands against an :class:`InstrumentSession`."""

    def __init__(self, session: InstrumentSession) -> None:
        self._session = session
        self._state = session.state
        self._hw = session.hardware
        self._lifecycle = session.lifecycle
        self._settings = session.settings
        self._handlers: Dict[type, Callable[[Any], Optional[str]]] = {
            IdentityQuery: self._identity,
            ChannelCountQuery: self._channel_count,
            RatesQuery: self._rates,
            DepthsQuery: self._depths,
            ChannelEnable: self._channel_enable,
            ChannelOffset: self._channel_offset,
            ChannelAttenuation: self._channel_attenuation,
            ChannelRange: self._channel_range,
            SetSampleRate: self._sample_rate,
            SetMemoryDepth: self._memory_depth,
            StartAcquisition: self._start,
            ForceTrigger: self._force,
            StopAcquisition: self._stop,
            TriggerMode: self._trigger_mode,
            TriggerEdge: self._trigger_edge,
            TriggerLevel: self._trigger_level,
            TriggerSource: self._trigger_source,
            TriggerDelay: self._trigger_delay,
        }

    def handle_line(self, line: str) -> DispatchOutcome:
        LOGGER.debug("RX %r", line)
        parsed = parse_line(line)
        try:
            command = decode_command(parsed, self._state.num_channels)
        except CommandError as exc:
            LOGGER.warning("Ignoring malformed command %r: %s", line, exc)
            return DispatchOutcome()
        return self.dispatch(command)

    def dispatch(self, command: Command) -> DispatchOutcome:
        if isinstance(command, ExitSession):
            return DispatchOutcome(exit=True)
        if isinstance(command, Unrecognized):
            parsed = command.line
            LOGGER.debug(
                "Unrecognized command (%s): subject=%r verb=%r query=%s args=%r",
                command.reason,
                parsed.subject,
                parsed.verb,
                parsed.is_query,
                parsed.args,
            )
            return DispatchOutcome()

        handler = self._handlers[type(command)]
        with self._session.exclusive():
            try:
                reply = handler(command)
                if isinstance(command, CONFIG_COMMANDS):
                    self._lifecycle.rearm_if_armed()
            except HardwareAbort as exc:
                LOGGER.warning("Command %s aborted: %s", type(command).__name__, exc)
                # Queries always answer with exactly one line
                if isinstance(command, QUERY_COMMANDS):
                    return DispatchOutcome(reply="")
                return DispatchOutcome()
        return DispatchOutcome(reply=reply)

    # Queries -------------------------------------------------------------

    def _identity(self, _: IdentityQuery) -> str:
        return self._settings.identity.idn()

    def _channel_count(self, _: ChannelCountQuery) -> str:
        return str(self._state.num_channels)

    def _rates(self, _: RatesQuery) -> str:
        result = self._hw.call("get_frequency_range")
        if not result.ok:
            return ""
        min_hz, max_hz = result.value
        return rates_reply(min_hz, max_hz, self._settings.rate_floor)

    def _depths(self, _: DepthsQuery) -> str:
        return "".join(f"{depth}," for depth in self._settings.depths)

    # Channel configuration ---------------------------------------------

    def _channel_enable(self, command: ChannelEnable) -> None:
        self._hw.call("set_channel_enabled", command.channel, command.enabled)
        self._state.channels[command.channel].enabled = command.enabled
        self._state.acquisition.buffers_dirty = True

    def _channel_offset(self, command: ChannelOffset) -> None:
        self._hw.call("set_offset", command.channel, command.volts)
        self._state.channels[command.channel].offset_volts = command.volts

    def _channel_attenuation(self, command: ChannelAttenuation) -> None:
        self._hw.call("set_attenuation", command.channel, command.factor)
        self._state.channels[command.channel].attenuation = command.factor

    def _channel_range(self, command: ChannelRange) -> None:
        self._hw.call("set_range", command.channel, command.volts)
        self._state.channels[command.channel].range_volts = command.volts

    # Timebase ------------------------------------------------------------

    def _sample_rate(self, command: SetSampleRate) -> None:
        self._hw.call("set_frequency", command.hz)
        self._state.acquisition.sample_interval_fs = FS_PER_SECOND // command.hz

    def _memory_depth(self, command: SetMemoryDepth) -> None:
        self._hw.call("set_buffer_size", command.depth)
        self._state.acquisition.mem_depth = command.depth
        self._state.acquisition.buffers_dirty = True

    # Acquisition ---------------------------------------------------------

    def _start(self, command: StartAcquisition) -> None:
        self._lifecycle.request_start(single=command.single)

    def _force(self, _: ForceTrigger) -> None:
        self._lifecycle.start(force=True)

    def _stop(self, _: StopAcquisition) -> None:
        self._lifecycle.stop()

    # Trigger -------------------------------------------------------------

    def _trigger_mode(self, command: TriggerMode) -> None:
        if command.mode != "EDGE":
            LOGGER.warning("Unknown trigger mode %s", command.mode)
            return
        self._hw.call("set_trigger_type", TriggerType.EDGE)
        self._state.trigger.mode = command.mode

    def _trigger_edge(self, command: TriggerEdge) -> None:
        self._hw.call("set_trigger_condition", command.slope)
        self._state.trigger.slope = command.slope

    def _trigger_level(self, command: TriggerLevel) -> None:
        self._hw.call("set_trigger_level", command.volts)
        self._state.trigger.level_volts = command.volts

    def _trigger_source(self, command: TriggerSource) -> None:
        self._hw.call("set_trigger_source", command.channel)
        self._hw.call("set_trigger_auto_timeout", 0.0)
        trigger = self._state.trigger
        trigger.source = command.channel
        trigger.auto_timeout_s = 0.0

    def _trigger_delay(self, command: TriggerDelay) -> None:
        acquisition = self._state.acquisition
        requested = trigger_position_seconds(
            acquisition.mem_depth, acquisition.sample_interval_fs, command.delay_fs
        )
        self._hw.call("set_trigger_position", requested)
        readback = self._hw.call("get_trigger_position")
        actual = readback.value if readback.ok else requested

        trigger = self._state.trigger
        trigger.delay_fs = command.delay_fs
        trigger.position_error_s = actual - requested
