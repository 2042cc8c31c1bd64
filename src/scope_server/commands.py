"""Closed set of commands understood by the control plane.

:func:`decode_command` turns a tokenized :class:`~scope_server.parser.ScpiLine`
into exactly one of the command types below, converting and validating
arguments on the way. Keywords are matched case-insensitively; a keyword
with the wrong number of arguments decodes to :class:`Unrecognized`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Union

from .backends.base import TriggerSlope
from .parser import ScpiLine
from .state import FS_PER_SECOND, ChannelAddressError, resolve_channel


class CommandError(ValueError):
    """Raised when a recognised command carries malformed arguments."""


@dataclass(frozen=True)
class IdentityQuery:
    pass


@dataclass(frozen=True)
class ChannelCountQuery:
    pass


@dataclass(frozen=True)
class RatesQuery:
    pass


@dataclass(frozen=True)
class DepthsQuery:
    pass


@dataclass(frozen=True)
class ChannelEnable:
    channel: int
    enabled: bool


@dataclass(frozen=True)
class ChannelOffset:
    channel: int
    volts: float


@dataclass(frozen=True)
class ChannelAttenuation:
    channel: int
    factor: float


@dataclass(frozen=True)
class ChannelRange:
    channel: int
    volts: float


@dataclass(frozen=True)
class SetSampleRate:
    hz: int


@dataclass(frozen=True)
class SetMemoryDepth:
    depth: int


@dataclass(frozen=True)
class StartAcquisition:
    single: bool


@dataclass(frozen=True)
class ForceTrigger:
    pass


@dataclass(frozen=True)
class StopAcquisition:
    pass


@dataclass(frozen=True)
class TriggerMode:
    mode: str


@dataclass(frozen=True)
class TriggerEdge:
    slope: TriggerSlope


@dataclass(frozen=True)
class TriggerLevel:
    volts: float


@dataclass(frozen=True)
class TriggerSource:
    channel: int


@dataclass(frozen=True)
class TriggerDelay:
    delay_fs: int


@dataclass(frozen=True)
class ExitSession:
    pass


@dataclass(frozen=True)
class Unrecognized:
    line: ScpiLine
    reason: str


Command = Union[
    IdentityQuery,
    ChannelCountQuery,
    RatesQuery,
    DepthsQuery,
    ChannelEnable,
    ChannelOffset,
    ChannelAttenuation,
    ChannelRange,
    SetSampleRate,
    SetMemoryDepth,
    StartAcquisition,
    ForceTrigger,
    StopAcquisition,
    TriggerMode,
    TriggerEdge,
    TriggerLevel,
    TriggerSource,
    TriggerDelay,
    ExitSession,
    Unrecognized,
]

CONFIG_COMMANDS = (
    ChannelEnable,
    ChannelOffset,
    ChannelAttenuation,
    ChannelRange,
    SetSampleRate,
    SetMemoryDepth,
    TriggerEdge,
    TriggerLevel,
    TriggerSource,
    TriggerDelay,
)

QUERY_COMMANDS = (
    IdentityQuery,
    ChannelCountQuery,
    RatesQuery,
    DepthsQuery,
)

_QUERIES: Dict[str, Callable[[], Command]] = {
    "*IDN": IdentityQuery,
    "CHANS": ChannelCountQuery,
    "RATES": RatesQuery,
    "DEPTHS": DepthsQuery,
}

_SLOPES = {
    "RISING": TriggerSlope.RISING,
    "FALLING": TriggerSlope.FALLING,
}


def _to_float(text: str, label: str) -> float:
    try:
        return float(text)
    except ValueError as exc:
        raise CommandError(f"{label} expects a number, got {text!r}") from exc


def _to_int(text: str, label: str) -> int:
    try:
        return int(text.strip())
    except ValueError as exc:
        raise CommandError(f"{label} expects an integer, got {text!r}") from exc


def _to_positive_int(text: str, label: str) -> int:
    value = _to_int(text, label)
    if value <= 0:
        raise CommandError(f"{label} must be positive, got {value}")
    return value


def _channel(text: str, num_channels: int, label: str) -> int:
    try:
        return resolve_channel(text, num_channels)
    except ChannelAddressError as exc:
        raise CommandError(f"{label}: {exc}") from exc


def decode_command(line: ScpiLine, num_channels: int) -> Command:
    """Decode a tokenized line; raises :class:`CommandError` on bad arguments."""

    subject = line.subject.upper()
    verb = line.verb.upper()
    args = line.args

    if line.is_query:
        factory = _QUERIES.get(verb)
        if factory is None or args or line.subject:
            return Unrecognized(line, "unrecognized query")
        return factory()

    if verb == "EXIT" and not args:
        return ExitSession()

    if verb in ("ON", "OFF", "OFFS", "ATTEN", "RANGE"):
        if not subject.startswith("C"):
            return Unrecognized(line, "channel command without C<n> subject")
        expected = 0 if verb in ("ON", "OFF") else 1
        if len(args) != expected:
            return Unrecognized(line, f"{verb} expects {expected} argument(s)")
        channel = _channel(line.subject, num_channels, verb)
        if verb == "ON":
            return ChannelEnable(channel, True)
        if verb == "OFF":
            return ChannelEnable(channel, False)
        if verb == "OFFS":
            return ChannelOffset(channel, _to_float(args[0], verb))
        if verb == "ATTEN":
            return ChannelAttenuation(channel, _to_float(args[0], verb))
        return ChannelRange(channel, _to_float(args[0], verb))

    if verb == "RATE" and len(args) == 1:
        hz = _to_positive_int(args[0], verb)
        # The sample interval is kept in whole femtoseconds
        if hz > FS_PER_SECOND:
            raise CommandError(f"RATE must not exceed {FS_PER_SECOND} Hz, got {hz}")
        return SetSampleRate(hz)
    if verb == "DEPTH" and len(args) == 1:
        return SetMemoryDepth(_to_positive_int(args[0], verb))
    if verb in ("START", "SINGLE") and not args:
        return StartAcquisition(single=verb == "SINGLE")
    if verb == "FORCE" and not args:
        return ForceTrigger()
    if verb == "STOP" and not args:
        return StopAcquisition()

    if subject == "TRIG":
        return _decode_trigger(line, verb, num_channels)

    return Unrecognized(line, "unrecognized command")


def _decode_trigger(line: ScpiLine, verb: str, num_channels: int) -> Command:
    if len(line.args) != 1:
        return Unrecognized(line, "unrecognized trigger command")
    arg = line.args[0]

    if verb == "MODE":
        return TriggerMode(arg.strip().upper())
    if verb == "EDGE:DIR":
        return TriggerEdge(_SLOPES.get(arg.strip().upper(), TriggerSlope.EITHER))
    if verb == "LEV":
        return TriggerLevel(_to_float(arg, "TRIG:LEV"))
    if verb == "SOU":
        return TriggerSource(_channel(arg, num_channels, "TRIG:SOU"))
    if verb == "DELAY":
        return TriggerDelay(_to_int(arg, "TRIG:DELAY"))
    return Unrecognized(line, "unrecognized trigger command")
