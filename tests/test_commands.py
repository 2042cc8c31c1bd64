"""Unit tests for decoding tokenized lines into command variants."""

import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from scope_server.backends.base import TriggerSlope
from scope_server.commands import (
    ChannelEnable,
    ChannelOffset,
    ChannelRange,
    CommandError,
    ExitSession,
    IdentityQuery,
    RatesQuery,
    SetMemoryDepth,
    SetSampleRate,
    StartAcquisition,
    TriggerDelay,
    TriggerEdge,
    TriggerLevel,
    TriggerMode,
    TriggerSource,
    Unrecognized,
    decode_command,
)
from scope_server.parser import parse_line
from scope_server.state import ChannelAddressError, resolve_channel


def decode(line: str, channels: int = 4):
    return decode_command(parse_line(line), channels)


class TestChannelAddressing(unittest.TestCase):
    def test_one_based_to_zero_based(self):
        self.assertEqual(resolve_channel("C1", 4), 0)
        self.assertEqual(resolve_channel("c4", 4), 3)

    def test_high_channel_is_clamped(self):
        with self.assertLogs("scope_server.state", level="WARNING"):
            self.assertEqual(resolve_channel("C9", 4), 3)

    def test_channel_zero_is_clamped_to_first(self):
        with self.assertLogs("scope_server.state", level="WARNING"):
            self.assertEqual(resolve_channel("C0", 4), 0)

    def test_non_channel_text_rejected(self):
        with self.assertRaises(ChannelAddressError):
            resolve_channel("TRIG", 4)


class TestDecodeCommand(unittest.TestCase):
    def test_queries(self):
        self.assertEqual(decode("*IDN?"), IdentityQuery())
        self.assertEqual(decode("RATES?"), RatesQuery())

    def test_unknown_query(self):
        self.assertIsInstance(decode("FOO?"), Unrecognized)

    def test_global_query_with_subject_is_unrecognized(self):
        self.assertIsInstance(decode("C1:CHANS?"), Unrecognized)
        self.assertIsInstance(decode("TRIG:*IDN?"), Unrecognized)

    def test_identity_without_query_mark_is_unrecognized(self):
        self.assertIsInstance(decode("*IDN"), Unrecognized)

    def test_channel_commands(self):
        self.assertEqual(decode("C2:ON"), ChannelEnable(1, True))
        self.assertEqual(decode("C2:OFF"), ChannelEnable(1, False))
        self.assertEqual(decode("C1:OFFS -0.25"), ChannelOffset(0, -0.25))
        self.assertEqual(decode("C3:RANGE 5.0"), ChannelRange(2, 5.0))

    def test_channel_index_clamped_not_rejected(self):
        with self.assertLogs("scope_server.state", level="WARNING"):
            self.assertEqual(decode("C9:ON"), ChannelEnable(3, True))

    def test_channel_command_needs_channel_subject(self):
        self.assertIsInstance(decode("ON"), Unrecognized)
        self.assertIsInstance(decode("TRIG:ON"), Unrecognized)

    def test_wrong_arity_is_unrecognized(self):
        self.assertIsInstance(decode("C1:OFFS"), Unrecognized)
        self.assertIsInstance(decode("C1:ON 1"), Unrecognized)
        self.assertIsInstance(decode("RATE"), Unrecognized)

    def test_malformed_numbers_raise(self):
        with self.assertRaises(CommandError):
            decode("C1:OFFS abc")
        with self.assertRaises(CommandError):
            decode("RATE fast")
        with self.assertRaises(CommandError):
            decode("RATE 0")
        with self.assertRaises(CommandError):
            decode("DEPTH -5")

    def test_unparseable_channel_raises(self):
        with self.assertRaises(CommandError):
            decode("CX:ON")
        with self.assertRaises(CommandError):
            decode("TRIG:SOU EXT")

    def test_timebase(self):
        self.assertEqual(decode("RATE 100000000"), SetSampleRate(100_000_000))
        self.assertEqual(decode("DEPTH 65536"), SetMemoryDepth(65536))

    def test_rate_above_one_femtosecond_interval_raises(self):
        self.assertEqual(decode("RATE 1000000000000000"), SetSampleRate(10**15))
        with self.assertRaises(CommandError):
            decode("RATE 2000000000000000")

    def test_start_single_exit(self):
        self.assertEqual(decode("START"), StartAcquisition(single=False))
        self.assertEqual(decode("SINGLE"), StartAcquisition(single=True))
        self.assertEqual(decode("EXIT"), ExitSession())

    def test_keywords_case_insensitive(self):
        self.assertEqual(decode("trig:lev 0.5"), TriggerLevel(0.5))
        self.assertEqual(decode("start"), StartAcquisition(single=False))

    def test_trigger_commands(self):
        self.assertEqual(decode("TRIG:MODE EDGE"), TriggerMode("EDGE"))
        self.assertEqual(decode("TRIG:MODE PULSE"), TriggerMode("PULSE"))
        self.assertEqual(decode("TRIG:EDGE:DIR RISING"), TriggerEdge(TriggerSlope.RISING))
        self.assertEqual(decode("TRIG:EDGE:DIR FALLING"), TriggerEdge(TriggerSlope.FALLING))
        self.assertEqual(decode("TRIG:EDGE:DIR ANY"), TriggerEdge(TriggerSlope.EITHER))
        self.assertEqual(decode("TRIG:SOU C3"), TriggerSource(2))
        self.assertEqual(decode("TRIG:DELAY 500"), TriggerDelay(500))

    def test_trigger_verbs_need_trig_subject(self):
        self.assertIsInstance(decode("LEV 0.5"), Unrecognized)
        self.assertIsInstance(decode("TRIG:BOGUS 1"), Unrecognized)


if __name__ == "__main__":
    unittest.main()
