"""Tests for result-typed backend access and the simulated backend."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from typing import List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from scope_server.backends.base import BackendError
from scope_server.backends.simulated import SimulatedBackend
from scope_server.hardware import FailurePolicy, HardwareAbort, HardwareLink
from scope_server.state import HardwareFault


class HardwareLinkTests(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = SimulatedBackend("sim")
        self.faults: List[HardwareFault] = []

    def link(self, policy: FailurePolicy) -> HardwareLink:
        return HardwareLink(self.backend, policy=policy, on_fault=self.faults.append)

    def test_success_carries_value(self) -> None:
        result = self.link(FailurePolicy.LOG).call("get_frequency_range")
        self.assertTrue(result.ok)
        self.assertEqual(result.value, (1.0, 100e6))
        self.assertEqual(self.faults, [])

    def test_log_policy_returns_failure(self) -> None:
        self.backend.fail("set_trigger_level")
        with self.assertLogs("scope_server.hardware", level="ERROR"):
            result = self.link(FailurePolicy.LOG).call("set_trigger_level", 0.5)
        self.assertFalse(result.ok)
        self.assertIn("simulated", result.error)
        self.assertEqual([fault.operation for fault in self.faults], ["set_trigger_level"])

    def test_abort_policy_raises(self) -> None:
        self.backend.fail("configure")
        with self.assertLogs("scope_server.hardware", level="ERROR"):
            with self.assertRaises(HardwareAbort) as ctx:
                self.link(FailurePolicy.ABORT).call("configure", True, True)
        self.assertEqual(ctx.exception.result.operation, "configure")
        self.assertEqual(len(self.faults), 1)

    def test_policy_from_config_value(self) -> None:
        self.assertIs(FailurePolicy("abort"), FailurePolicy.ABORT)
        with self.assertRaises(ValueError):
            FailurePolicy("retry")


class SimulatedBackendTests(unittest.TestCase):
    def test_acquisition_cycle(self) -> None:
        backend = SimulatedBackend("sim", signal_amplitude=2.0)
        backend.configure(True, True)
        self.assertFalse(backend.acquisition_done())
        backend.fire_trigger()
        self.assertTrue(backend.acquisition_done())
        samples = backend.read_samples(0, 16)
        self.assertEqual(len(samples), 16)
        self.assertTrue(all(abs(value) <= 2.0 for value in samples))

    def test_auto_trigger_completes_immediately(self) -> None:
        backend = SimulatedBackend("sim", auto_trigger=True)
        backend.configure(True, True)
        self.assertTrue(backend.acquisition_done())

    def test_idle_configure_never_completes(self) -> None:
        backend = SimulatedBackend("sim", auto_trigger=True)
        backend.configure(True, False)
        backend.fire_trigger()
        self.assertFalse(backend.acquisition_done())
        with self.assertRaises(BackendError):
            backend.read_samples(0, 4)

    def test_trigger_position_is_quantised(self) -> None:
        backend = SimulatedBackend("sim", position_quantum=1e-6)
        backend.set_trigger_position(2.4e-6)
        self.assertAlmostEqual(backend.get_trigger_position(), 2e-6, delta=1e-15)

    def test_reset_clears_registers(self) -> None:
        backend = SimulatedBackend("sim")
        backend.set_channel_enabled(0, True)
        backend.set_buffer_size(64)
        backend.reset()
        self.assertEqual(backend.enabled, {})
        self.assertEqual(backend.buffer_size, 8192)
        self.assertEqual(backend.call_names()[-1], "reset")

    def test_invalid_frequency_range(self) -> None:
        with self.assertRaises(BackendError):
            SimulatedBackend("sim", min_frequency=10.0, max_frequency=1.0)

    def test_call_history_is_bounded(self) -> None:
        backend = SimulatedBackend("sim", call_history=4)
        backend.configure(True, True)
        for _ in range(10):
            backend.acquisition_done()
        backend.force_trigger()
        self.assertEqual(len(backend.calls), 4)
        self.assertEqual(backend.call_names(), ["acquisition_done"] * 3 + ["force_trigger"])

    def test_invalid_call_history(self) -> None:
        with self.assertRaises(BackendError):
            SimulatedBackend("sim", call_history=0)

    def test_fail_and_heal(self) -> None:
        backend = SimulatedBackend("sim", fail_operations=["set_offset"])
        with self.assertRaises(BackendError):
            backend.set_offset(0, 1.0)
        backend.heal(["set_offset"])
        backend.set_offset(0, 1.0)
        self.assertEqual(backend.offsets[0], 1.0)


if __name__ == "__main__":
    unittest.main()
