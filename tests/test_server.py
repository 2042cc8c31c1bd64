"""End-to-end tests for the control-plane server over a real socket."""

from __future__ import annotations

import socket
import sys
import threading
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from scope_server.backends.base import BackendError
from scope_server.backends.simulated import SimulatedBackend
from scope_server.config import BackendDefinition, InstrumentSettings, parse_config_dict
from scope_server.dispatcher import CommandDispatcher, DispatchOutcome
from scope_server.server import BackendFactory, ScopeServerFacade, ScpiControlServer
from scope_server.session import InstrumentSession


CONFIG = {
    "server": {"host": "127.0.0.1", "port": 0, "data_plane_poll_interval": 0.001},
    "instrument": {"channels": 2, "memory_depth": 128},
    "backend": {"type": "simulated"},
}


class Client:
    def __init__(self, host: str, port: int) -> None:
        self.sock = socket.create_connection((host, port), timeout=2.0)
        self._pending = b""

    def send(self, text: str) -> None:
        self.sock.sendall(text.encode("ascii"))

    def read_line(self) -> str:
        while b"\n" not in self._pending:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError("closed")
            self._pending += chunk
        line, _, self._pending = self._pending.partition(b"\n")
        return line.decode("ascii")

    def wait_closed(self) -> bool:
        try:
            while True:
                chunk = self.sock.recv(4096)
                if not chunk:
                    return True
                self._pending += chunk
        except socket.timeout:
            return False

    def close(self) -> None:
        self.sock.close()


class ControlServerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls._facade = ScopeServerFacade(parse_config_dict(CONFIG))
        cls._ctx = cls._facade.start()
        cls._thread = threading.Thread(target=cls._ctx.server.loop, daemon=True)
        cls._thread.start()

    @classmethod
    def tearDownClass(cls) -> None:
        cls._facade.stop()
        cls._thread.join(timeout=5)

    def connect(self) -> Client:
        client = Client(self._ctx.server.host, self._ctx.server.port)
        self.addCleanup(client.close)
        return client

    def test_identity_query(self) -> None:
        client = self.connect()
        client.send("*IDN?\n")
        self.assertEqual(client.read_line(), "Digilent,Analog Discovery 2,SIM000000,1.0")
        client.send("EXIT\n")
        self.assertTrue(client.wait_closed())

    def test_semicolon_separated_queries(self) -> None:
        client = self.connect()
        client.send("CHANS?;DEPTHS?\n")
        self.assertEqual(client.read_line(), "2")
        self.assertEqual(client.read_line(), "65536,")
        client.send("EXIT\n")
        self.assertTrue(client.wait_closed())

    def test_bad_lines_produce_no_reply(self) -> None:
        client = self.connect()
        client.send("FOO\nC1:OFFS abc\n\nBAR?\nCHANS?\n")
        self.assertEqual(client.read_line(), "2")
        client.send("EXIT\n")
        self.assertTrue(client.wait_closed())

    def test_state_is_reset_between_clients(self) -> None:
        session = self._ctx.session
        client = self.connect()
        client.send("C1:ON;RATE 50000000;START\n")
        client.send("CHANS?\n")
        self.assertEqual(client.read_line(), "2")
        self.assertTrue(session.state.acquisition.armed)
        client.send("EXIT\n")
        self.assertTrue(client.wait_closed())

        self.assertFalse(session.state.acquisition.armed)
        self.assertFalse(session.state.channels[0].enabled)
        self.assertEqual(session.state.acquisition.sample_interval_fs, 10_000_000)

        follow_up = self.connect()
        follow_up.send("*IDN?\n")
        self.assertEqual(follow_up.read_line(), "Digilent,Analog Discovery 2,SIM000000,1.0")
        follow_up.send("EXIT\n")
        self.assertTrue(follow_up.wait_closed())

    def test_out_of_range_rate_keeps_session_alive(self) -> None:
        client = self.connect()
        client.send("C1:ON;RATE 2000000000000000;START\n")
        client.send("CHANS?\n")
        self.assertEqual(client.read_line(), "2")
        acquisition = self._ctx.session.state.acquisition
        self.assertTrue(acquisition.armed)
        self.assertEqual(acquisition.sample_interval_fs, 10_000_000)
        client.send("EXIT\n")
        self.assertTrue(client.wait_closed())

    def test_peer_disconnect_ends_session(self) -> None:
        client = self.connect()
        client.send("C1:ON;SINGLE\n")
        client.close()

        follow_up = self.connect()
        follow_up.send("CHANS?\n")
        self.assertEqual(follow_up.read_line(), "2")
        self.assertFalse(self._ctx.session.state.channels[0].enabled)
        follow_up.send("EXIT\n")
        self.assertTrue(follow_up.wait_closed())


class FailingDispatcher(CommandDispatcher):
    """Raises an unexpected error for one command."""

    def handle_line(self, line: str) -> DispatchOutcome:
        if line == "CRASH":
            raise RuntimeError("handler failure")
        return super().handle_line(line)


class HandlerFailureTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = InstrumentSession(SimulatedBackend("sim"), InstrumentSettings())
        self.server = ScpiControlServer(
            "127.0.0.1",
            0,
            self.session,
            dispatcher=FailingDispatcher(self.session),
            poll_interval=0.001,
        )
        self.thread = threading.Thread(target=self.server.loop, daemon=True)
        self.thread.start()

    def tearDown(self) -> None:
        self.server.close()
        self.thread.join(timeout=5)

    def test_failed_session_does_not_stop_accept_loop(self) -> None:
        client = Client(self.server.host, self.server.port)
        self.addCleanup(client.close)
        client.send("C1:ON;CRASH\n")
        self.assertTrue(client.wait_closed())
        self.assertTrue(self.thread.is_alive())

        follow_up = Client(self.server.host, self.server.port)
        self.addCleanup(follow_up.close)
        follow_up.send("*IDN?\n")
        self.assertEqual(follow_up.read_line(), "Digilent,Analog Discovery 2,SIM000000,1.0")
        self.assertFalse(self.session.state.channels[0].enabled)
        follow_up.send("EXIT\n")
        self.assertTrue(follow_up.wait_closed())


class BackendFactoryTests(unittest.TestCase):
    def test_builds_simulated_backend(self) -> None:
        backend = BackendFactory().build(BackendDefinition(type="simulated", settings={"max_frequency": 1e6}))
        self.assertEqual(backend.name, "simulated")
        self.assertEqual(backend.get_frequency_range(), (1.0, 1e6))

    def test_unknown_backend_type(self) -> None:
        with self.assertRaises(BackendError):
            BackendFactory().build(BackendDefinition(type="analog-discovery"))


if __name__ == "__main__":
    unittest.main()
