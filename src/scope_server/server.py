"""SCPI control-plane server: accept loop, session loop and process wiring."""

from __future__ import annotations

import logging
import signal
import socket
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .backends.base import BackendError, InstrumentBackend
from .backends.simulated import SimulatedBackend
from .codec import CodecError, LineCodec
from .config import BackendDefinition, Config, load_config
from .dataplane import CaptureSink, WaveformPump
from .dispatcher import CommandDispatcher
from .session import InstrumentSession

LOGGER = logging.getLogger(__name__)


class BackendFactory:
    """Instantiate acquisition backends based on configuration definitions."""

    def __init__(self) -> None:
        self._builders: Dict[str, Callable[[BackendDefinition], InstrumentBackend]] = {
            "simulated": self._build_simulated,
        }

    def build(self, definition: BackendDefinition) -> InstrumentBackend:
        builder = self._builders.get(definition.type)
        if builder is None:
            raise BackendError(f"No backend implementation available for type {definition.type!r}")
        return builder(definition)

    def _build_simulated(self, definition: BackendDefinition) -> InstrumentBackend:
        return SimulatedBackend(definition.type, **dict(definition.settings))


class ScpiControlServer:
    """Serve one client at a time on the control-plane socket.

    For every accepted client the hardware is reset, a companion
    :class:`WaveformPump` is started, and lines are read, parsed and
    dispatched until the client sends ``EXIT`` or the connection drops. The
    pump is then stopped and joined before the hardware is reset again and
    the next client is accepted.
    """

    def __init__(
        self,
        host: str,
        port: int,
        session: InstrumentSession,
        dispatcher: Optional[CommandDispatcher] = None,
        capture_sink: Optional[CaptureSink] = None,
        poll_interval: float = 0.01,
        join_timeout: float = 5.0,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher or CommandDispatcher(session)
        self._capture_sink = capture_sink
        self._poll_interval = poll_interval
        self._join_timeout = join_timeout
        self._closing = threading.Event()

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((host, port))
        self.sock.listen(1)
        self.host, self.port = self.sock.getsockname()[:2]

    def loop(self) -> None:
        while not self._closing.is_set():
            try:
                client, address = self.sock.accept()
            except OSError:
                break
            try:
                self.serve_client(client, address)
            except Exception:
                LOGGER.exception("Client session from %s failed", address)

    def serve_client(self, client: socket.socket, address: Any) -> None:
        LOGGER.info("Client connected to control plane socket from %s", address)
        try:
            client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            LOGGER.warning("Failed to disable Nagle on socket, performance may be poor")

        self._session.reset()
        pump = WaveformPump(self._session, sink=self._capture_sink, poll_interval=self._poll_interval)
        pump.start()
        try:
            self._command_loop(LineCodec(client))
        finally:
            pump.shutdown(self._join_timeout)
            self._session.reset()
            try:
                client.close()
            except OSError:  # pragma: no cover
                LOGGER.warning("Failed to close client socket", exc_info=True)
            LOGGER.info("Client disconnected")

    def _command_loop(self, codec: LineCodec) -> None:
        while True:
            try:
                line = codec.receive()
            except CodecError as exc:
                LOGGER.debug("Ending session: %s", exc)
                return
            outcome = self._dispatcher.handle_line(line)
            if outcome.exit:
                return
            if outcome.reply is not None:
                try:
                    codec.send(outcome.reply)
                except CodecError as exc:
                    LOGGER.debug("Ending session: %s", exc)
                    return

    def close(self) -> None:
        self._closing.set()
        try:
            # Wakes a thread blocked in accept()
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            LOGGER.debug("Listener shutdown: %s", exc)
        try:
            self.sock.close()
        except OSError:  # pragma: no cover
            LOGGER.warning("Failed to close control plane socket", exc_info=True)


@dataclass(slots=True)
class ServerContext:
    config_path: Optional[Path]
    server: ScpiControlServer
    session: InstrumentSession


class ScopeServerFacade:
    """High-level façade that wires configuration, backend, session and server."""

    def __init__(self, config: Config, config_path: Optional[Path] = None) -> None:
        self._config = config
        self._config_path = config_path
        self._backend_factory = BackendFactory()
        self._backend: Optional[InstrumentBackend] = None
        self._server: Optional[ScpiControlServer] = None
        self._status: Any = None

    @classmethod
    def from_path(cls, config_path: Path) -> "ScopeServerFacade":
        return cls(load_config(config_path), config_path)

    def start(self) -> ServerContext:
        """Open the backend, bind the listener and return references to both."""

        config = self._config
        backend = self._backend_factory.build(config.backend)
        backend.open()
        self._backend = backend
        session = InstrumentSession(backend, config.instrument)
        server = ScpiControlServer(
            host=config.server.host,
            port=config.server.port,
            session=session,
            poll_interval=config.server.data_plane_poll_interval,
            join_timeout=config.server.data_plane_join_timeout,
        )
        self._server = server
        LOGGER.info("SCPI control plane listening on %s:%s", server.host, server.port)

        if config.status.enabled:
            from .status_server import StatusServer

            self._status = StatusServer(session, config, config.status.host, config.status.port)
            self._status.start()

        return ServerContext(config_path=self._config_path, server=server, session=session)

    def serve_forever(self) -> None:
        ctx = self.start()
        try:
            ctx.server.loop()
        except KeyboardInterrupt:
            LOGGER.info("Shutting down (Ctrl+C)")
        finally:
            self.stop()

    def stop(self) -> None:
        if self._server is None:
            return
        try:
            if self._status is not None:
                self._status.stop()
                self._status = None
            self._server.close()
        finally:
            if self._backend is not None:
                self._backend.close()
                self._backend = None
            self._server = None


def run_from_cli(config_path: Path, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(asctime)s] %(levelname)s %(message)s")
    facade = ScopeServerFacade.from_path(config_path)

    def _handle_shutdown(signum: int, _frame: object) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        facade.stop()

    signal.signal(signal.SIGTERM, _handle_shutdown)

    facade.serve_forever()
